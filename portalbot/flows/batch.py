"""Chat commands that run a pipeline and report the totals."""
import asyncio
import logging
from typing import Optional

from portalbot.config import PipelineConfig
from portalbot.conversation.coordinator import OperatorChannel
from portalbot.errors import AuthenticationError, PortalBotError
from portalbot.pipeline.kyc import EvidenceReviewHandler, ProvisioningHandler
from portalbot.pipeline.outcomes import OutcomeLedger, RunResult
from portalbot.pipeline.triage import TicketTriagePipeline
from portalbot.pipeline.worklist import AWAITING_PROVISIONING, PENDING_EVIDENCE, WorklistProcessingPipeline
from portalbot.portal.client import PortalActionClient
from portalbot.reference.directory import ReferenceData

logger = logging.getLogger(__name__)


def build_worklist_pipeline(
    portal: PortalActionClient,
    reference: ReferenceData,
    operator: OperatorChannel,
    config: Optional[PipelineConfig] = None,
    ledger: Optional[OutcomeLedger] = None,
) -> WorklistProcessingPipeline:
    handlers = {
        PENDING_EVIDENCE: EvidenceReviewHandler(portal, operator),
        AWAITING_PROVISIONING: ProvisioningHandler(portal, reference, operator),
    }
    return WorklistProcessingPipeline(portal, handlers, config=config, ledger=ledger)


class WorklistCommand:
    """``cafupdate``: work through the KYC worklist with the caller as operator."""

    def __init__(self, portal: PortalActionClient, reference: ReferenceData,
                 config: PipelineConfig, ledger: OutcomeLedger) -> None:
        self._portal = portal
        self._reference = reference
        self._config = config
        self._ledger = ledger
        self._lock = asyncio.Lock()

    async def run(self, channel: OperatorChannel) -> Optional[RunResult]:
        if self._lock.locked():
            await channel.say("KYC processing is already running.")
            return None
        async with self._lock:
            await channel.say("Looking for KYC...")
            pipeline = build_worklist_pipeline(self._portal, self._reference, channel, self._config, self._ledger)
            run = await pipeline.run_to_completion()
            summary = f"Processed + Verified: {run.total_processed}"
            if run.stalled:
                summary += "\nStopped: no progress on the remaining forms."
            await channel.say(summary)
            return run


class TriageCommand:
    """``ticketupdate``: one triage pass over the ticket pages."""

    def __init__(self, pipeline: TicketTriagePipeline) -> None:
        self._pipeline = pipeline
        self._lock = asyncio.Lock()

    async def run(self, channel: OperatorChannel) -> None:
        if self._lock.locked():
            await channel.say("Ticket processing is already running.")
            return
        async with self._lock:
            await channel.say("*++* Working *++*")
            try:
                report = await self._pipeline.run_once()
            except AuthenticationError:
                raise
            except PortalBotError as e:
                logger.error("Error in ticket triage: %s", e)
                await channel.say("Error processing tickets.")
                return
            if not report.tickets:
                await channel.say("No tickets found.")
                return
            await channel.say(report.format_summary())
