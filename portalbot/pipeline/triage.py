"""One-pass ticket triage: close connectivity tickets whose link is back."""
import logging
from dataclasses import dataclass, field, replace
from typing import Optional

from portalbot.config import PipelineConfig
from portalbot.errors import PortalBotError
from portalbot.portal.client import PortalActionClient
from portalbot.portal.models import Ticket
from portalbot.reference.directory import Partner, ReferenceData
from portalbot.state.models import ItemOutcome

from .outcomes import ItemResult, OutcomeLedger, PassResult, RunResult, new_run_id

logger = logging.getLogger(__name__)

PIPELINE_NAME = "triage"
TRIAGE_STATUSES = ("open", "progress")


@dataclass
class TriageReport:
    run: RunResult
    tickets: dict[str, Ticket] = field(default_factory=dict)
    partners: dict[str, Partner] = field(default_factory=dict)

    @property
    def result(self) -> PassResult:
        return self.run.passes[0]

    def format_summary(self) -> str:
        result = self.result
        closed = result.items(ItemOutcome.CLOSED)
        lines = [
            "🎯 *Ticket Processing Results*",
            "",
            "*📊 Summary:*",
            "",
            f"✅ {len(closed)} Closed (Session Active)",
            f"⏭️ {result.count(ItemOutcome.SKIPPED)} Skipped (Various Reasons)",
        ]
        failed = result.count(ItemOutcome.FAILED)
        if failed:
            lines.append(f"❌ {failed} Failed (Manually Check)")
        if closed:
            lines += ["", f"*🔒 Closed ({len(closed)}):*"]
            lines += [f"#{ticket_id} ({self._subscriber(ticket_id)})" for ticket_id, _ in closed]
        if self.partners:
            lines += ["", f"*📌 Open for partners ({len(self.partners)}):*"]
            lines += [f"#{ticket_id} -> {partner.partner_name}" for ticket_id, partner in self.partners.items()]
        return "\n".join(lines)

    def _subscriber(self, ticket_id: str) -> str:
        ticket = self.tickets.get(ticket_id)
        return (ticket.subscriber_id if ticket else None) or "N/A"


class TicketTriagePipeline:
    """Single pass over the first ticket pages.

    Open or in-progress tickets whose subject names a connectivity
    problem are closed when the subscriber's session is active. Every
    other ticket is left untouched and counted as skipped; open tickets
    whose subscriber maps to a partner are listed for follow-up.
    """

    def __init__(
        self,
        portal: PortalActionClient,
        config: Optional[PipelineConfig] = None,
        reference: Optional[ReferenceData] = None,
        ledger: Optional[OutcomeLedger] = None,
    ) -> None:
        self._portal = portal
        self._config = config or PipelineConfig()
        self._reference = reference or ReferenceData()
        self._ledger = ledger or OutcomeLedger()

    def is_connectivity_issue(self, ticket: Ticket) -> bool:
        return any(subject in ticket.subject for subject in self._config.triage_close_subjects)

    async def run_once(self) -> TriageReport:
        """List tickets and triage them.

        Raises:
            RemoteOperationError: The ticket listing could not be read.
        """
        run = RunResult(run_id=new_run_id(), pipeline=PIPELINE_NAME)
        current = PassResult(pass_no=1)
        run.passes.append(current)
        report = TriageReport(run=run)

        tickets = await self._portal.list_tickets(self._config.triage_page_offsets)
        for ticket in tickets:
            if ticket.ticket_id in current.results:
                continue
            try:
                ticket, result = await self._triage(ticket)
            except PortalBotError as e:
                logger.warning("Ticket %s failed: %s", ticket.ticket_id, e)
                result = ItemResult.failed(str(e))
            except Exception as e:
                logger.exception("Error triaging ticket %s", ticket.ticket_id)
                result = ItemResult.failed(str(e) or type(e).__name__)
            report.tickets[ticket.ticket_id] = ticket
            current.record(ticket.ticket_id, result)
            await self._ledger.record(run.run_id, PIPELINE_NAME, 1, ticket.ticket_id, result)
            if result.outcome is ItemOutcome.SKIPPED and ticket.status == "open":
                partner = self._reference.partner_for_subscriber(ticket.subscriber_id or "")
                if partner is not None:
                    report.partners[ticket.ticket_id] = partner

        logger.info(
            "Triage %s: %d tickets, %d closed", run.run_id, current.actionable, current.count(ItemOutcome.CLOSED),
        )
        return report

    async def _triage(self, ticket: Ticket) -> tuple[Ticket, ItemResult]:
        if ticket.status not in TRIAGE_STATUSES:
            return ticket, ItemResult.skipped("Not open/progress status")

        subscriber = await self._portal.fetch_ticket_subscriber(ticket.view_url)
        ticket = replace(ticket, subscriber_id=subscriber)

        if not self.is_connectivity_issue(ticket):
            return ticket, ItemResult.skipped("Not connectivity issue")
        if not subscriber:
            return ticket, ItemResult.skipped("No subscriber ID")

        try:
            active = await self._portal.is_session_active(subscriber)
        except PortalBotError as e:
            return ticket, ItemResult.skipped(f"Session check failed: {e}")
        if not active:
            return ticket, ItemResult.skipped("Session not active")

        if await self._portal.close_ticket(ticket.ticket_id, self._config.triage_close_response):
            logger.info("Closed ticket %s for %s", ticket.ticket_id, subscriber)
            return ticket, ItemResult.closed("Connection restored")
        return ticket, ItemResult.skipped("Close request failed")
