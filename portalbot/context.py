"""Composition root: builds and owns every long-lived component."""
import asyncio
import logging
import time
from contextlib import AsyncExitStack
from typing import Optional

import httpx

from portalbot.chat.transport import ChatTransport
from portalbot.clock import Clock, SystemClock
from portalbot.config import AppConfig
from portalbot.conversation.coordinator import ConversationCoordinator, OperatorChannel
from portalbot.flows.actions import AccountActions, OperatorContexts
from portalbot.flows.batch import TriageCommand, WorklistCommand, build_worklist_pipeline
from portalbot.flows.complaints import ComplaintClient, ComplaintFlows
from portalbot.flows.plan_change import PlanChangeFlow
from portalbot.flows.router import CommandRouter
from portalbot.flows.sla import SlaClient, SlaTicketFlow
from portalbot.pipeline.outcomes import OutcomeLedger
from portalbot.pipeline.triage import TicketTriagePipeline
from portalbot.pipeline.worklist import WorklistProcessingPipeline
from portalbot.portal.client import PortalActionClient
from portalbot.reference.directory import ReferenceData
from portalbot.session.login import PortalLoginClient, TesseractCaptchaSolver
from portalbot.session.manager import LoginClient, SessionLifecycleManager
from portalbot.state.database import DatabaseManager
from portalbot.state.repositories import OutcomeRepository

logger = logging.getLogger(__name__)


class AppContext:
    """Everything one process shares: session, clients, coordinator, caches.

    Components are created eagerly; network clients, the ledger and the
    reference data are opened by :meth:`start` and released by
    :meth:`close`. Use as async context manager.
    """

    def __init__(
        self,
        config: AppConfig,
        transport: ChatTransport,
        login_client: Optional[LoginClient] = None,
        clock: Optional[Clock] = None,
        reference: Optional[ReferenceData] = None,
        portal_http: Optional[httpx.AsyncClient] = None,
        complaint_http: Optional[httpx.AsyncClient] = None,
        sla_http: Optional[httpx.AsyncClient] = None,
        started_at: Optional[float] = None,
    ) -> None:
        self.config = config
        self.transport = transport
        self.clock = clock or SystemClock()
        self.login_client = login_client or PortalLoginClient(
            config.portal, config.browser, TesseractCaptchaSolver(),
        )
        self.session = SessionLifecycleManager(self.login_client, config.session, self.clock)
        self.portal = PortalActionClient(config.portal, self.session, http=portal_http)
        self.coordinator = ConversationCoordinator(transport, default_timeout=config.chat.reply_timeout)
        self.contexts = OperatorContexts()
        self.reference = reference
        self.db = DatabaseManager(config.db_path)
        self.outcomes = OutcomeRepository(self.db)
        self.ledger = OutcomeLedger(self.outcomes)
        self.complaint_client = ComplaintClient(config.complaints, http=complaint_http)
        self.sla_client = SlaClient(config.sla, http=sla_http)
        self.started_at = time.time() if started_at is None else started_at
        self.router: Optional[CommandRouter] = None
        self._stack = AsyncExitStack()

    async def __aenter__(self) -> "AppContext":
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def start(self) -> None:
        if self.reference is None:
            self.reference = await asyncio.to_thread(ReferenceData.load, self.config.reference)
        await self.db.initialize()
        for resource in (self.transport, self.portal, self.complaint_client, self.sla_client):
            await self._stack.enter_async_context(resource)
        self.router = self._build_router()
        logger.info("Context started (db=%s)", self.config.db_path)

    def _build_router(self) -> CommandRouter:
        reference = self.reference or ReferenceData()
        complaints = ComplaintFlows(self.complaint_client, reference)
        actions = AccountActions(self.portal, reference, self.contexts, complaints)
        router = CommandRouter(self.coordinator, actions, self.started_at, self.config.chat.ignored_group)
        router.command("ticketupdate", TriageCommand(self.triage_pipeline()).run)
        router.command("checkott", complaints.lookup, contains=True)
        router.command("slastart", SlaTicketFlow(self.sla_client).run)
        router.command("planupdate", PlanChangeFlow(self.portal).run)
        router.command(
            "cafupdate", WorklistCommand(self.portal, reference, self.config.pipeline, self.ledger).run,
        )
        return router

    def triage_pipeline(self) -> TicketTriagePipeline:
        return TicketTriagePipeline(self.portal, self.config.pipeline, self.reference, self.ledger)

    def worklist_pipeline(self, operator: OperatorChannel) -> WorklistProcessingPipeline:
        return build_worklist_pipeline(
            self.portal, self.reference or ReferenceData(), operator, self.config.pipeline, self.ledger,
        )

    async def close(self) -> None:
        if self.router is not None:
            await self.router.shutdown()
            self.router = None
        cancelled = self.coordinator.cancel_all()
        if cancelled:
            logger.info("Cancelled %d pending exchanges", cancelled)
        await self.session.close()
        await self._stack.aclose()
        await self.db.close()
