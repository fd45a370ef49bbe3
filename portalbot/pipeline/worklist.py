"""Poll, classify and dispatch the KYC worklist until it stops moving."""
import asyncio
import logging
from typing import Awaitable, Callable, Mapping, Optional, Protocol

from portalbot.config import PipelineConfig
from portalbot.errors import AuthenticationError, RemoteOperationError, ReplyTimeoutError
from portalbot.portal.models import KycWorkItem
from portalbot.state.models import ItemOutcome

from .outcomes import ItemResult, OutcomeLedger, PassResult, RunResult, new_run_id

logger = logging.getLogger(__name__)

PIPELINE_NAME = "worklist"

PENDING_EVIDENCE = "submitted"
AWAITING_PROVISIONING = "verified"


class WorklistSource(Protocol):
    async def list_kyc_worklist(self) -> list[KycWorkItem]: ...


class WorkItemHandler(Protocol):
    async def handle(self, item: KycWorkItem) -> ItemResult: ...


class WorklistProcessingPipeline:
    """Runs passes over the worklist until no more progress can be made.

    Each pass re-reads the listing, so an item a previous pass moved to
    another status is never handed to its old handler again. Items are
    dispatched in handler order (pending evidence before provisioning).

    The loop ends when:

    - a pass finds zero actionable items, or
    - ``max_stalled_passes`` consecutive passes made no progress while
      actionable items existed or the listing itself failed. The result
      is then marked ``stalled``.

    Items the operator declined, or never answered, are skipped and not
    offered again within the same run.
    """

    def __init__(
        self,
        source: WorklistSource,
        handlers: Mapping[str, WorkItemHandler],
        config: Optional[PipelineConfig] = None,
        ledger: Optional[OutcomeLedger] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._source = source
        self._handlers = dict(handlers)
        self._config = config or PipelineConfig()
        self._ledger = ledger or OutcomeLedger()
        self._sleep = sleep
        self._settled: set[str] = set()

    def classify(self, item: KycWorkItem) -> Optional[str]:
        """Handler key for ``item``, or None when it is not actionable."""
        if item.remote_id in self._settled:
            return None
        return item.status if item.status in self._handlers else None

    async def run_pass(self, pass_no: int, run_id: Optional[str] = None) -> PassResult:
        run_id = run_id or new_run_id()
        result = PassResult(pass_no)
        try:
            items = await self._source.list_kyc_worklist()
        except (RemoteOperationError, AuthenticationError) as e:
            logger.error("Failed to list worklist on pass %d: %s", pass_no, e)
            result.listing_error = str(e)
            return result

        buckets: dict[str, list[KycWorkItem]] = {key: [] for key in self._handlers}
        seen: set[str] = set()
        for item in items:
            key = self.classify(item)
            if key is None or item.remote_id in seen:
                continue
            seen.add(item.remote_id)
            buckets[key].append(item)

        for key, bucket in buckets.items():
            handler = self._handlers[key]
            for item in bucket:
                item_result = await self._dispatch(handler, item)
                result.record(item.remote_id, item_result)
                if item_result.outcome is ItemOutcome.SKIPPED:
                    self._settled.add(item.remote_id)
                await self._ledger.record(run_id, PIPELINE_NAME, pass_no, item.remote_id, item_result)
        return result

    async def _dispatch(self, handler: WorkItemHandler, item: KycWorkItem) -> ItemResult:
        try:
            return await handler.handle(item)
        except ReplyTimeoutError as e:
            logger.info("No operator reply for item %s: %s", item.remote_id, e)
            return ItemResult.skipped("No reply from operator")
        except Exception as e:
            logger.exception("Error processing %s form %s", item.status, item.remote_id)
            return ItemResult.failed(str(e) or type(e).__name__)

    async def run_to_completion(self) -> RunResult:
        """Run passes until the worklist converges; see the class docstring."""
        run = RunResult(run_id=new_run_id(), pipeline=PIPELINE_NAME)
        self._settled.clear()
        stalled_passes = 0
        pass_no = 0
        while True:
            pass_no += 1
            current = await self.run_pass(pass_no, run.run_id)
            run.passes.append(current)
            logger.info(
                "Pass %d: %d actionable, %d processed", pass_no, current.actionable, current.processed,
            )

            if current.listing_error is None and current.actionable == 0:
                break
            if current.processed > 0:
                stalled_passes = 0
            else:
                stalled_passes += 1
                if stalled_passes >= self._config.max_stalled_passes:
                    logger.warning("Worklist made no progress for %d passes, stopping", stalled_passes)
                    run.stalled = True
                    break

            logger.info("Fetching remaining application forms")
            await self._sleep(self._config.pass_delay)

        logger.info("Worklist run %s finished: %d processed", run.run_id, run.total_processed)
        return run
