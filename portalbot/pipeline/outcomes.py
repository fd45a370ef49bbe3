"""Per-pass outcome accounting shared by the worklist and triage pipelines."""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import aiosqlite

from portalbot.state.database import DatabaseError
from portalbot.state.models import ItemOutcome, OutcomeRecord
from portalbot.state.repositories import OutcomeRepository

logger = logging.getLogger(__name__)

PROGRESS_OUTCOMES = frozenset({ItemOutcome.CLOSED, ItemOutcome.PROGRESSED})


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class ItemResult:
    """What a handler did with one item."""

    outcome: ItemOutcome
    reason: Optional[str] = None

    @classmethod
    def closed(cls, reason: Optional[str] = None) -> "ItemResult":
        return cls(ItemOutcome.CLOSED, reason)

    @classmethod
    def progressed(cls, reason: Optional[str] = None) -> "ItemResult":
        return cls(ItemOutcome.PROGRESSED, reason)

    @classmethod
    def skipped(cls, reason: str) -> "ItemResult":
        return cls(ItemOutcome.SKIPPED, reason)

    @classmethod
    def failed(cls, reason: str) -> "ItemResult":
        return cls(ItemOutcome.FAILED, reason)

    @property
    def made_progress(self) -> bool:
        return self.outcome in PROGRESS_OUTCOMES


@dataclass
class PassResult:
    """Outcomes of one sweep, keyed by remote item id.

    An item gets exactly one outcome per pass; recording a second one is
    a programming error.
    """

    pass_no: int
    results: dict[str, ItemResult] = field(default_factory=dict)
    listing_error: Optional[str] = None

    def record(self, item_id: str, result: ItemResult) -> None:
        if item_id in self.results:
            raise ValueError(f"Item {item_id} already has an outcome in pass {self.pass_no}")
        self.results[item_id] = result

    def count(self, outcome: ItemOutcome) -> int:
        return sum(1 for r in self.results.values() if r.outcome is outcome)

    def items(self, outcome: ItemOutcome) -> list[tuple[str, ItemResult]]:
        return [(item_id, r) for item_id, r in self.results.items() if r.outcome is outcome]

    @property
    def actionable(self) -> int:
        return len(self.results)

    @property
    def processed(self) -> int:
        return sum(1 for r in self.results.values() if r.made_progress)


@dataclass
class RunResult:
    run_id: str
    pipeline: str
    passes: list[PassResult] = field(default_factory=list)
    stalled: bool = False

    @property
    def total_processed(self) -> int:
        return sum(p.processed for p in self.passes)

    def count(self, outcome: ItemOutcome) -> int:
        return sum(p.count(outcome) for p in self.passes)


class OutcomeLedger:
    """Writes outcomes to the repository when one is configured.

    Ledger failures are logged and never interrupt a pass.
    """

    def __init__(self, repository: Optional[OutcomeRepository] = None) -> None:
        self._repository = repository

    @property
    def enabled(self) -> bool:
        return self._repository is not None

    async def record(self, run_id: str, pipeline: str, pass_no: int, item_id: str, result: ItemResult) -> None:
        if self._repository is None:
            return
        record = OutcomeRecord(
            run_id=run_id,
            pipeline=pipeline,
            pass_no=pass_no,
            item_id=item_id,
            outcome=result.outcome,
            reason=result.reason,
            recorded_at=datetime.now(timezone.utc),
        )
        try:
            await self._repository.record(record)
        except (aiosqlite.Error, DatabaseError) as e:
            logger.error("Failed to record outcome for %s: %s", item_id, e)
