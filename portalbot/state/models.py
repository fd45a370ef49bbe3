"""Item outcome models."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class ItemOutcome(Enum):
    """Terminal outcome of one work item in one pass."""

    CLOSED = "closed"
    PROGRESSED = "progressed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class OutcomeRecord:
    """One row of the outcome ledger.

    Attributes:
        run_id: Identifier shared by every pass of one pipeline run.
        pipeline: ``worklist`` or ``triage``.
        pass_no: 1-based pass number within the run.
        item_id: Remote identifier of the form or ticket.
        outcome: The terminal outcome.
        reason: Short explanation for skipped and failed items.
        recorded_at: When the outcome was recorded.
    """

    run_id: str
    pipeline: str
    pass_no: int
    item_id: str
    outcome: ItemOutcome
    recorded_at: datetime
    reason: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate required fields."""
        if not self.run_id:
            raise ValueError("run_id cannot be empty")
        if not self.item_id:
            raise ValueError("item_id cannot be empty")
        if self.pass_no < 1:
            raise ValueError("pass_no must be positive")
