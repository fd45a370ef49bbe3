"""Outcome repository for the pipeline ledger."""
import aiosqlite
from datetime import datetime
from typing import Optional

from portalbot.state.database import DatabaseManager
from portalbot.state.models import ItemOutcome, OutcomeRecord

_MAX_LIST_LIMIT = 500


class OutcomeRepository:
    """Stores one row per item per pass in ``item_outcomes``.

    Opens a short-lived connection per call so it can be shared by
    concurrent flows.
    """

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def record(self, outcome: OutcomeRecord) -> bool:
        """Insert an outcome.

        Returns:
            False if the item already has an outcome for that pass.
        """
        async with self._db.connection() as conn:
            cursor = await conn.execute(
                "INSERT OR IGNORE INTO item_outcomes "
                "(run_id, pipeline, pass_no, item_id, outcome, reason, recorded_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    outcome.run_id,
                    outcome.pipeline,
                    outcome.pass_no,
                    outcome.item_id,
                    outcome.outcome.value,
                    outcome.reason,
                    outcome.recorded_at.isoformat(),
                ),
            )
            await conn.commit()
            return cursor.rowcount > 0

    async def list_recent(self, limit: int = 20, pipeline: Optional[str] = None) -> list[OutcomeRecord]:
        """Most recent outcomes first.

        Args:
            limit: Maximum rows to return (capped at 500).
            pipeline: Restrict to one pipeline name.

        Raises:
            ValueError: If limit is not a positive integer.
        """
        if not isinstance(limit, int) or limit < 1:
            raise ValueError(f"limit must be a positive integer, got {limit!r}")
        capped = min(limit, _MAX_LIST_LIMIT)
        async with self._db.connection() as conn:
            if pipeline:
                cursor = await conn.execute(
                    "SELECT * FROM item_outcomes WHERE pipeline = ? "
                    "ORDER BY recorded_at DESC, id DESC LIMIT ?",
                    (pipeline, capped),
                )
            else:
                cursor = await conn.execute(
                    "SELECT * FROM item_outcomes ORDER BY recorded_at DESC, id DESC LIMIT ?",
                    (capped,),
                )
            rows = await cursor.fetchall()
        return [self._row_to_record(r) for r in rows]

    async def counts_for_run(self, run_id: str) -> dict[str, int]:
        """Count outcomes grouped by kind for one run.

        Returns:
            Dict with outcome names as keys plus a 'total' key.
        """
        async with self._db.connection() as conn:
            cursor = await conn.execute(
                "SELECT outcome, COUNT(*) FROM item_outcomes WHERE run_id = ? GROUP BY outcome",
                (run_id,),
            )
            rows = await cursor.fetchall()
        counts: dict[str, int] = {o.value: 0 for o in ItemOutcome}
        for row in rows:
            if row[0] in counts:
                counts[row[0]] = row[1]
        counts["total"] = sum(counts.values())
        return counts

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> OutcomeRecord:
        return OutcomeRecord(
            run_id=row["run_id"],
            pipeline=row["pipeline"],
            pass_no=row["pass_no"],
            item_id=row["item_id"],
            outcome=ItemOutcome(row["outcome"]),
            reason=row["reason"],
            recorded_at=datetime.fromisoformat(row["recorded_at"]),
        )
