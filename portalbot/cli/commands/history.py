"""Show recent pipeline outcomes from the ledger."""
import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from portalbot.cli.commands._common import EXIT_VALIDATION, load_or_exit
from portalbot.cli.output import format_error, format_table, json_output
from portalbot.state.database import DatabaseManager
from portalbot.state.models import OutcomeRecord
from portalbot.state.repositories import OutcomeRepository

console = Console()


async def _recent(db_path: Path, limit: int, pipeline: Optional[str]) -> list[OutcomeRecord]:
    db = DatabaseManager(db_path)
    await db.initialize()
    try:
        return await OutcomeRepository(db).list_recent(limit, pipeline=pipeline)
    finally:
        await db.close()


def history_command(
    config_path: Optional[Path],
    db_path: Optional[Path],
    limit: int,
    pipeline: Optional[str],
    json_flag: bool,
) -> None:
    """List the most recent item outcomes."""
    if limit < 1:
        format_error(console, f"--limit must be positive, got {limit}")
        raise typer.Exit(code=EXIT_VALIDATION)
    if db_path is None:
        db_path = load_or_exit(console, config_path).db_path

    records = asyncio.run(_recent(db_path, limit, pipeline))
    if json_flag:
        json_output(console, [
            {
                "run_id": r.run_id,
                "pipeline": r.pipeline,
                "pass_no": r.pass_no,
                "item_id": r.item_id,
                "outcome": r.outcome.value,
                "reason": r.reason,
                "recorded_at": r.recorded_at.isoformat(),
            }
            for r in records
        ])
        return
    format_table(
        console, "Recent outcomes", ["When", "Pipeline", "Run", "Pass", "Item", "Outcome", "Reason"],
        [
            [r.recorded_at.strftime("%Y-%m-%d %H:%M:%S"), r.pipeline, r.run_id, str(r.pass_no),
             r.item_id, r.outcome.value, r.reason or ""]
            for r in records
        ],
        outcome_column="Outcome",
    )
