"""Run one ticket triage pass."""
import asyncio
from pathlib import Path
from typing import Optional

from rich.console import Console

from portalbot.chat.transport import ConsoleChatTransport
from portalbot.cli.commands._common import fail, load_or_exit
from portalbot.cli.output import format_success, format_table, json_output
from portalbot.config import AppConfig
from portalbot.context import AppContext
from portalbot.errors import PortalBotError
from portalbot.pipeline.triage import TriageReport
from portalbot.state.models import ItemOutcome

console = Console()


async def _run(config: AppConfig) -> TriageReport:
    async with AppContext(config, ConsoleChatTransport(console)) as context:
        return await context.triage_pipeline().run_once()


def triage_command(config_path: Optional[Path], json_flag: bool) -> None:
    """Close connectivity tickets whose subscriber session is active."""
    config = load_or_exit(console, config_path)
    try:
        report = asyncio.run(_run(config))
    except PortalBotError as e:
        raise fail(console, e)

    rows = [
        {
            "ticket_id": ticket_id,
            "subscriber": report.tickets[ticket_id].subscriber_id or "",
            "outcome": result.outcome.value,
            "reason": result.reason or "",
        }
        for ticket_id, result in report.result.results.items()
    ]
    if json_flag:
        json_output(console, {"run_id": report.run.run_id, "tickets": rows})
        return
    format_table(
        console, "Ticket triage", ["Ticket", "Subscriber", "Outcome", "Reason"],
        [[r["ticket_id"], r["subscriber"], r["outcome"], r["reason"]] for r in rows],
        outcome_column="Outcome",
    )
    format_success(console, f"{report.result.count(ItemOutcome.CLOSED)} closed of {len(rows)}")
