"""Rich terminal output for pipeline runs and ledger rows."""

from typing import Any, Optional, Sequence

from rich.console import Console
from rich.table import Table

OUTCOME_STYLES = {
    "closed": "green",
    "progressed": "green",
    "skipped": "yellow",
    "failed": "red",
}


def format_success(console: Console, message: str) -> None:
    console.print(f"[green]{message}[/green]")


def format_error(console: Console, message: str, hint: Optional[str] = None) -> None:
    """Print an error line, then an optional hint on how to fix it."""
    console.print(f"[red]Error:[/red] {message}")
    if hint:
        console.print(f"[yellow]Hint:[/yellow] {hint}")


def format_warning(console: Console, message: str) -> None:
    console.print(f"[yellow]Warning:[/yellow] {message}")


def styled_outcome(outcome: str) -> str:
    """Wrap an outcome value in its rich colour markup."""
    style = OUTCOME_STYLES.get(outcome)
    return f"[{style}]{outcome}[/{style}]" if style else outcome


def format_table(
    console: Console,
    title: str,
    columns: Sequence[str],
    rows: Sequence[Sequence[str]],
    outcome_column: Optional[str] = None,
) -> None:
    """Print rows as a table.

    When ``outcome_column`` names one of ``columns`` its cells are coloured
    by item outcome. An empty row set prints a dim placeholder instead.
    """
    if not rows:
        console.print(f"[dim]{title}: nothing recorded[/dim]")
        return
    index = columns.index(outcome_column) if outcome_column in columns else None
    table = Table(title=title)
    for col in columns:
        table.add_column(col, no_wrap=col == outcome_column)
    for row in rows:
        cells = list(row)
        if index is not None:
            cells[index] = styled_outcome(cells[index])
        table.add_row(*cells)
    console.print(table)


def format_key_value(console: Console, data: dict[str, Any]) -> None:
    width = max((len(k) for k in data), default=0)
    for key, value in data.items():
        console.print(f"[cyan]{key.ljust(width)}[/cyan]: {value}")
