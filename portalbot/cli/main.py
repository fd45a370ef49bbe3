"""Main CLI entry point for portalbot."""

import logging
from pathlib import Path

import typer

from portalbot.cli.commands.history import history_command
from portalbot.cli.commands.login_check import login_check_command
from portalbot.cli.commands.serve import serve_command
from portalbot.cli.commands.triage import triage_command
from portalbot.cli.commands.worklist import worklist_command

app = typer.Typer(
    name="portalbot",
    help="Chat-driven portal administration bot",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging")) -> None:
    """Portal administration bot."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


@app.command("serve")
def serve(
    config_path: Path = typer.Option(None, "-c", "--config", help="YAML config file"),
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8080, "-p", "--port", help="Bind port"),
) -> None:
    """Serve POST /chat/inbound for the chat bridge."""
    serve_command(config_path, host, port)


@app.command("login-check")
def login_check(
    config_path: Path = typer.Option(None, "-c", "--config", help="YAML config file"),
    json_flag: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Log in once through the browser and show the harvested cookies."""
    login_check_command(config_path, json_flag)


@app.command("worklist")
def worklist(
    config_path: Path = typer.Option(None, "-c", "--config", help="YAML config file"),
    json_flag: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Process submitted and verified forms with this terminal as operator."""
    worklist_command(config_path, json_flag)


@app.command("triage")
def triage(
    config_path: Path = typer.Option(None, "-c", "--config", help="YAML config file"),
    json_flag: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Close connectivity tickets whose subscriber session is active."""
    triage_command(config_path, json_flag)


@app.command("history")
def history(
    config_path: Path = typer.Option(None, "-c", "--config", help="YAML config file"),
    db_path: Path = typer.Option(None, "--db", help="Ledger database (skips config loading)"),
    limit: int = typer.Option(20, "-n", "--limit", help="Rows to show"),
    pipeline: str = typer.Option(None, "--pipeline", help="worklist or triage"),
    json_flag: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """List the most recent pipeline item outcomes."""
    history_command(config_path, db_path, limit, pipeline, json_flag)


if __name__ == "__main__":
    app()
