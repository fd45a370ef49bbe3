"""Shared helpers for CLI commands."""
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from portalbot.cli.output import format_error
from portalbot.config import AppConfig, load_config
from portalbot.errors import ConfigError, PortalBotError, ValidationError

EXIT_CONFIG = 1
EXIT_VALIDATION = 2
EXIT_RUNTIME = 3


def load_or_exit(console: Console, config_path: Optional[Path]) -> AppConfig:
    try:
        return load_config(config_path)
    except ConfigError as e:
        format_error(console, str(e), hint="Set PORTALBOT_* variables or pass --config")
        raise typer.Exit(code=EXIT_CONFIG)


def fail(console: Console, error: PortalBotError) -> typer.Exit:
    """Report ``error`` and build the matching exit."""
    format_error(console, str(error))
    if isinstance(error, ConfigError):
        return typer.Exit(code=EXIT_CONFIG)
    if isinstance(error, ValidationError):
        return typer.Exit(code=EXIT_VALIDATION)
    return typer.Exit(code=EXIT_RUNTIME)
