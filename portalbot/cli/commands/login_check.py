"""Perform one portal login and report the credential pair."""
import asyncio
from pathlib import Path
from typing import Optional

from rich.console import Console

from portalbot.cli.commands._common import fail, load_or_exit
from portalbot.cli.output import format_key_value, format_success, json_output
from portalbot.config import AppConfig
from portalbot.errors import PortalBotError
from portalbot.session.login import PortalLoginClient, TesseractCaptchaSolver
from portalbot.session.manager import SessionLifecycleManager

console = Console()


async def _check(config: AppConfig) -> dict:
    login_client = PortalLoginClient(config.portal, config.browser, TesseractCaptchaSolver())
    session = SessionLifecycleManager(login_client, config.session)
    try:
        pair = await session.refresh()
        return {
            "portal": config.portal.base_url,
            "cookies": [pair.auth.name, pair.session.name],
            "age_seconds": round(session.age() or 0.0, 3),
            "logins": session.login_count,
        }
    finally:
        await session.close()


def login_check_command(config_path: Optional[Path], json_flag: bool) -> None:
    """Log in once through the browser and show the harvested cookies."""
    config = load_or_exit(console, config_path)
    try:
        result = asyncio.run(_check(config))
    except PortalBotError as e:
        raise fail(console, e)

    if json_flag:
        json_output(console, result)
        return
    format_success(console, "Login succeeded")
    format_key_value(console, {
        "Portal": result["portal"],
        "Cookies": ", ".join(result["cookies"]),
        "Age": f"{result['age_seconds']}s",
    })
