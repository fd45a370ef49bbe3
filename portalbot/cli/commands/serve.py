"""Run the inbound chat webhook server."""
import os
from pathlib import Path
from typing import Optional

import uvicorn
from rich.console import Console

from portalbot.cli.commands._common import load_or_exit

console = Console()


def serve_command(config_path: Optional[Path], host: str, port: int) -> None:
    """Serve POST /chat/inbound for the chat bridge."""
    load_or_exit(console, config_path)
    if config_path is not None:
        os.environ["PORTALBOT_CONFIG"] = str(config_path)
    uvicorn.run("portalbot.server.app:create_app", factory=True, host=host, port=port)
