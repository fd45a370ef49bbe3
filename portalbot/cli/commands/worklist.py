"""Run the KYC worklist with the local terminal as the operator."""
import asyncio
import logging
import threading
import time
from pathlib import Path
from typing import Optional

from rich.console import Console

from portalbot.chat.messages import InboundMessage
from portalbot.chat.transport import ConsoleChatTransport
from portalbot.cli.commands._common import fail, load_or_exit
from portalbot.cli.output import format_success, format_warning, json_output
from portalbot.config import AppConfig
from portalbot.context import AppContext
from portalbot.conversation.coordinator import ConversationCoordinator
from portalbot.errors import PortalBotError
from portalbot.pipeline.outcomes import RunResult
from portalbot.state.models import ItemOutcome

logger = logging.getLogger(__name__)
console = Console()

CONSOLE_IDENTITY = "console"
POLL_INTERVAL = 0.05
PROMPT = "[bold]> [/bold]"


class ConsoleLineReader:
    """Reads terminal lines without tying up the event loop's executor.

    Each read runs on a daemon thread, so a read still blocked on the
    terminal when the run ends never delays interpreter exit. A read
    abandoned by a cancelled waiter stays pending and is handed to the
    next :meth:`readline` call, so no typed line is lost.
    """

    def __init__(self, console: Console, prompt: str = PROMPT) -> None:
        self._console = console
        self._prompt = prompt
        self._pending: Optional["asyncio.Future[str]"] = None

    async def readline(self) -> str:
        """Next terminal line.

        Raises:
            EOFError: Standard input was closed.
        """
        if self._pending is None:
            self._pending = self._start_read()
        pending = self._pending
        try:
            return await asyncio.shield(pending)
        finally:
            if pending.done():
                self._pending = None

    def _start_read(self) -> "asyncio.Future[str]":
        loop = asyncio.get_running_loop()
        future: "asyncio.Future[str]" = loop.create_future()

        def deliver(line: str, error: Optional[EOFError]) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(line)

        def read() -> None:
            line, error = "", None
            try:
                line = self._console.input(self._prompt)
            except EOFError as e:
                error = e
            try:
                loop.call_soon_threadsafe(deliver, line, error)
            except RuntimeError:
                logger.debug("Console line read after the event loop closed")

        threading.Thread(target=read, name="console-reader", daemon=True).start()
        return future


async def pump_console_replies(coordinator: ConversationCoordinator, reader: ConsoleLineReader,
                               identity: str = CONSOLE_IDENTITY) -> None:
    """Read a terminal line whenever the operator is being asked something."""
    while True:
        if not coordinator.is_waiting(identity):
            await asyncio.sleep(POLL_INTERVAL)
            continue
        try:
            line = await reader.readline()
        except EOFError:
            logger.info("Console input closed; pending prompts will time out")
            return
        coordinator.offer(InboundMessage(sender=identity, chat_id=identity, text=line, timestamp=time.time()))


async def _run(config: AppConfig) -> RunResult:
    async with AppContext(config, ConsoleChatTransport(console)) as context:
        channel = context.coordinator.channel(CONSOLE_IDENTITY, CONSOLE_IDENTITY)
        pump = asyncio.create_task(pump_console_replies(context.coordinator, ConsoleLineReader(console)))
        try:
            return await context.worklist_pipeline(channel).run_to_completion()
        finally:
            pump.cancel()
            await asyncio.gather(pump, return_exceptions=True)


def summarize(run: RunResult) -> dict:
    return {
        "run_id": run.run_id,
        "passes": len(run.passes),
        "processed": run.total_processed,
        "skipped": run.count(ItemOutcome.SKIPPED),
        "failed": run.count(ItemOutcome.FAILED),
        "stalled": run.stalled,
    }


def worklist_command(config_path: Optional[Path], json_flag: bool) -> None:
    """Process submitted and verified forms until the worklist stops moving."""
    config = load_or_exit(console, config_path)
    try:
        run = asyncio.run(_run(config))
    except PortalBotError as e:
        raise fail(console, e)

    summary = summarize(run)
    if json_flag:
        json_output(console, summary)
        return
    format_success(console, f"Processed + Verified: {summary['processed']} in {summary['passes']} passes")
    if run.stalled:
        format_warning(console, "Stopped after repeated passes without progress")
