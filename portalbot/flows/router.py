"""Routes inbound chat messages to pending exchanges or to flows."""
import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from portalbot.chat.messages import InboundMessage
from portalbot.conversation.coordinator import ConversationCoordinator, OperatorChannel
from portalbot.errors import (
    AuthenticationError,
    ExchangePendingError,
    PortalBotError,
    ReplyTimeoutError,
    ValidationError,
)

from .actions import AccountActions

logger = logging.getLogger(__name__)

FlowHandler = Callable[[OperatorChannel], Awaitable[object]]


class RouteOutcome(Enum):
    IGNORED = "ignored"
    REPLY = "reply"
    DISPATCHED = "dispatched"


class CommandRouter:
    """Entry point for every inbound message.

    A message first goes to the coordinator; when it answers a pending
    prompt it is consumed there. Anything else is parsed as a command or
    a free-form action and handled in a background task.
    """

    def __init__(
        self,
        coordinator: ConversationCoordinator,
        actions: AccountActions,
        started_at: float,
        ignored_group: str = "",
    ) -> None:
        self._coordinator = coordinator
        self._actions = actions
        self._started_at = started_at
        self._ignored_group = ignored_group.strip().lower()
        self._exact: dict[str, FlowHandler] = {}
        self._contains: dict[str, FlowHandler] = {}
        self._tasks: set[asyncio.Task] = set()

    def command(self, keyword: str, handler: FlowHandler, contains: bool = False) -> None:
        """Register ``handler`` for a message equal to (or containing) ``keyword``."""
        (self._contains if contains else self._exact)[keyword.lower()] = handler

    def match(self, body: str) -> Optional[FlowHandler]:
        text = body.strip().lower()
        if text in self._exact:
            return self._exact[text]
        for keyword, handler in self._contains.items():
            if keyword in text:
                return handler
        return None

    def accepts(self, message: InboundMessage) -> bool:
        if message.timestamp < self._started_at:
            return False
        if self._ignored_group and (message.group_name or "").strip().lower() == self._ignored_group:
            logger.debug("Ignoring message from group %s", message.group_name)
            return False
        return True

    @property
    def active_tasks(self) -> int:
        return len(self._tasks)

    def route(self, message: InboundMessage) -> RouteOutcome:
        """Consume a reply or start handling the message in the background."""
        if not self.accepts(message):
            return RouteOutcome.IGNORED
        if self._coordinator.offer(message):
            return RouteOutcome.REPLY
        self.spawn(self.dispatch(message), name=f"flow:{message.identity}")
        return RouteOutcome.DISPATCHED

    def spawn(self, coro: Awaitable[object], name: str = "flow") -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Flow task %s failed: %s", task.get_name(), exc, exc_info=exc)

    async def dispatch(self, message: InboundMessage) -> None:
        """Run the command or action ``message`` asks for."""
        channel = self._coordinator.channel(message.identity, message.chat_id)
        logger.info("Message from %s: %s", message.identity, message.body)
        handler = self.match(message.body)
        try:
            if handler is not None:
                await handler(channel)
            else:
                await self._actions.handle(message, channel)
        except ValidationError as e:
            await channel.say(str(e))
        except ReplyTimeoutError as e:
            logger.info("%s", e)
            await channel.say("⌛ No reply received, request cancelled.")
        except ExchangePendingError:
            await channel.say("Please finish the current request first.")
        except AuthenticationError as e:
            logger.error("Authentication failed while handling %s: %s", message.identity, e)
            await channel.say("Failed to authenticate. Please try again later.")
        except PortalBotError as e:
            logger.error("Request from %s failed: %s", message.identity, e)
            await channel.say("❌ Request failed. Please try again.")
        except Exception:
            logger.exception("Unexpected error handling message from %s", message.identity)
            await channel.say("❌ Request failed. Please try again.")

    async def shutdown(self) -> None:
        """Cancel and await every background flow."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
