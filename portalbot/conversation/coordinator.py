"""Per-operator prompt/reply correlation over a shared inbound stream."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from portalbot.chat.messages import InboundMessage
from portalbot.chat.transport import ChatTransport
from portalbot.errors import CorrelationError, ExchangePendingError, ReplyTimeoutError

logger = logging.getLogger(__name__)

_UNSET: float = -1.0


class ConversationCoordinator:
    """Lets a flow send a prompt and wait for that operator's next message.

    Each identity has at most one outstanding exchange. An inbound message
    resolves the exchange whose identity equals the message's derived
    identity, regardless of content. Registering and resolving never
    suspend, so the table cannot be observed half-updated.
    """

    def __init__(self, transport: ChatTransport, default_timeout: Optional[float] = None) -> None:
        self._transport = transport
        self._default_timeout = default_timeout
        self._exchanges: dict[str, asyncio.Future[str]] = {}

    def is_waiting(self, identity: str) -> bool:
        return identity in self._exchanges

    def pending_identities(self) -> list[str]:
        return list(self._exchanges)

    async def prompt(self, chat_id: str, text: str) -> None:
        await self._transport.send(chat_id, text)

    async def await_reply(self, identity: str, timeout: Optional[float] = _UNSET) -> str:
        """Suspend until ``identity`` sends its next message.

        Raises:
            ExchangePendingError: Another exchange is already outstanding.
            ReplyTimeoutError: ``timeout`` seconds passed with no reply.
        """
        future = self._register(identity)
        return await self._wait(identity, future, timeout)

    async def ask(self, identity: str, chat_id: str, text: str, timeout: Optional[float] = _UNSET) -> str:
        """Send ``text`` and wait for the reply.

        The exchange is registered before the prompt goes out, so a fast
        reply cannot slip past it.
        """
        future = self._register(identity)
        try:
            await self._transport.send(chat_id, text)
        except BaseException:
            self._discard(identity, future)
            raise
        return await self._wait(identity, future, timeout)

    def resolve(self, message: InboundMessage) -> None:
        """Hand ``message`` to the exchange of its identity.

        Raises:
            CorrelationError: No exchange is waiting for that identity.
        """
        identity = message.identity
        future = self._exchanges.pop(identity, None)
        if future is None or future.done():
            raise CorrelationError(f"No pending exchange for {identity}")
        future.set_result(message.text)
        logger.debug("Reply from %s resolved pending exchange", identity)

    def offer(self, message: InboundMessage) -> bool:
        """Route an inbound message; True when it resolved an exchange."""
        try:
            self.resolve(message)
        except CorrelationError:
            return False
        return True

    def cancel(self, identity: str) -> bool:
        future = self._exchanges.pop(identity, None)
        if future is None:
            return False
        future.cancel()
        return True

    def cancel_all(self) -> int:
        identities = list(self._exchanges)
        for identity in identities:
            self.cancel(identity)
        return len(identities)

    def channel(self, identity: str, chat_id: str) -> "OperatorChannel":
        return OperatorChannel(self, identity, chat_id)

    def _register(self, identity: str) -> "asyncio.Future[str]":
        if identity in self._exchanges:
            raise ExchangePendingError(identity)
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._exchanges[identity] = future
        return future

    def _discard(self, identity: str, future: "asyncio.Future[str]") -> None:
        if self._exchanges.get(identity) is future:
            del self._exchanges[identity]
        future.cancel()

    async def _wait(self, identity: str, future: "asyncio.Future[str]", timeout: Optional[float]) -> str:
        if timeout == _UNSET:
            timeout = self._default_timeout
        try:
            if timeout is None:
                return await future
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            logger.info("Exchange with %s timed out after %ss", identity, timeout)
            raise ReplyTimeoutError(identity, timeout) from None
        finally:
            if self._exchanges.get(identity) is future:
                del self._exchanges[identity]


@dataclass(frozen=True)
class OperatorChannel:
    """A conversation with one operator in one chat."""

    coordinator: ConversationCoordinator
    identity: str
    chat_id: str

    async def say(self, text: str) -> None:
        await self.coordinator.prompt(self.chat_id, text)

    async def ask(self, text: str, timeout: Optional[float] = _UNSET) -> str:
        reply = await self.coordinator.ask(self.identity, self.chat_id, text, timeout)
        return reply.strip()
