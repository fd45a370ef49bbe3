"""Outbound chat transports."""
import logging
from typing import Optional, Protocol

import httpx
from rich.console import Console

from portalbot.errors import RemoteOperationError
from portalbot.retry import RetryPolicy, exponential_backoff

logger = logging.getLogger(__name__)


class ChatTransport(Protocol):
    async def send(self, chat_id: str, text: str) -> None: ...


class WebhookChatTransport:
    """POSTs outgoing messages to the chat bridge. Use as async context manager."""

    def __init__(self, outbound_url: str, secret: str = "", timeout: float = 10.0,
                 retry: Optional[RetryPolicy] = None) -> None:
        self._url = outbound_url
        self._secret = secret
        self._timeout = timeout
        self._retry = retry or RetryPolicy(max_attempts=3, base_delay=0.5, backoff=exponential_backoff)
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "WebhookChatTransport":
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))
        return self

    async def __aexit__(self, *args) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._secret:
            headers["X-Bridge-Secret"] = self._secret
        return headers

    async def send(self, chat_id: str, text: str) -> None:
        if not self._client:
            raise RemoteOperationError("Chat transport not initialized", operation="chat.send")
        await self._retry.run(lambda: self._post(chat_id, text),
                              retry_on=(httpx.TransportError, RemoteOperationError), label="chat send")

    async def _post(self, chat_id: str, text: str) -> None:
        resp = await self._client.post(self._url, json={"chat_id": chat_id, "text": text}, headers=self._headers())
        if resp.status_code >= 400:
            raise RemoteOperationError(f"Chat bridge returned {resp.status_code}", operation="chat.send",
                                       status_code=resp.status_code)


class ConsoleChatTransport:
    """Prints outgoing messages to the terminal for local CLI runs."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self._console = console or Console()

    async def __aenter__(self) -> "ConsoleChatTransport":
        return self

    async def __aexit__(self, *args) -> None:
        return None

    async def send(self, chat_id: str, text: str) -> None:
        self._console.print(f"[cyan]bot[/cyan] -> {chat_id}:")
        self._console.print(text, markup=False)
