"""Shared fixtures: fake clock, fake login, recording chat transport, configs."""
import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

import pytest

from portalbot.chat.messages import InboundMessage
from portalbot.config import AppConfig, ChatConfig, PipelineConfig, PortalConfig, SessionConfig
from portalbot.conversation.coordinator import ConversationCoordinator
from portalbot.errors import LoginError, ReplyTimeoutError
from portalbot.retry import RetryPolicy
from portalbot.session.credentials import Cookie, CredentialPair

PORTAL_URL = "https://portal.test"


def make_pair(n: int = 1) -> CredentialPair:
    return CredentialPair(
        auth=Cookie("railwire_cookie_name", f"auth-{n}"),
        session=Cookie("ci_session", f"sess-{n}"),
    )


def make_message(text: str, identity: str = "op-1@chat", chat_id: str = "group-1@chat",
                 timestamp: float = 2_000_000_000.0, **kwargs) -> InboundMessage:
    """Group message written by ``identity``."""
    return InboundMessage(sender=chat_id, chat_id=chat_id, text=text, timestamp=timestamp,
                          author=identity, **kwargs)


async def no_sleep(delay: float) -> None:
    return None


@dataclass
class _Handle:
    due: float
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """Clock whose time only moves when a test calls :meth:`advance`."""

    def __init__(self, start: float = 1000.0) -> None:
        self._now = start
        self.handles: list[_Handle] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> _Handle:
        handle = _Handle(self._now + delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> list[_Handle]:
        return [h for h in self.handles if not h.cancelled]

    def advance(self, seconds: float) -> None:
        """Move time forward and fire every timer that came due."""
        self._now += seconds
        due = [h for h in self.pending if h.due <= self._now]
        for handle in due:
            handle.cancelled = True
            handle.callback()


@dataclass
class FakeLoginClient:
    """Issues numbered credential pairs; optionally fails or blocks."""

    failures: int = 0
    always_fail: bool = False
    gate: Optional[asyncio.Event] = None
    calls: int = 0
    issued: list[CredentialPair] = field(default_factory=list)

    async def login(self) -> CredentialPair:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.always_fail or self.calls <= self.failures:
            raise LoginError(f"login attempt {self.calls} rejected")
        pair = make_pair(len(self.issued) + 1)
        self.issued.append(pair)
        return pair


class FakeTransport:
    """Chat transport that records every outgoing message."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.entered = False
        self.exited = False

    async def __aenter__(self) -> "FakeTransport":
        self.entered = True
        return self

    async def __aexit__(self, *args) -> None:
        self.exited = True

    async def send(self, chat_id: str, text: str) -> None:
        self.sent.append((chat_id, text))

    @property
    def texts(self) -> list[str]:
        return [text for _, text in self.sent]


class FakeCredentials:
    """Credential source that always answers with the same pair."""

    def __init__(self, pair: Optional[CredentialPair] = None) -> None:
        self.pair = pair or make_pair()
        self.calls = 0

    async def get_credentials(self) -> CredentialPair:
        self.calls += 1
        return self.pair


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def login_client() -> FakeLoginClient:
    return FakeLoginClient()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def coordinator(transport: FakeTransport) -> ConversationCoordinator:
    return ConversationCoordinator(transport, default_timeout=5.0)


@pytest.fixture
def instant_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=1.0, sleep=no_sleep)


@pytest.fixture
def session_config() -> SessionConfig:
    return SessionConfig(ttl=297.0, refresh_threshold=285.0, login_attempts=3, backoff_delay=1.0)


@pytest.fixture
def portal_config() -> PortalConfig:
    return PortalConfig(base_url=PORTAL_URL, username="admin", password="secret")


@pytest.fixture
def app_config(portal_config: PortalConfig, tmp_path: Path) -> AppConfig:
    return AppConfig(
        portal=portal_config,
        chat=ChatConfig(outbound_url="http://bridge.test/send", secret="", reply_timeout=5.0),
        pipeline=PipelineConfig(pass_delay=0.0, max_stalled_passes=3),
        db_path=tmp_path / "portalbot.db",
    )


class ScriptedChannel:
    """Operator channel answering prompts from a fixed script.

    Running out of answers behaves like an operator who never replies.
    """

    def __init__(self, *answers: str, identity: str = "op-1@chat", chat_id: str = "group-1@chat") -> None:
        self.identity = identity
        self.chat_id = chat_id
        self.answers = list(answers)
        self.asked: list[str] = []
        self.said: list[str] = []

    async def say(self, text: str) -> None:
        self.said.append(text)

    async def ask(self, text: str, timeout: Optional[float] = None) -> str:
        self.asked.append(text)
        if not self.answers:
            raise ReplyTimeoutError(self.identity, timeout or 0.0)
        return self.answers.pop(0).strip()

    @property
    def transcript(self) -> list[str]:
        return self.said + self.asked
