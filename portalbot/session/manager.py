"""Credential cache with proactive refresh and single-flight coalescing."""
import asyncio
import logging
from typing import Optional, Protocol

from portalbot.clock import Clock, SystemClock, TimerHandle
from portalbot.config import SessionConfig
from portalbot.errors import AuthenticationError, LoginError
from portalbot.retry import RetryPolicy
from portalbot.session.credentials import CredentialPair

logger = logging.getLogger(__name__)


class LoginClient(Protocol):
    async def login(self) -> CredentialPair: ...


class SessionLifecycleManager:
    """Owns the portal credential pair.

    Callers only ever see a complete pair younger than ``ttl``. When the
    cache is stale every concurrent caller awaits the same in-flight
    refresh task. After each successful login a timer fires a background
    refresh at ``refresh_threshold`` so callers rarely wait at all.
    """

    def __init__(
        self,
        login_client: LoginClient,
        config: Optional[SessionConfig] = None,
        clock: Optional[Clock] = None,
        retry: Optional[RetryPolicy] = None,
    ) -> None:
        self._login_client = login_client
        self._config = config or SessionConfig()
        self._clock = clock or SystemClock()
        self._retry = retry or RetryPolicy(
            max_attempts=self._config.login_attempts,
            base_delay=self._config.backoff_delay,
        )
        self._credentials: Optional[CredentialPair] = None
        self._acquired_at: float = 0.0
        self._refresh_task: Optional[asyncio.Task[CredentialPair]] = None
        self._timer: Optional[TimerHandle] = None
        self._closed = False
        self.login_count = 0

    @property
    def credentials(self) -> Optional[CredentialPair]:
        return self._credentials

    @property
    def acquired_at(self) -> float:
        return self._acquired_at

    @property
    def refresh_in_flight(self) -> bool:
        return self._refresh_task is not None

    def age(self) -> Optional[float]:
        if self._credentials is None:
            return None
        return self._clock.now() - self._acquired_at

    def is_fresh(self) -> bool:
        age = self.age()
        return age is not None and age < self._config.ttl

    async def get_credentials(self) -> CredentialPair:
        """Return a fresh pair, joining or starting a refresh if needed.

        Raises:
            AuthenticationError: The login retry budget was exhausted.
        """
        age = self.age()
        if age is not None and age < self._config.ttl:
            # Past the refresh threshold a running refresh is joined so
            # callers pick up the new pair instead of the expiring one.
            if self._refresh_task is None or age < self._config.refresh_threshold:
                return self._credentials  # type: ignore[return-value]
            try:
                return await asyncio.shield(self._refresh_task)
            except AuthenticationError:
                if not self.is_fresh():
                    raise
                logger.warning("Refresh failed, serving the cached pair until it expires")
                return self._credentials  # type: ignore[return-value]
        return await asyncio.shield(self._ensure_refresh())

    async def refresh(self) -> CredentialPair:
        """Force a refresh, joining one that is already running."""
        return await asyncio.shield(self._ensure_refresh())

    def _ensure_refresh(self) -> "asyncio.Task[CredentialPair]":
        if self._refresh_task is None:
            self._refresh_task = asyncio.get_running_loop().create_task(self._do_refresh())
        return self._refresh_task

    async def _do_refresh(self) -> CredentialPair:
        try:
            try:
                pair = await self._retry.run(self._attempt_login, retry_on=(LoginError,), label="portal login")
            except LoginError as e:
                raise AuthenticationError(f"Portal login failed: {e}") from e
            self._credentials = pair
            self._acquired_at = self._clock.now()
            self._schedule_proactive_refresh()
            logger.info("Portal credentials refreshed")
            return pair
        finally:
            self._refresh_task = None

    async def _attempt_login(self) -> CredentialPair:
        self.login_count += 1
        return await self._login_client.login()

    def _schedule_proactive_refresh(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._closed:
            return
        elapsed = self._clock.now() - self._acquired_at
        delay = max(0.0, self._config.refresh_threshold - elapsed)
        self._timer = self._clock.call_later(delay, self._on_refresh_timer)

    def _on_refresh_timer(self) -> None:
        self._timer = None
        if self._closed:
            return
        task = self._ensure_refresh()
        task.add_done_callback(_log_background_failure)

    async def close(self) -> None:
        """Cancel the timer and any in-flight refresh; drop the cache."""
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        task = self._refresh_task
        if task is not None:
            task.cancel()
            try:
                await task
            except (asyncio.CancelledError, AuthenticationError):
                pass
        self._credentials = None


def _log_background_failure(task: "asyncio.Task[CredentialPair]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background credential refresh failed, keeping stale cache: %s", exc)
