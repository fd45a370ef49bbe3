"""Reusable retry policy with pluggable backoff."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Backoff = Callable[[float, int], float]
Sleep = Callable[[float], Awaitable[None]]


def linear_backoff(base_delay: float, attempt: int) -> float:
    """Delay grows with the attempt number: base, 2*base, 3*base..."""
    return base_delay * attempt


def exponential_backoff(base_delay: float, attempt: int) -> float:
    return min(base_delay * (2 ** (attempt - 1)), 30.0)


@dataclass(frozen=True)
class RetryPolicy:
    """Run an operation up to ``max_attempts`` times.

    The delay after failed attempt *n* (1-based) is ``backoff(base_delay, n)``.
    No delay follows the final attempt; its exception propagates.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    backoff: Backoff = linear_backoff
    sleep: Sleep = field(default=asyncio.sleep, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        return max(0.0, self.backoff(self.base_delay, attempt))

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        retry_on: tuple[type[BaseException], ...] = (Exception,),
        label: str = "operation",
    ) -> T:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except retry_on as exc:
                if attempt == self.max_attempts:
                    logger.warning("%s failed after %d attempts: %s", label, attempt, exc)
                    raise
                delay = self.delay_for(attempt)
                logger.info("%s attempt %d/%d failed (%s), retrying in %.1fs",
                            label, attempt, self.max_attempts, exc, delay)
                await self.sleep(delay)
        raise AssertionError("unreachable")
