"""
Request Pacing and Retry
========================

Per-client pacing and backoff for the ledger source.

- RequestPacer enforces a minimum delay between consecutive requests.
  Its state lives on the instance, so independent clients never share a
  last-request timestamp.
- retry_with_backoff retries rate-limited calls with exponential backoff
  up to a fixed attempt cap. Any other error propagates immediately.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

import structlog

from ..exceptions import RateLimitedError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class PacerStats:
    """Counters for one pacer."""
    total_requests: int = 0
    rate_limit_hits: int = 0
    retries: int = 0
    total_wait_seconds: float = 0.0


class RequestPacer:
    """
    Minimum-interval request pacer.

    Args:
        min_interval: Seconds between the starts of consecutive requests
        clock: Monotonic clock
        sleep: Awaitable sleep (injectable for tests)
    """

    def __init__(
        self,
        min_interval: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_request: Optional[float] = None
        self._lock = asyncio.Lock()
        self.stats = PacerStats()

    async def wait(self):
        """Block until the next request may start."""
        async with self._lock:
            if self._last_request is not None:
                elapsed = self._clock() - self._last_request
                if elapsed < self.min_interval:
                    delay = self.min_interval - elapsed
                    self.stats.total_wait_seconds += delay
                    await self._sleep(delay)
            self._last_request = self._clock()
            self.stats.total_requests += 1

    async def backoff(self, delay: float):
        await self._sleep(delay)

    def get_stats(self) -> dict:
        """Get current pacing statistics."""
        return {
            "min_interval": self.min_interval,
            "total_requests": self.stats.total_requests,
            "rate_limit_hits": self.stats.rate_limit_hits,
            "retries": self.stats.retries,
            "total_wait_seconds": round(self.stats.total_wait_seconds, 3),
        }


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    pacer: RequestPacer,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    retry_on: Tuple[Type[BaseException], ...] = (RateLimitedError,),
) -> T:
    """
    Run ``operation`` behind the pacer, retrying rate-limited attempts.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        pacer: Pacer consulted before every attempt
        max_retries: Extra attempts after the first
        initial_delay: Backoff before the first retry; doubles each retry
        retry_on: Exception types that trigger a retry

    Returns:
        The operation's result

    Raises:
        The last rate-limit error once retries are exhausted, or any other
        error immediately
    """
    delay = initial_delay
    attempt = 0

    while True:
        await pacer.wait()
        try:
            return await operation()
        except retry_on as e:
            pacer.stats.rate_limit_hits += 1
            if attempt >= max_retries:
                logger.error(
                    "Rate limit retries exhausted",
                    attempts=attempt + 1,
                    error=str(e),
                )
                raise

            attempt += 1
            pacer.stats.retries += 1
            logger.warning(
                "Rate limited, backing off",
                attempt=attempt,
                delay_seconds=delay,
            )
            await pacer.backoff(delay)
            delay *= 2
