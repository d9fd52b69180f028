"""Reusable retry policy for unreliable upstream calls"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def linear_backoff(base_delay: float, attempt: int) -> float:
    """Delay before retry number `attempt` (1-based): base, 2*base, 3*base, ..."""
    return base_delay * attempt


def never_retry(exc: BaseException) -> bool:
    return False


@dataclass
class RetryPolicy:
    """Retry an async operation while `is_retryable` accepts the raised error.

    `max_attempts` counts the first call, so 3 means one call plus two retries.
    `sleep` is injectable so tests can run without real delays.
    """
    max_attempts: int = 3
    base_delay: float = 1.0
    backoff: Callable[[float, int], float] = linear_backoff
    is_retryable: Callable[[BaseException], bool] = never_retry
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        attempt = 1
        while True:
            try:
                return await operation()
            except Exception as e:
                if attempt >= self.max_attempts or not self.is_retryable(e):
                    raise
                delay = self.backoff(self.base_delay, attempt)
                logger.debug(f"Attempt {attempt}/{self.max_attempts} failed ({e}); retrying in {delay:.1f}s")
                await self.sleep(delay)
                attempt += 1
