"""
Retry policy with exponential backoff.

delay after failed attempt n (0-based) = base_delay * 2**n, so the
default policy waits 1s then 2s before giving up on the third failure.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from .config import FetchConfig
from .exceptions import FetchError


logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(error: BaseException) -> bool:
    """Default retry predicate: network errors, timeouts, 429 and 5xx."""
    return isinstance(error, FetchError) and error.is_retryable()


class RetryPolicy:
    """Runs an async operation until it succeeds or the attempt budget is spent."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        should_retry: Callable[[BaseException], bool] = is_transient,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.should_retry = should_retry
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        config: FetchConfig,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay_seconds,
            sleep=sleep or asyncio.sleep,
        )

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt)

    def schedule(self) -> list[float]:
        """Every delay the policy may wait, in order."""
        return [self.delay_for(a) for a in range(self.max_attempts - 1)]

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "operation",
    ) -> T:
        """Run operation, re-raising the last error once attempts are exhausted."""
        for attempt in range(self.max_attempts):
            try:
                return await operation()
            except Exception as e:
                if not self.should_retry(e):
                    raise
                if attempt == self.max_attempts - 1:
                    logger.warning(
                        f"{description} failed after {self.max_attempts} attempts: {e}"
                    )
                    raise
                delay = self.delay_for(attempt)
                logger.info(
                    f"{description} failed ({e}), retry attempt "
                    f"{attempt + 1}/{self.max_attempts} after {delay:.1f}s"
                )
                await self._sleep(delay)

        # Unreachable: the loop either returns or raises
        raise RuntimeError("retry loop exited without result")
