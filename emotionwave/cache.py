"""Single-slot TTL cache for the latest mood result."""

import threading
import time
from typing import Callable, Optional

from .models import SentimentData


class ResultCache:
    """
    Holds one SentimentData at a time.

    get() serves the stored result while clock() - result.timestamp < ttl.
    Reads and writes go through a lock so threads never see a torn slot.
    """

    def __init__(
        self,
        ttl_seconds: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._result: Optional[SentimentData] = None

    def get(self) -> Optional[SentimentData]:
        with self._lock:
            result = self._result
        if result is None:
            return None
        if self._clock() - result.timestamp < self.ttl_seconds:
            return result
        return None

    def set(self, result: SentimentData) -> None:
        with self._lock:
            self._result = result

    def clear(self) -> None:
        with self._lock:
            self._result = None

    def age(self) -> Optional[float]:
        """Seconds since the stored result was created, or None."""
        with self._lock:
            result = self._result
        if result is None:
            return None
        return self._clock() - result.timestamp

    @property
    def is_fresh(self) -> bool:
        return self.get() is not None
