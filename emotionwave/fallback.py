"""
Deterministic time-based fallback mood.

Used when no live source produced an article. The value is a pure
function of the wall-clock time truncated to the second, so repeated
calls within one second return identical results.
"""

import math
from datetime import datetime
from typing import Callable

from .models import FALLBACK_PROVENANCE, SentimentData, SourceSummary, clamp


# (name, score offset, base article count, article count modulus)
SYNTHETIC_SOURCES: tuple[tuple[str, float, int, int], ...] = (
    ("Reuters", 0.1, 3, 5),
    ("Al Jazeera", -0.05, 2, 4),
    ("BBC", 0.15, 4, 3),
)


def fallback_score(moment: datetime) -> float:
    """Sine over minute-of-day, biased positive, plus second-based jitter."""
    seed = (moment.hour * 60 + moment.minute) % 1440
    base = 0.3 + math.sin(seed * 0.1) * 0.4
    variation = (moment.second % 30) / 100
    return clamp(base + variation, -1.0, 1.0)


class FallbackGenerator:
    """Produces SentimentData with the same shape as a live result."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock

    def generate(self) -> SentimentData:
        moment = self._clock().replace(microsecond=0)
        score = fallback_score(moment)
        second = moment.second

        sources = tuple(
            SourceSummary(
                name=name,
                raw_score=0.0,
                score=clamp(score + offset, -1.0, 1.0),
                articles=base_count + (second % modulus),
                weight=0,
            )
            for name, offset, base_count, modulus in SYNTHETIC_SOURCES
        )

        return SentimentData(
            score=score,
            timestamp=moment.timestamp(),
            sources=sources,
            api_sources=(FALLBACK_PROVENANCE,),
            articles=(),
        )
