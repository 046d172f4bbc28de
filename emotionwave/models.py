"""
Mood Data Models - Normalized article and aggregate structures.

Raw scale: per-article sentiment lives in [-10, 10] (the GDELT tone range).
Only aggregate scores are mapped to [-1, 1].
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


RAW_SCALE_BOUND = 10.0
UNKNOWN_SOURCE = "Unknown"
FALLBACK_PROVENANCE = "Fallback"


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp value into [lower, upper]."""
    return max(lower, min(upper, value))


class SourceStatus(Enum):
    """Health status of a mood source."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Article:
    """
    One normalized news or social item.

    sentiment: -10.0 (very negative) to +10.0 (very positive)
    """
    sentiment: float
    url: str = ""
    title: str = ""
    source: str = UNKNOWN_SOURCE
    published_at: Optional[str] = None

    def __post_init__(self) -> None:
        """Enforce raw scale bounds and a non-empty source."""
        sentiment = float(self.sentiment)
        if math.isnan(sentiment):
            sentiment = 0.0
        if not -RAW_SCALE_BOUND <= sentiment <= RAW_SCALE_BOUND:
            sentiment = clamp(sentiment, -RAW_SCALE_BOUND, RAW_SCALE_BOUND)
        object.__setattr__(self, "sentiment", sentiment)
        if not self.source or not str(self.source).strip():
            object.__setattr__(self, "source", UNKNOWN_SOURCE)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the external JSON shape."""
        return {
            "sentiment": self.sentiment,
            "url": self.url,
            "title": self.title,
            "source": self.source,
            "publishedAt": self.published_at,
        }


@dataclass(frozen=True)
class SourceSummary:
    """
    Aggregated view of one publisher or subreddit.

    raw_score stays on the raw scale and is what the global average uses.
    score is raw_score normalized for display only.
    weight is the number of articles behind raw_score, so weight <= articles.
    """
    name: str
    raw_score: float
    score: float
    articles: int
    weight: int

    def to_public_dict(self) -> dict[str, Any]:
        """Display fields only; weight and raw_score are internal."""
        return {
            "name": self.name,
            "score": self.score,
            "articles": self.articles,
        }


@dataclass(frozen=True)
class AggregateScore:
    """Output of the aggregator before provenance is attached."""
    score: float
    raw_weighted_average: float
    sources: tuple[SourceSummary, ...]
    article_count: int

    @property
    def is_empty(self) -> bool:
        return self.article_count == 0


@dataclass(frozen=True)
class SentimentData:
    """
    The world mood result.

    score: -1.0 (very negative) to +1.0 (very positive)
    timestamp: creation time in epoch seconds
    api_sources: fetchers that contributed at least one article, or
        ("Fallback",) when the value is synthetic
    """
    score: float
    timestamp: float
    sources: tuple[SourceSummary, ...] = ()
    api_sources: tuple[str, ...] = ()
    articles: Optional[tuple[Article, ...]] = None

    def __post_init__(self) -> None:
        if not -1.0 <= self.score <= 1.0:
            object.__setattr__(self, "score", clamp(self.score, -1.0, 1.0))

    @property
    def is_fallback(self) -> bool:
        """True when no live source contributed."""
        return not self.api_sources or FALLBACK_PROVENANCE in self.api_sources

    @property
    def total_articles(self) -> int:
        return sum(s.articles for s in self.sources)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the external contract. Timestamp is epoch milliseconds."""
        data: dict[str, Any] = {
            "score": self.score,
            "timestamp": int(self.timestamp * 1000),
            "sources": [s.to_public_dict() for s in self.sources],
            "apiSources": list(self.api_sources),
        }
        if self.articles is not None:
            data["articles"] = [a.to_dict() for a in self.articles]
        return data


@dataclass
class SourceHealth:
    """Health status of a mood source."""
    status: SourceStatus
    last_check: datetime
    latency_ms: Optional[float] = None
    error_count: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    consecutive_failures: int = 0
    last_article_count: int = 0

    def is_healthy(self) -> bool:
        return self.status == SourceStatus.HEALTHY

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "latency_ms": self.latency_ms,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "consecutive_failures": self.consecutive_failures,
            "last_article_count": self.last_article_count,
        }


@dataclass
class SourceMetadata:
    """Metadata about a mood source."""
    name: str
    display_name: str
    version: str = "1.0.0"
    requires_api_key: bool = False
    base_url: str = ""
    documentation_url: str = ""
    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "version": self.version,
            "requires_api_key": self.requires_api_key,
            "base_url": self.base_url,
            "tags": self.tags,
        }


@dataclass
class SourceIncident:
    """Record of a source failure during aggregation."""
    source_name: str
    incident_type: str
    timestamp: datetime
    error_message: str
    details: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_name": self.source_name,
            "incident_type": self.incident_type,
            "timestamp": self.timestamp.isoformat(),
            "error_message": self.error_message,
            "details": self.details,
        }
