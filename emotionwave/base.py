"""
Base Mood Source - Abstract interface for all upstream news/social adapters.

Every source turns one upstream API into a list of Articles:
- each HTTP call is bounded by a timeout and cancelled when it expires
- transient failures are retried through a RetryPolicy
- response shapes are checked, error payloads raise instead of
  masquerading as "no news today"
- fetch() raises on failure; isolation is the aggregation service's job
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

import aiohttp

from .config import FetchConfig
from .dates import DateRange
from .exceptions import (
    FetchError,
    MoodSourceError,
    ParseError,
    RateLimitError,
    RequestTimeoutError,
    UpstreamError,
)
from .fields import SENTIMENT_RULES, FieldRule, first_present
from .models import Article, SourceHealth, SourceMetadata, SourceStatus
from .retry import RetryPolicy
from .scoring import KeywordSentimentScorer, TextScorer


logger = logging.getLogger(__name__)


# Substrings that mark a plain-text error body (GDELT answers 200 with these)
ERROR_MARKERS: tuple[str, ...] = (
    "error",
    "invalid",
    "one or more",
    "too short",
    "too long",
    "too common",
    "queries co",
)

# Object keys that may carry the record list
RECORD_LIST_KEYS: tuple[str, ...] = ("articles", "results", "docs")


def looks_like_error_text(body: str) -> bool:
    lowered = body.lower()
    return any(marker in lowered for marker in ERROR_MARKERS)


class BaseMoodSource(ABC):
    """
    Abstract base class for mood sources.

    Subclasses implement:
    - metadata - Source metadata property
    - _fetch_articles() - Query the upstream and build Articles
    """

    DEFAULT_TIMEOUT = 8.0
    DEGRADED_THRESHOLD = 1  # consecutive failures before degraded
    UNAVAILABLE_THRESHOLD = 3  # consecutive failures before unavailable

    # Native sentiment of exactly zero usually means "not computed"
    NATIVE_ZERO_IS_MISSING = True

    def __init__(
        self,
        fetch_config: Optional[FetchConfig] = None,
        text_scorer: Optional[TextScorer] = None,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.fetch_config = fetch_config or FetchConfig()
        self.timeout = self.fetch_config.timeout_seconds or self.DEFAULT_TIMEOUT
        self.keyword_scorer = KeywordSentimentScorer()
        self.text_scorer: TextScorer = text_scorer or self.keyword_scorer
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.fetch_config)
        self._session = session
        self._owns_session = session is None

        # Health tracking
        self._health = SourceHealth(
            status=SourceStatus.UNKNOWN,
            last_check=datetime.utcnow(),
        )

        # Statistics
        self._stats = {
            "total_requests": 0,
            "http_calls": 0,
            "successful_fetches": 0,
            "errors": 0,
            "articles": 0,
        }

    @property
    @abstractmethod
    def metadata(self) -> SourceMetadata:
        """Return source metadata."""
        pass

    @abstractmethod
    async def _fetch_articles(self, date_range: DateRange) -> list[Article]:
        """
        Query the upstream and normalize its records.

        Must be implemented by subclasses.
        Should raise MoodSourceError subclasses on failure.
        """
        pass

    # ─────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def display_name(self) -> str:
        return self.metadata.display_name

    @property
    def enabled(self) -> bool:
        """Sources without required credentials report False and are skipped."""
        return True

    async def fetch(self, date_range: DateRange) -> list[Article]:
        """
        Fetch normalized articles for the window.

        Raises on failure; an empty list is a legitimate "no results".
        """
        self._stats["total_requests"] += 1
        start_time = time.monotonic()

        try:
            articles = await self._fetch_articles(date_range)
        except Exception as e:
            self._on_error(e)
            raise

        self._on_success(articles, (time.monotonic() - start_time) * 1000)
        return articles

    def get_health(self) -> SourceHealth:
        """Get current health status."""
        self._health.last_check = datetime.utcnow()
        return self._health

    def get_stats(self) -> dict[str, Any]:
        """Get source statistics."""
        total = self._stats["total_requests"]
        error_rate = self._stats["errors"] / total * 100 if total > 0 else 0
        return {
            **self._stats,
            "error_rate_pct": round(error_rate, 2),
            "source_name": self.name,
        }

    async def close(self) -> None:
        """Close the HTTP session if this source created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    # ─────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self._get_default_headers())
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": self.fetch_config.user_agent,
        }

    async def _get_text(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> str:
        """
        One GET request bounded by the source timeout.

        Returns the body text of a 2xx response.
        """
        self._stats["http_calls"] += 1
        try:
            return await asyncio.wait_for(
                self._request_text(url, params, headers),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise RequestTimeoutError(
                f"Request timed out after {self.timeout}s",
                source_name=self.name,
                timeout_seconds=self.timeout,
                url=url,
            )

    async def _request_text(
        self,
        url: str,
        params: Optional[dict[str, Any]],
        headers: Optional[dict[str, str]],
    ) -> str:
        session = await self._get_session()
        try:
            async with session.get(url, params=params, headers=headers) as response:
                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise RateLimitError(
                        f"{self.display_name} rate limit exceeded",
                        source_name=self.name,
                        retry_after_seconds=int(retry_after) if retry_after and retry_after.isdigit() else None,
                        url=url,
                    )

                body = await response.text()
                if response.status >= 400:
                    raise FetchError(
                        f"{self.display_name} API error: HTTP {response.status}",
                        source_name=self.name,
                        status_code=response.status,
                        url=url,
                        details={"response": body[:500]},
                    )
                return body

        except aiohttp.ClientError as e:
            raise FetchError(
                f"Network error: {e}",
                source_name=self.name,
                url=url,
            )

    async def _get_json(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """GET and parse, with retries for transient failures."""
        async def attempt() -> Any:
            body = await self._get_text(url, params, headers)
            return self.parse_payload(body)

        return await self.retry_policy.run(attempt, description=f"[{self.name}] GET {url}")

    # ─────────────────────────────────────────────────────────────
    # Payload handling
    # ─────────────────────────────────────────────────────────────

    def parse_payload(self, body: str) -> Any:
        """
        Parse a response body.

        Plain-text bodies carrying error wording raise UpstreamError
        before any JSON parsing is attempted.
        """
        stripped = body.strip()
        if not stripped:
            raise ParseError("Empty response body", source_name=self.name)

        if stripped[0] not in "[{" and looks_like_error_text(stripped):
            raise UpstreamError(
                f"{self.display_name} API error: {stripped[:200]}",
                source_name=self.name,
                raw_data=stripped,
            )

        try:
            return json.loads(stripped)
        except ValueError:
            raise ParseError(
                f"Invalid JSON response from {self.display_name}",
                source_name=self.name,
                raw_data=stripped,
            )

    def extract_records(self, payload: Any) -> list[dict[str, Any]]:
        """
        Find the record list in a payload.

        Accepts a top-level list or an object with an articles/results/docs
        list. An explicitly empty list is a legitimate empty result.
        Error objects and unknown shapes raise.
        """
        if isinstance(payload, list):
            records = payload
        elif isinstance(payload, dict):
            records = None
            for key in RECORD_LIST_KEYS:
                if isinstance(payload.get(key), list):
                    records = payload[key]
                    break

            if records is None:
                if payload.get("error") or payload.get("message"):
                    message = payload.get("error") or payload.get("message")
                    raise UpstreamError(
                        f"{self.display_name} returned error: {str(message)[:200]}",
                        source_name=self.name,
                        raw_data=json.dumps(payload)[:500],
                    )
                raise ParseError(
                    f"{self.display_name} returned unexpected format",
                    source_name=self.name,
                    raw_data=json.dumps(payload)[:500],
                    details={"keys": sorted(payload.keys())},
                )
        else:
            raise UpstreamError(
                f"{self.display_name} returned unexpected payload: {str(payload)[:200]}",
                source_name=self.name,
                raw_data=str(payload),
            )

        return [r for r in records if isinstance(r, dict)]

    # ─────────────────────────────────────────────────────────────
    # Record mapping helpers
    # ─────────────────────────────────────────────────────────────

    def native_sentiment(
        self,
        record: dict[str, Any],
        rules: tuple[FieldRule, ...] = SENTIMENT_RULES,
    ) -> Optional[float]:
        """Native sentiment if present and usable, else None."""
        extracted = first_present(record, rules)
        if not extracted.found:
            return None
        if extracted.value == 0 and self.NATIVE_ZERO_IS_MISSING:
            return None
        return extracted.value

    async def resolve_sentiment(
        self,
        record: dict[str, Any],
        text: str,
        scorer: Optional[TextScorer] = None,
    ) -> float:
        """Prefer native sentiment, else score the text."""
        native = self.native_sentiment(record)
        if native is not None:
            return native
        return await (scorer or self.text_scorer).score_text(text)

    # ─────────────────────────────────────────────────────────────
    # Health
    # ─────────────────────────────────────────────────────────────

    def _on_success(self, articles: list[Article], latency_ms: float) -> None:
        self._stats["successful_fetches"] += 1
        self._stats["articles"] += len(articles)
        self._health.status = SourceStatus.HEALTHY
        self._health.latency_ms = latency_ms
        self._health.consecutive_failures = 0
        self._health.last_article_count = len(articles)

    def _on_error(self, error: Exception) -> None:
        self._stats["errors"] += 1
        self._health.error_count += 1
        self._health.consecutive_failures += 1
        self._health.last_error = str(error)
        self._health.last_error_time = datetime.utcnow()
        self._health.last_article_count = 0

        if isinstance(error, RateLimitError):
            self._health.status = SourceStatus.RATE_LIMITED
        elif self._health.consecutive_failures >= self.UNAVAILABLE_THRESHOLD:
            self._health.status = SourceStatus.UNAVAILABLE
        elif self._health.consecutive_failures >= self.DEGRADED_THRESHOLD:
            self._health.status = SourceStatus.DEGRADED

        if isinstance(error, MoodSourceError):
            logger.warning(f"[{self.name}] Fetch failed: {error}")
        else:
            logger.error(f"[{self.name}] Unexpected error: {error}")
