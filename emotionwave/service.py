"""
Aggregation Service - Public entry point for the current world mood.

The service:
1. Serves the cached result while it is fresh
2. Otherwise fetches every source concurrently, each one isolated
3. Aggregates the articles, caches and returns the result
4. Falls back to a synthetic time-based mood when nothing usable arrives

No exception crosses handle(): the caller always gets a SentimentData.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable, Optional

from .base import BaseMoodSource
from .cache import ResultCache
from .config import MoodConfig
from .dates import DateRangeProvider
from .fallback import FallbackGenerator
from .models import Article, SentimentData, SourceIncident
from .pipeline import SentimentAggregator, summarize
from .providers import GdeltSource, NewsApiSource, RedditSource
from .retry import RetryPolicy
from .scoring import build_text_scorer


logger = logging.getLogger(__name__)


class AggregationService:
    """
    Orchestrates sources, aggregation, caching and fallback.

    Usage:
        service = build_service(MoodConfig.from_env())
        mood = await service.handle()
        print(mood.score, mood.api_sources)
    """

    MAX_INCIDENTS = 100

    def __init__(
        self,
        sources: list[BaseMoodSource],
        aggregator: Optional[SentimentAggregator] = None,
        cache: Optional[ResultCache] = None,
        fallback: Optional[FallbackGenerator] = None,
        date_provider: Optional[DateRangeProvider] = None,
        config: Optional[MoodConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or MoodConfig()
        self.sources = list(sources)
        self.aggregator = aggregator or SentimentAggregator.from_config(self.config.aggregation)
        self.cache = cache or ResultCache(self.config.cache.ttl_seconds, clock=clock)
        self.fallback = fallback or FallbackGenerator()
        self.date_provider = date_provider or DateRangeProvider()
        self._clock = clock
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None
        self._incidents: list[SourceIncident] = []

        # Statistics
        self._stats = {
            "total_requests": 0,
            "cache_hits": 0,
            "aggregations": 0,
            "fallbacks_no_data": 0,
            "fallbacks_error": 0,
        }

    async def handle(self) -> SentimentData:
        """
        Get the current mood.

        NEVER raises - unexpected errors degrade to (uncached) fallback data.
        """
        self._stats["total_requests"] += 1

        cached = self.cache.get()
        if cached is not None:
            self._stats["cache_hits"] += 1
            logger.debug(
                f"Returning cached sentiment: score={cached.score:.3f} "
                f"apiSources={list(cached.api_sources)}"
            )
            return cached

        try:
            async with self._get_lock():
                # Another caller may have refreshed while we waited
                cached = self.cache.get()
                if cached is not None:
                    self._stats["cache_hits"] += 1
                    return cached
                return await self._refresh()
        except Exception as e:
            logger.exception(f"Error aggregating sentiment data: {e}")
            self._stats["fallbacks_error"] += 1
            fallback = self.fallback.generate()
            logger.info(f"Returning fallback data: score={fallback.score:.3f}")
            return fallback

    get_current_sentiment = handle

    def _get_lock(self) -> asyncio.Lock:
        """Refresh lock, created inside the running loop that first needs it."""
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def _refresh(self) -> SentimentData:
        logger.info("Starting sentiment aggregation from multiple sources...")
        articles, api_sources = await self.collect_articles()

        if not articles:
            logger.warning("No articles from any source, using fallback")
            self._stats["fallbacks_no_data"] += 1
            result = self.fallback.generate()
            if self.config.cache.cache_fallback:
                self.cache.set(result)
            return result

        result = self.build_result(articles, api_sources)
        self.cache.set(result)
        self._stats["aggregations"] += 1

        logger.info(
            f"Aggregated sentiment: {result.score:.3f} from {', '.join(api_sources)} "
            f"({len(articles)} total articles, {len(result.sources)} sources)"
        )
        return result

    async def collect_articles(self) -> tuple[list[Article], list[str]]:
        """
        Fetch all enabled sources concurrently.

        Returns the combined articles and the display names of sources that
        contributed at least one, in source registration order.
        """
        date_range = self.date_provider.now()
        active = [s for s in self.sources if s.enabled]
        results = await asyncio.gather(
            *(self._fetch_isolated(source, date_range) for source in active)
        )

        articles: list[Article] = []
        api_sources: list[str] = []
        for source, fetched in zip(active, results):
            if fetched:
                articles.extend(fetched)
                api_sources.append(source.display_name)
                logger.info(f"{source.display_name}: {len(fetched)} articles")

        if articles:
            logger.debug(f"Sentiment distribution: {summarize(articles)}")
        return articles, api_sources

    async def _fetch_isolated(self, source: BaseMoodSource, date_range: Any) -> list[Article]:
        """One source's failure must not affect the others."""
        try:
            return await source.fetch(date_range)
        except Exception as e:
            logger.warning(f"{source.display_name} fetch failed: {e}")
            self._record_incident(source.name, type(e).__name__, str(e))
            return []

    def build_result(self, articles: list[Article], api_sources: list[str]) -> SentimentData:
        aggregate = self.aggregator.aggregate(articles)
        limit = self.config.aggregation.max_display_articles
        with_titles = [a for a in articles if a.title and a.title.strip()]

        return SentimentData(
            score=aggregate.score,
            timestamp=self._clock(),
            sources=aggregate.sources,
            api_sources=tuple(api_sources),
            articles=tuple(with_titles[:limit]),
        )

    # ─────────────────────────────────────────────────────────────
    # Introspection
    # ─────────────────────────────────────────────────────────────

    def _record_incident(self, source_name: str, incident_type: str, message: str) -> None:
        self._incidents.append(SourceIncident(
            source_name=source_name,
            incident_type=incident_type,
            timestamp=datetime.utcnow(),
            error_message=message,
        ))
        if len(self._incidents) > self.MAX_INCIDENTS:
            self._incidents = self._incidents[-self.MAX_INCIDENTS:]

    def get_incidents(self, limit: int = 20) -> list[dict[str, Any]]:
        return [i.to_dict() for i in self._incidents[-limit:]]

    def get_health(self) -> dict[str, Any]:
        return {
            source.name: {
                "enabled": source.enabled,
                **source.get_health().to_dict(),
            }
            for source in self.sources
        }

    def get_stats(self) -> dict[str, Any]:
        return {
            **self._stats,
            "cache_age_seconds": self.cache.age(),
            "registered_sources": [s.name for s in self.sources],
            "source_stats": {s.name: s.get_stats() for s in self.sources},
            "recent_incidents": len(self._incidents),
        }

    async def close(self) -> None:
        """Close all source sessions and the classifier, if any."""
        closed: set[int] = set()
        for source in self.sources:
            await source.close()
            scorer = source.text_scorer
            if id(scorer) not in closed and hasattr(scorer, "close"):
                closed.add(id(scorer))
                await scorer.close()


# ─────────────────────────────────────────────────────────────
# Factories and process-wide instances
# ─────────────────────────────────────────────────────────────


def build_service(config: Optional[MoodConfig] = None) -> AggregationService:
    """Service over GDELT, NewsAPI and Reddit."""
    config = config or MoodConfig.from_env()
    text_scorer = build_text_scorer(config)
    retry = RetryPolicy.from_config(config.fetch)

    sources: list[BaseMoodSource] = [
        GdeltSource(config.gdelt, config.fetch, text_scorer, retry),
        NewsApiSource(config.newsapi, config.fetch, text_scorer, retry),
        RedditSource(config.reddit, config.fetch, text_scorer, retry),
    ]
    return AggregationService(sources, config=config)


def build_social_service(config: Optional[MoodConfig] = None) -> AggregationService:
    """Reddit-only service for the social mood endpoint."""
    config = config or MoodConfig.from_env()
    retry = RetryPolicy.from_config(config.fetch)
    return AggregationService(
        [RedditSource(config.reddit, config.fetch, retry_policy=retry)],
        config=config,
    )


_default_service: Optional[AggregationService] = None
_social_service: Optional[AggregationService] = None


def get_service() -> AggregationService:
    """Get the process-wide aggregation service."""
    global _default_service
    if _default_service is None:
        _default_service = build_service()
    return _default_service


def get_social_service() -> AggregationService:
    """Get the process-wide Reddit-only service."""
    global _social_service
    if _social_service is None:
        _social_service = build_social_service()
    return _social_service


async def shutdown_services() -> None:
    """Close and forget the process-wide services."""
    global _default_service, _social_service
    for service in (_default_service, _social_service):
        if service is not None:
            await service.close()
    _default_service = None
    _social_service = None


async def get_current_sentiment() -> SentimentData:
    """Convenience function to get the mood from the default service."""
    return await get_service().handle()
