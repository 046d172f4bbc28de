"""
NewsAPI Mood Source - Keyword news search (secondary source).

NewsAPI provides:
- 'everything' search with from/to date filters (date only)
- One language per call, so English and Danish are separate requests
- No sentiment field: every article is scored from title + description
- Requires an API key; without one the source is disabled
"""

import logging
from typing import Any, Optional

import aiohttp

from ..base import BaseMoodSource
from ..config import FetchConfig, NewsApiConfig
from ..dates import DateRange
from ..exceptions import MoodSourceError, UpstreamError
from ..fields import first_present, text_rules
from ..models import UNKNOWN_SOURCE, Article, SourceMetadata
from ..retry import RetryPolicy
from ..scoring import TextScorer


logger = logging.getLogger(__name__)


URL_RULES = text_rules("url")
TITLE_RULES = text_rules("title")
SOURCE_RULES = text_rules("source.name", "source.id", "author")
PUBLISHED_RULES = text_rules("publishedAt")


class NewsApiSource(BaseMoodSource):
    """
    NewsAPI 'everything' endpoint.

    The first classifier_sample_size articles of each language are scored
    with the configured text scorer (which may call the external
    classifier); the rest use the keyword scorer to keep latency bounded.
    """

    def __init__(
        self,
        config: Optional[NewsApiConfig] = None,
        fetch_config: Optional[FetchConfig] = None,
        text_scorer: Optional[TextScorer] = None,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(fetch_config, text_scorer, retry_policy, session)
        self.config = config or NewsApiConfig()

    @property
    def metadata(self) -> SourceMetadata:
        return SourceMetadata(
            name="newsapi",
            display_name="NewsAPI",
            requires_api_key=True,
            base_url=self.config.base_url,
            documentation_url="https://newsapi.org/docs/endpoints/everything",
            tags=["news", "search"],
        )

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def build_params(self, date_range: DateRange, language: str) -> dict[str, str]:
        return {
            "q": self.config.query,
            "language": language,
            "from": date_range.start_date,
            "to": date_range.end_date,
            "sortBy": self.config.sort_by,
            "pageSize": str(self.config.page_size),
            "apiKey": self.config.api_key or "",
        }

    async def _fetch_articles(self, date_range: DateRange) -> list[Article]:
        if not self.enabled:
            logger.debug(f"[{self.name}] No API key configured, skipping")
            return []

        articles: list[Article] = []
        last_error: Optional[MoodSourceError] = None
        failed = 0

        for language in self.config.languages:
            try:
                records = await self._fetch_language(date_range, language)
            except MoodSourceError as e:
                # Other languages may still succeed
                logger.warning(f"[{self.name}] Fetch failed for language {language}: {e}")
                last_error = e
                failed += 1
                continue

            articles.extend(await self._to_articles(records))

        if last_error is not None and failed == len(self.config.languages):
            raise last_error
        return articles

    async def _fetch_language(
        self,
        date_range: DateRange,
        language: str,
    ) -> list[dict[str, Any]]:
        payload = await self._get_json(
            self.config.base_url,
            self.build_params(date_range, language),
        )
        if isinstance(payload, dict) and payload.get("status") == "error":
            raise UpstreamError(
                f"NewsAPI error {payload.get('code', '')}: {payload.get('message', '')}",
                source_name=self.name,
                raw_data=str(payload),
            )
        return self.extract_records(payload)

    async def _to_articles(self, records: list[dict[str, Any]]) -> list[Article]:
        articles: list[Article] = []
        sample_size = self.config.classifier_sample_size

        for index, record in enumerate(records):
            title = first_present(record, TITLE_RULES).or_default("")
            text = f"{title} {record.get('description') or ''}".strip()
            if not text:
                continue

            scorer = self.text_scorer if index < sample_size else self.keyword_scorer
            articles.append(Article(
                sentiment=await self.resolve_sentiment(record, text, scorer),
                url=first_present(record, URL_RULES).or_default(""),
                title=title,
                source=first_present(record, SOURCE_RULES).or_default(UNKNOWN_SOURCE),
                published_at=first_present(record, PUBLISHED_RULES).or_default(None),
            ))

        return articles
