"""
GDELT Mood Source - Global news index (primary source).

GDELT doc API, artlist mode:
- No API key required
- Date window via startdatetime/enddatetime (YYYYMMDDHHMMSS)
- Tone is not always present in artlist records; missing tone falls
  back to keyword scoring of the title
- Query syntax errors come back as HTTP 200 plain text
"""

import logging
from typing import Any, Optional

import aiohttp

from ..base import BaseMoodSource
from ..config import FetchConfig, GdeltConfig
from ..dates import DateRange
from ..exceptions import MoodSourceError, RequestTimeoutError
from ..fields import first_present, text_rules
from ..models import UNKNOWN_SOURCE, Article, SourceMetadata
from ..retry import RetryPolicy
from ..scoring import TextScorer


logger = logging.getLogger(__name__)


URL_RULES = text_rules("url", "shareurl", "url_mobile")
TITLE_RULES = text_rules("title", "seo")
SOURCE_RULES = text_rules("source", "domain", "sourcecountry")
PUBLISHED_RULES = text_rules("publishedAt", "seendate", "date")


class GdeltSource(BaseMoodSource):
    """
    GDELT global news index.

    Primary query: focused topic filter over the last 24 hours.
    If it fails for any reason other than a timeout, one attempt is made
    with a looser query and no date window, without a retry budget.
    """

    def __init__(
        self,
        config: Optional[GdeltConfig] = None,
        fetch_config: Optional[FetchConfig] = None,
        text_scorer: Optional[TextScorer] = None,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(fetch_config, text_scorer, retry_policy, session)
        self.config = config or GdeltConfig()

    @property
    def metadata(self) -> SourceMetadata:
        return SourceMetadata(
            name="gdelt",
            display_name="GDELT",
            requires_api_key=False,
            base_url=self.config.base_url,
            documentation_url="https://blog.gdeltproject.org/gdelt-doc-2-0-api-debuts/",
            tags=["news", "global", "tone"],
        )

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def build_params(self, date_range: Optional[DateRange]) -> dict[str, str]:
        """Query parameters; no date_range means the simple query."""
        if date_range is None:
            return {
                "query": self.config.simple_query,
                "mode": "artlist",
                "format": "json",
                "maxrecords": str(self.config.simple_max_records),
                "sort": self.config.sort,
            }
        return {
            "query": self.config.query,
            "mode": "artlist",
            "format": "json",
            "maxrecords": str(self.config.max_records),
            "sort": self.config.sort,
            "startdatetime": date_range.start,
            "enddatetime": date_range.end,
        }

    async def _fetch_articles(self, date_range: DateRange) -> list[Article]:
        try:
            payload = await self._get_json(self.config.base_url, self.build_params(date_range))
            records = self.extract_records(payload)
        except RequestTimeoutError:
            raise
        except MoodSourceError as primary_error:
            logger.info(
                f"[{self.name}] Primary query failed ({primary_error}), "
                f"retrying with simpler query (no date range)"
            )
            try:
                body = await self._get_text(self.config.base_url, self.build_params(None))
                records = self.extract_records(self.parse_payload(body))
            except MoodSourceError as simple_error:
                logger.warning(f"[{self.name}] Simple query also failed: {simple_error}")
                raise primary_error
            logger.info(f"[{self.name}] Simple query succeeded")

        articles = [await self._to_article(record) for record in records]

        if articles and all(a.sentiment == 0 for a in articles):
            logger.warning(f"[{self.name}] All {len(articles)} articles scored 0")
        logger.debug(f"[{self.name}] {len(articles)} articles")
        return articles

    async def _to_article(self, record: dict[str, Any]) -> Article:
        title = first_present(record, TITLE_RULES).or_default("")
        text = " ".join(
            str(record.get(key) or "") for key in ("title", "seo", "description")
        ).strip()

        return Article(
            sentiment=await self.resolve_sentiment(record, text),
            url=first_present(record, URL_RULES).or_default(""),
            title=title,
            source=first_present(record, SOURCE_RULES).or_default(UNKNOWN_SOURCE),
            published_at=first_present(record, PUBLISHED_RULES).or_default(None),
        )
