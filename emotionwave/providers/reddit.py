"""
Reddit Mood Source - Social link aggregator.

Reads the hot listing of a handful of news-oriented subreddits.
Posts carry no sentiment, so title + selftext is keyword scored, and
popular posts get a bounded boost so they weigh more than obscure ones.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Optional

import aiohttp

from ..base import BaseMoodSource
from ..config import FetchConfig, RedditConfig
from ..dates import DateRange
from ..exceptions import MoodSourceError, ParseError
from ..fields import FieldRule, first_present, number_rules, text_rules
from ..models import Article, SourceMetadata, clamp
from ..retry import RetryPolicy
from ..scoring import TextScorer


logger = logging.getLogger(__name__)


ENGAGEMENT_RULES = number_rules("ups", "score")
TITLE_RULES = text_rules("title")
PERMALINK_RULES = text_rules("permalink")
CREATED_RULES = (FieldRule("created_utc", float),)


def popularity_weight(engagement: float) -> float:
    """log10(max(1, engagement) + 1): 1 upvote -> 0.30, 1000 -> 3.0."""
    return math.log10(max(1.0, engagement) + 1)


def engagement_boost(
    engagement: float,
    max_boost: float = 0.2,
    ceiling: float = 5.0,
) -> float:
    """Multiplier in [1, 1 + max_boost], proportional to popularity up to ceiling."""
    share = min(1.0, popularity_weight(engagement) / ceiling)
    return 1.0 + max_boost * share


class RedditSource(BaseMoodSource):
    """
    Reddit hot posts across configured subreddits.

    A failing subreddit is skipped; the source only fails when every
    subreddit fails. Only the max_posts most-upvoted posts are kept.
    """

    def __init__(
        self,
        config: Optional[RedditConfig] = None,
        fetch_config: Optional[FetchConfig] = None,
        text_scorer: Optional[TextScorer] = None,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(fetch_config, text_scorer, retry_policy, session)
        self.config = config or RedditConfig()

    @property
    def metadata(self) -> SourceMetadata:
        return SourceMetadata(
            name="reddit",
            display_name="Reddit",
            requires_api_key=False,
            base_url=self.config.base_url,
            documentation_url="https://www.reddit.com/dev/api/",
            tags=["social", "engagement"],
        )

    @property
    def enabled(self) -> bool:
        return self.config.enabled and bool(self.config.subreddits)

    def listing_url(self, subreddit: str) -> str:
        return f"{self.config.base_url}/r/{subreddit}/hot.json"

    async def _fetch_articles(self, date_range: DateRange) -> list[Article]:
        # Hot listings have no date filter; date_range is unused here
        scored: list[tuple[float, Article]] = []
        last_error: Optional[MoodSourceError] = None
        failed = 0

        for subreddit in self.config.subreddits:
            try:
                posts = await self._fetch_subreddit(subreddit)
            except MoodSourceError as e:
                logger.warning(f"[{self.name}] r/{subreddit} failed: {e}")
                last_error = e
                failed += 1
                continue

            for post in posts:
                scored.append(await self._to_article(post, subreddit))

        if last_error is not None and failed == len(self.config.subreddits):
            raise last_error

        # Most engaged first; sorted() is stable so ties keep listing order
        ranked = sorted(scored, key=lambda item: item[0], reverse=True)
        return [article for _, article in ranked[:self.config.max_posts]]

    async def _fetch_subreddit(self, subreddit: str) -> list[dict[str, Any]]:
        payload = await self._get_json(
            self.listing_url(subreddit),
            {"limit": str(self.config.posts_per_subreddit)},
        )
        try:
            children = payload["data"]["children"]
        except (KeyError, TypeError):
            # Listing shape missing: fall through to the generic checks
            return self.extract_records(payload)

        if not isinstance(children, list):
            raise ParseError(
                f"Unexpected listing format for r/{subreddit}",
                source_name=self.name,
                raw_data=str(payload)[:500],
            )
        return [
            child["data"] for child in children
            if isinstance(child, dict) and isinstance(child.get("data"), dict)
        ]

    async def _to_article(
        self,
        post: dict[str, Any],
        subreddit: str,
    ) -> tuple[float, Article]:
        title = first_present(post, TITLE_RULES).or_default("")
        text = f"{title} {post.get('selftext') or ''}"
        engagement = first_present(post, ENGAGEMENT_RULES).or_default(0.0)

        sentiment = self.keyword_scorer.score(text)
        sentiment *= engagement_boost(
            engagement,
            self.config.max_boost,
            self.config.popularity_ceiling,
        )

        permalink = first_present(post, PERMALINK_RULES).or_default("")
        created = first_present(post, CREATED_RULES)
        published_at = None
        if created.found:
            try:
                published_at = datetime.fromtimestamp(created.value, tz=timezone.utc).isoformat()
            except (OverflowError, OSError, ValueError):
                published_at = None

        article = Article(
            sentiment=clamp(sentiment, -10.0, 10.0),
            url=f"https://reddit.com{permalink}" if permalink else "",
            title=title,
            source=f"Reddit: r/{subreddit}",
            published_at=published_at,
        )
        return engagement, article
