"""
EmotionWave Configuration - Tunables and API credentials.

All tunables are named constants with environment overrides.
API keys are loaded from environment variables (or a .env file).
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

from dotenv import load_dotenv


logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={value!r}, using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={value!r}, using {default}")
        return default


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = os.getenv(name)
    if not value:
        return default
    items = tuple(item.strip() for item in value.split(",") if item.strip())
    return items or default


# =============================================================
# AGGREGATION
# =============================================================


@dataclass
class AggregationConfig:
    """
    Scoring constants.

    normalization_divisor: smaller values map raw averages to the
        extremes faster. Historical values were 10 and 3.
    exclude_zero_sentiment: treat exact-zero articles as missing data
        when averaging a source.
    """
    raw_bound: float = 10.0
    normalization_divisor: float = 3.0
    exclude_zero_sentiment: bool = True
    max_display_articles: int = 50

    def __post_init__(self) -> None:
        if self.normalization_divisor <= 0:
            raise ValueError("normalization_divisor must be > 0")
        if self.raw_bound <= 0:
            raise ValueError("raw_bound must be > 0")


@dataclass
class CacheConfig:
    """Single-slot result cache."""
    ttl_seconds: float = 30.0
    cache_fallback: bool = True


@dataclass
class FetchConfig:
    """Per-request timeout and retry budget shared by all sources."""
    timeout_seconds: float = 8.0
    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    user_agent: str = "EmotionWave/1.0"

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")


# =============================================================
# SOURCES
# =============================================================


@dataclass
class GdeltConfig:
    """GDELT doc API query options."""
    enabled: bool = True
    base_url: str = "https://api.gdeltproject.org/api/v2/doc/doc"
    query: str = (
        "(politics OR technology OR society OR economy OR climate OR health "
        "OR world OR international) NOT (sport OR entertainment OR celebrity "
        "OR gossip OR fashion)"
    )
    max_records: int = 30
    sort: str = "hybridrel"
    simple_query: str = "politics OR technology OR world"
    simple_max_records: int = 30


@dataclass
class NewsApiConfig:
    """NewsAPI 'everything' endpoint options."""
    api_key: Optional[str] = None
    base_url: str = "https://newsapi.org/v2/everything"
    languages: tuple[str, ...] = ("en", "da")
    query: str = (
        "(politics OR technology OR society OR economy OR climate OR health) "
        "NOT (sport OR entertainment OR celebrity)"
    )
    page_size: int = 15
    sort_by: str = "relevancy"
    classifier_sample_size: int = 10

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


@dataclass
class RedditConfig:
    """Reddit hot listing options."""
    enabled: bool = True
    base_url: str = "https://www.reddit.com"
    subreddits: tuple[str, ...] = (
        "worldnews", "news", "technology", "science", "environment",
    )
    posts_per_subreddit: int = 10
    max_posts: int = 20
    max_boost: float = 0.2
    popularity_ceiling: float = 5.0


@dataclass
class ClassifierConfig:
    """Optional external text classifier (HuggingFace inference API)."""
    api_key: Optional[str] = None
    endpoints: tuple[str, ...] = (
        "https://api-inference.huggingface.co/models/cardiffnlp/twitter-roberta-base-sentiment-latest",
        "https://api-inference.huggingface.co/models/cardiffnlp/twitter-roberta-base-sentiment",
        "https://router.huggingface.co/models/cardiffnlp/twitter-roberta-base-sentiment-latest",
        "https://api-inference.huggingface.co/models/distilbert-base-uncased-finetuned-sst-2-english",
    )
    timeout_seconds: float = 3.0
    max_input_chars: int = 500
    cache_size: int = 1000
    loading_wait_seconds: float = 2.0

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


# =============================================================
# MAIN CONFIGURATION
# =============================================================


@dataclass
class MoodConfig:
    """Combined configuration for the aggregation pipeline."""
    aggregation: AggregationConfig = field(default_factory=AggregationConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    gdelt: GdeltConfig = field(default_factory=GdeltConfig)
    newsapi: NewsApiConfig = field(default_factory=NewsApiConfig)
    reddit: RedditConfig = field(default_factory=RedditConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "MoodConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - NEWS_API_KEY
        - HUGGINGFACE_API_KEY
        - MOOD_NORMALIZATION_DIVISOR
        - MOOD_EXCLUDE_ZERO_SENTIMENT
        - MOOD_CACHE_SECONDS
        - MOOD_REQUEST_TIMEOUT
        - MOOD_RETRY_ATTEMPTS
        - MOOD_RETRY_BASE_DELAY
        - MOOD_GDELT_ENABLED
        - MOOD_REDDIT_ENABLED
        - MOOD_REDDIT_SUBREDDITS (comma separated)
        - MOOD_NEWSAPI_LANGUAGES (comma separated)
        """
        if dotenv:
            load_dotenv()

        config = cls(
            aggregation=AggregationConfig(
                normalization_divisor=_env_float("MOOD_NORMALIZATION_DIVISOR", 3.0),
                exclude_zero_sentiment=_env_bool("MOOD_EXCLUDE_ZERO_SENTIMENT", True),
            ),
            cache=CacheConfig(
                ttl_seconds=_env_float("MOOD_CACHE_SECONDS", 30.0),
            ),
            fetch=FetchConfig(
                timeout_seconds=_env_float("MOOD_REQUEST_TIMEOUT", 8.0),
                max_attempts=_env_int("MOOD_RETRY_ATTEMPTS", 3),
                base_delay_seconds=_env_float("MOOD_RETRY_BASE_DELAY", 1.0),
            ),
            gdelt=GdeltConfig(
                enabled=_env_bool("MOOD_GDELT_ENABLED", True),
            ),
            newsapi=NewsApiConfig(
                api_key=os.getenv("NEWS_API_KEY") or None,
                languages=_env_list("MOOD_NEWSAPI_LANGUAGES", ("en", "da")),
            ),
            reddit=RedditConfig(
                enabled=_env_bool("MOOD_REDDIT_ENABLED", True),
                subreddits=_env_list("MOOD_REDDIT_SUBREDDITS", RedditConfig.subreddits),
            ),
            classifier=ClassifierConfig(
                api_key=os.getenv("HUGGINGFACE_API_KEY") or None,
            ),
        )

        # Log key availability without exposing the keys
        logger.info(f"API keys status: {config.key_status()}")
        return config

    def key_status(self) -> dict[str, Any]:
        """Presence and length of configured API keys."""
        news_key = self.newsapi.api_key
        hf_key = self.classifier.api_key
        return {
            "has_news_api_key": bool(news_key),
            "has_huggingface_key": bool(hf_key),
            "news_api_key_length": len(news_key) if news_key else 0,
            "huggingface_key_length": len(hf_key) if hf_key else 0,
        }


@dataclass
class ServerConfig:
    """HTTP runner settings."""
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False
    log_level: str = "info"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        load_dotenv()
        return cls(
            host=os.getenv("MOOD_HOST", "0.0.0.0"),
            port=_env_int("MOOD_PORT", _env_int("PORT", 8000)),
            reload=os.getenv("ENVIRONMENT", "production") == "development",
            log_level=os.getenv("LOG_LEVEL", "info").lower(),
        )
