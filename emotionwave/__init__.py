"""
EmotionWave - Real-time world mood from news and social sources.

Usage:
    from emotionwave import get_current_sentiment

    mood = await get_current_sentiment()
    print(mood.score, mood.api_sources)

Components:
- providers: GDELT, NewsAPI and Reddit fetchers
- scoring: keyword heuristic, optional external classifier, normalization
- pipeline: intensity-weighted aggregation
- service: cache, concurrency, fallback and the public entry point
"""

__version__ = "1.0.0"

from .cache import ResultCache
from .config import MoodConfig, ServerConfig
from .exceptions import (
    AuthenticationError,
    ClassifierError,
    FetchError,
    MoodSourceError,
    ParseError,
    RateLimitError,
    RequestTimeoutError,
    UpstreamError,
)
from .fallback import FallbackGenerator
from .models import Article, SentimentData, SourceSummary
from .pipeline import SentimentAggregator
from .scoring import KeywordSentimentScorer, SentimentNormalizer, normalize_sentiment
from .service import (
    AggregationService,
    build_service,
    get_current_sentiment,
    get_service,
    shutdown_services,
)

__all__ = [
    "__version__",
    # Service
    "AggregationService",
    "build_service",
    "get_service",
    "get_current_sentiment",
    "shutdown_services",
    # Components
    "ResultCache",
    "FallbackGenerator",
    "SentimentAggregator",
    "SentimentNormalizer",
    "KeywordSentimentScorer",
    "normalize_sentiment",
    # Models
    "Article",
    "SentimentData",
    "SourceSummary",
    # Config
    "MoodConfig",
    "ServerConfig",
    # Exceptions
    "MoodSourceError",
    "FetchError",
    "RequestTimeoutError",
    "RateLimitError",
    "ParseError",
    "UpstreamError",
    "AuthenticationError",
    "ClassifierError",
]
