"""
Text sentiment scoring and normalization.

Two interchangeable text scorers share the TextScorer interface:
- KeywordSentimentScorer: weighted keyword heuristic, always available
- ClassifierSentimentScorer: external classifier with keyword fallback

Both produce values on the raw scale [-10, 10]. normalize_sentiment()
maps a raw aggregate to [-1, 1] and is applied once per aggregate.
"""

import asyncio
import json
import logging
import math
from collections import OrderedDict
from typing import Any, Optional, Protocol

import aiohttp

from .config import AggregationConfig, ClassifierConfig, MoodConfig
from .exceptions import AuthenticationError, ClassifierError, MoodSourceError
from .models import RAW_SCALE_BOUND, clamp


logger = logging.getLogger(__name__)


# Weighted keywords, English and Danish
POSITIVE_KEYWORDS: tuple[tuple[str, float], ...] = (
    ("excellent", 0.3), ("amazing", 0.3), ("wonderful", 0.3), ("fantastic", 0.3),
    ("great", 0.2), ("good", 0.15), ("positive", 0.2), ("success", 0.25),
    ("win", 0.2), ("victory", 0.25), ("achievement", 0.2), ("breakthrough", 0.3),
    ("help", 0.1), ("support", 0.15), ("love", 0.2), ("hope", 0.15),
    ("progress", 0.2), ("improvement", 0.2), ("growth", 0.2), ("prosperity", 0.25),
    ("peace", 0.2), ("unity", 0.15), ("cooperation", 0.15), ("innovation", 0.2),
    ("fantastisk", 0.3), ("fremgang", 0.2), ("lykkedes", 0.2), ("succes", 0.2),
)

NEGATIVE_KEYWORDS: tuple[tuple[str, float], ...] = (
    ("terrible", 0.3), ("awful", 0.3), ("horrible", 0.3), ("disaster", 0.3),
    ("bad", 0.15), ("negative", 0.2), ("fail", 0.2), ("failure", 0.25),
    ("loss", 0.2), ("crisis", 0.3), ("war", 0.3), ("conflict", 0.25),
    ("hate", 0.25), ("angry", 0.2), ("fear", 0.2), ("violence", 0.3),
    ("death", 0.3), ("attack", 0.3), ("destruction", 0.3), ("collapse", 0.25),
    ("dårlig", 0.2), ("katastrofe", 0.3), ("fejlet", 0.2), ("krise", 0.3),
    ("krig", 0.3), ("vold", 0.25), ("frygt", 0.2),
)

# Texts up to this many words are not dampened
LENGTH_REFERENCE_WORDS = 100


class TextScorer(Protocol):
    """Capability interface: signed raw-scale score for a piece of text."""

    async def score_text(self, text: str) -> float:
        ...


# ─────────────────────────────────────────────────────────────
# Normalization
# ─────────────────────────────────────────────────────────────


def normalize_sentiment(
    value: float,
    divisor: float = 3.0,
    bound: float = RAW_SCALE_BOUND,
) -> float:
    """Clamp to the raw scale, divide by the sensitivity divisor, clamp to [-1, 1]."""
    clamped = clamp(value, -bound, bound)
    return clamp(clamped / divisor, -1.0, 1.0)


class SentimentNormalizer:
    """normalize_sentiment() bound to configured constants."""

    def __init__(self, divisor: float = 3.0, bound: float = RAW_SCALE_BOUND) -> None:
        if divisor <= 0:
            raise ValueError("divisor must be > 0")
        self.divisor = divisor
        self.bound = bound

    @classmethod
    def from_config(cls, config: AggregationConfig) -> "SentimentNormalizer":
        return cls(divisor=config.normalization_divisor, bound=config.raw_bound)

    def normalize(self, value: float) -> float:
        return normalize_sentiment(value, self.divisor, self.bound)

    __call__ = normalize


# ─────────────────────────────────────────────────────────────
# Keyword heuristic
# ─────────────────────────────────────────────────────────────


class KeywordSentimentScorer:
    """
    Weighted keyword sentiment.

    Every occurrence of a keyword counts, so repeated words push harder.
    A length factor of min(1, 100 / words) keeps long texts from
    accumulating score through length alone.
    """

    def __init__(
        self,
        positive: tuple[tuple[str, float], ...] = POSITIVE_KEYWORDS,
        negative: tuple[tuple[str, float], ...] = NEGATIVE_KEYWORDS,
        bound: float = RAW_SCALE_BOUND,
    ) -> None:
        self.positive = positive
        self.negative = negative
        self.bound = bound

    def score(self, text: str) -> float:
        if not text or not text.strip():
            return 0.0

        lowered = text.lower()
        sentiment = 0.0
        for word, weight in self.positive:
            sentiment += lowered.count(word) * weight
        for word, weight in self.negative:
            sentiment -= lowered.count(word) * weight

        word_count = len(text.split())
        length_factor = min(1.0, LENGTH_REFERENCE_WORDS / word_count)

        scaled = sentiment * 10 * length_factor
        return clamp(scaled, -self.bound, self.bound)

    async def score_text(self, text: str) -> float:
        return self.score(text)


# ─────────────────────────────────────────────────────────────
# External classifier
# ─────────────────────────────────────────────────────────────


def smart_truncate(text: str, limit: int) -> str:
    """Cut text to limit without splitting a sentence or word where possible."""
    if len(text) <= limit:
        return text

    truncated = text[:limit]
    last_sentence_end = max(
        truncated.rfind("."),
        truncated.rfind("!"),
        truncated.rfind("?"),
    )
    if last_sentence_end > limit * 0.8:
        return truncated[:last_sentence_end + 1]

    last_space = truncated.rfind(" ")
    if last_space > -1:
        return truncated[:last_space]

    return truncated


def parse_classifier_response(data: Any) -> float:
    """
    Map a text-classification response to the raw scale.

    Accepted shapes:
    - [{label, score}, ...]
    - [[{label, score}, ...]]
    - {label, score}
    Dominant positive -> +score*10, dominant negative -> -score*10, else 0.
    """
    results = data
    while isinstance(results, list) and results and isinstance(results[0], list):
        results = results[0]

    if isinstance(results, dict) and "label" in results:
        items = [results]
    elif isinstance(results, list):
        items = [r for r in results if isinstance(r, dict)]
    else:
        logger.warning(f"Unexpected classifier response format: {str(data)[:200]}")
        return 0.0

    if not items:
        return 0.0

    positive = negative = neutral = 0.0
    for item in items:
        label = str(item.get("label") or "").upper()
        try:
            score = float(item.get("score") or 0.0)
        except (TypeError, ValueError):
            continue
        if not math.isfinite(score):
            continue

        if "POS" in label or label == "LABEL_2":
            positive = score
        elif "NEG" in label or label == "LABEL_0":
            negative = score
        elif "NEU" in label or label == "LABEL_1":
            neutral = score

    if positive > negative and positive > neutral:
        return positive * 10
    if negative > positive and negative > neutral:
        return -negative * 10
    return 0.0


class HuggingFaceClassifier:
    """Calls the HuggingFace inference API, trying each endpoint in order."""

    DEPRECATED_MARKER = "no longer supported"

    def __init__(
        self,
        api_key: str,
        endpoints: tuple[str, ...] = ClassifierConfig.endpoints,
        loading_wait_seconds: float = 2.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.api_key = api_key
        self.endpoints = endpoints
        self.loading_wait_seconds = loading_wait_seconds
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _post(self, endpoint: str, text: str) -> tuple[int, str]:
        session = await self._get_session()
        async with session.post(
            endpoint,
            json={"inputs": text},
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        ) as response:
            return response.status, await response.text()

    async def classify(self, text: str) -> float:
        """Raw-scale score for text. Raises ClassifierError when every endpoint fails."""
        for endpoint in self.endpoints:
            try:
                status, body = await self._post(endpoint, text)

                # Model still loading: wait once and retry the same endpoint
                if status == 503:
                    logger.info(f"Classifier model loading at {endpoint}, waiting")
                    await asyncio.sleep(self.loading_wait_seconds)
                    status, body = await self._post(endpoint, text)

                if status in (401, 403):
                    raise AuthenticationError(
                        f"Classifier authentication failed ({status})",
                        source_name="huggingface",
                        status_code=status,
                        details={"response": body[:200]},
                    )
                if status == 429:
                    logger.warning(f"Classifier rate limited at {endpoint}")
                    continue
                if status != 200:
                    logger.warning(f"Classifier error {status} at {endpoint}: {body[:200]}")
                    continue

                data = json.loads(body)
                if isinstance(data, dict) and self.DEPRECATED_MARKER in str(data.get("error", "")):
                    logger.info(f"Classifier endpoint deprecated, trying next: {endpoint}")
                    continue
                return parse_classifier_response(data)

            except AuthenticationError:
                raise
            except (aiohttp.ClientError, ValueError) as e:
                logger.warning(f"Classifier endpoint {endpoint} failed: {e}")
                continue

        raise ClassifierError("All classifier endpoints failed", source_name="huggingface")

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()


class ClassifierSentimentScorer:
    """
    Strategy wrapper around an external classifier.

    Never raises: a timeout or classifier failure silently falls back to
    the keyword score. Successful classifications are cached (FIFO) by
    the first 100 characters of the text.
    """

    CACHE_KEY_CHARS = 100

    def __init__(
        self,
        classifier: HuggingFaceClassifier,
        fallback: Optional[KeywordSentimentScorer] = None,
        timeout: float = 3.0,
        max_input_chars: int = 500,
        cache_size: int = 1000,
    ) -> None:
        self.classifier = classifier
        self.fallback = fallback or KeywordSentimentScorer()
        self.timeout = timeout
        self.max_input_chars = max_input_chars
        self.cache_size = cache_size
        self._cache: OrderedDict[str, float] = OrderedDict()
        self._stats = {"classified": 0, "cache_hits": 0, "fallbacks": 0}

    async def score_text(self, text: str) -> float:
        text = text.strip()
        if not text:
            return 0.0

        key = text[:self.CACHE_KEY_CHARS]
        if key in self._cache:
            self._stats["cache_hits"] += 1
            return self._cache[key]

        try:
            score = await asyncio.wait_for(
                self.classifier.classify(smart_truncate(text, self.max_input_chars)),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.debug("Classifier timed out, using keyword score")
            self._stats["fallbacks"] += 1
            return self.fallback.score(text)
        except (MoodSourceError, aiohttp.ClientError) as e:
            logger.debug(f"Classifier failed ({e}), using keyword score")
            self._stats["fallbacks"] += 1
            return self.fallback.score(text)

        score = clamp(score, -RAW_SCALE_BOUND, RAW_SCALE_BOUND)
        if len(self._cache) >= self.cache_size:
            self._cache.popitem(last=False)
        self._cache[key] = score
        self._stats["classified"] += 1
        return score

    def get_stats(self) -> dict[str, int]:
        return {**self._stats, "cache_size": len(self._cache)}

    async def close(self) -> None:
        await self.classifier.close()


def build_text_scorer(config: MoodConfig) -> TextScorer:
    """Classifier scorer when an API key is configured, else keyword scorer."""
    keyword = KeywordSentimentScorer(bound=config.aggregation.raw_bound)
    if not config.classifier.enabled:
        return keyword

    classifier = HuggingFaceClassifier(
        api_key=config.classifier.api_key or "",
        endpoints=config.classifier.endpoints,
        loading_wait_seconds=config.classifier.loading_wait_seconds,
    )
    return ClassifierSentimentScorer(
        classifier,
        fallback=keyword,
        timeout=config.classifier.timeout_seconds,
        max_input_chars=config.classifier.max_input_chars,
        cache_size=config.classifier.cache_size,
    )
