"""
Sentiment Aggregation Pipeline - Combines articles from all sources into one score.

This pipeline:
1. Groups articles by publisher/subreddit
2. Averages each group on the raw scale, skipping exact zeros
   (likely missing data) unless the whole group is zero
3. Weights each group by article count and sentiment intensity
4. Normalizes the global raw average once

Per-source normalized scores are computed for display only and are
never averaged back into the global score.
"""

import logging
import math
from collections import defaultdict
from typing import Any, Iterable, Optional

from .config import AggregationConfig
from .models import AggregateScore, Article, SourceSummary
from .scoring import SentimentNormalizer


logger = logging.getLogger(__name__)


def intensity_weight(raw_score: float) -> float:
    """1 for a neutral source, 1 + |score| for an opinionated one."""
    return 1.0 + abs(raw_score)


class SentimentAggregator:
    """
    Intensity-weighted aggregation of raw article sentiment.

    A plain count-weighted mean lets many mild articles wash out a few
    intense ones; weighting by 1 + |raw_score| keeps strong signals.
    """

    def __init__(
        self,
        normalizer: Optional[SentimentNormalizer] = None,
        exclude_zero: bool = True,
    ) -> None:
        self.normalizer = normalizer or SentimentNormalizer()
        self.exclude_zero = exclude_zero

    @classmethod
    def from_config(cls, config: AggregationConfig) -> "SentimentAggregator":
        return cls(
            normalizer=SentimentNormalizer.from_config(config),
            exclude_zero=config.exclude_zero_sentiment,
        )

    def aggregate(self, articles: Iterable[Article]) -> AggregateScore:
        """
        Aggregate articles into a global score and per-source summaries.

        Empty input yields a zero aggregate; callers treat that as no data.
        """
        articles = list(articles)
        if not articles:
            return AggregateScore(
                score=0.0,
                raw_weighted_average=0.0,
                sources=(),
                article_count=0,
            )

        summaries = [
            self._summarize_group(name, group)
            for name, group in self._group_by_source(articles).items()
        ]
        # Deterministic order regardless of input order
        summaries.sort(key=lambda s: (-s.articles, s.name))

        raw_average = self.weighted_average(summaries)
        score = self.normalizer(raw_average)

        logger.debug(
            f"Raw weighted average {raw_average:.3f} -> score {score:.3f} "
            f"({len(summaries)} sources, {len(articles)} articles)"
        )

        return AggregateScore(
            score=score,
            raw_weighted_average=raw_average,
            sources=tuple(summaries),
            article_count=len(articles),
        )

    def weighted_average(self, summaries: Iterable[SourceSummary]) -> float:
        """sum(raw * weight * intensity) / sum(weight * intensity), or 0."""
        numerator: list[float] = []
        denominator: list[float] = []
        for summary in summaries:
            factor = summary.weight * intensity_weight(summary.raw_score)
            numerator.append(summary.raw_score * factor)
            denominator.append(factor)

        total_weight = math.fsum(denominator)
        if total_weight <= 0:
            return 0.0
        return math.fsum(numerator) / total_weight

    def _group_by_source(self, articles: list[Article]) -> dict[str, list[Article]]:
        groups: dict[str, list[Article]] = defaultdict(list)
        for article in articles:
            groups[article.source].append(article)
        return groups

    def _summarize_group(self, name: str, group: list[Article]) -> SourceSummary:
        used = group
        if self.exclude_zero:
            non_zero = [a for a in group if a.sentiment != 0]
            if non_zero:
                used = non_zero

        raw_score = math.fsum(a.sentiment for a in used) / len(used)
        return SourceSummary(
            name=name,
            raw_score=raw_score,
            score=self.normalizer(raw_score),
            articles=len(group),
            weight=len(used),
        )


def summarize(articles: Iterable[Article]) -> dict[str, Any]:
    """Distribution stats for logging."""
    articles = list(articles)
    non_zero = [a.sentiment for a in articles if a.sentiment != 0]
    if not non_zero:
        return {"total": len(articles), "non_zero": 0}
    return {
        "total": len(articles),
        "non_zero": len(non_zero),
        "min": min(non_zero),
        "max": max(non_zero),
        "avg": math.fsum(non_zero) / len(non_zero),
    }
