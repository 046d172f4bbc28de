"""
Tests for mood sources.

============================================================
TEST SCENARIOS
============================================================
1. HTTP mapping: 429 → RateLimitError, ≥400 → FetchError, timeout cancelled
2. Payload validation: error text/objects raise, empty lists are valid
3. GDELT: native tone, zero tone rescored, simple-query path
4. NewsAPI: skipped without key, per-language isolation, sample scoring
5. Reddit: listing parsing, engagement boost, ranking, subreddit isolation
6. Health tracking after success and failure

============================================================
"""

import asyncio
import json
import math
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp

from emotionwave.config import FetchConfig, GdeltConfig, NewsApiConfig, RedditConfig
from emotionwave.dates import DateRange
from emotionwave.exceptions import (
    FetchError,
    ParseError,
    RateLimitError,
    RequestTimeoutError,
    UpstreamError,
)
from emotionwave.models import SourceStatus
from emotionwave.providers import GdeltSource, NewsApiSource, RedditSource
from emotionwave.providers.reddit import engagement_boost, popularity_weight
from emotionwave.retry import RetryPolicy


DATE_RANGE = DateRange(
    start="20240314120000",
    end="20240315120000",
    iso_start="2024-03-14T12:00:00.000Z",
    iso_end="2024-03-15T12:00:00.000Z",
)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def no_wait_policy():
    """Full retry budget without real sleeping."""
    return RetryPolicy(max_attempts=3, base_delay=1.0, sleep=AsyncMock())


@pytest.fixture
def gdelt(no_wait_policy):
    return GdeltSource(GdeltConfig(), FetchConfig(), retry_policy=no_wait_policy)


@pytest.fixture
def newsapi(no_wait_policy):
    return NewsApiSource(
        NewsApiConfig(api_key="test-key"),
        FetchConfig(),
        retry_policy=no_wait_policy,
    )


@pytest.fixture
def reddit(no_wait_policy):
    return RedditSource(
        RedditConfig(subreddits=("worldnews", "news"), max_posts=3),
        FetchConfig(),
        retry_policy=no_wait_policy,
    )


def mock_session(status=200, body="", headers=None):
    """aiohttp-like session whose get() yields a single canned response."""
    response = MagicMock()
    response.status = status
    response.headers = headers or {}
    response.text = AsyncMock(return_value=body)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.closed = False
    session.get.return_value = context
    session.close = AsyncMock()
    return session


def listing(*posts):
    return json.dumps({"data": {"children": [{"kind": "t3", "data": p} for p in posts]}})


def post(title, ups=0, selftext="", permalink="/r/worldnews/comments/abc/x", created_utc=1700000000):
    return {
        "title": title,
        "selftext": selftext,
        "ups": ups,
        "permalink": permalink,
        "created_utc": created_utc,
    }


# ============================================================
# TEST: HTTP LAYER
# ============================================================

class TestHttpMapping:

    @pytest.mark.asyncio
    async def test_success_returns_body(self):
        source = GdeltSource(session=mock_session(200, '{"articles": []}'))
        assert await source._get_text("https://example.org") == '{"articles": []}'

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        source = GdeltSource(session=mock_session(429, "", {"Retry-After": "30"}))
        with pytest.raises(RateLimitError) as exc_info:
            await source._get_text("https://example.org")
        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after_seconds == 30

    @pytest.mark.asyncio
    async def test_http_error_carries_status_and_preview(self):
        source = GdeltSource(session=mock_session(500, "upstream exploded"))
        with pytest.raises(FetchError) as exc_info:
            await source._get_text("https://example.org")
        assert exc_info.value.status_code == 500
        assert exc_info.value.details["response"] == "upstream exploded"

    @pytest.mark.asyncio
    async def test_network_error(self):
        session = mock_session()
        session.get.side_effect = aiohttp.ClientConnectionError("refused")
        source = GdeltSource(session=session)
        with pytest.raises(FetchError) as exc_info:
            await source._get_text("https://example.org")
        assert exc_info.value.status_code is None
        assert exc_info.value.is_retryable()

    @pytest.mark.asyncio
    async def test_timeout_cancels_request(self):
        source = GdeltSource(fetch_config=FetchConfig(timeout_seconds=0.01))

        async def hang(*args):
            await asyncio.sleep(1)

        with patch.object(source, "_request_text", new=hang):
            with pytest.raises(RequestTimeoutError) as exc_info:
                await source._get_text("https://example.org")
        assert exc_info.value.timeout_seconds == 0.01

    @pytest.mark.asyncio
    async def test_close_leaves_injected_session_open(self):
        session = mock_session()
        source = GdeltSource(session=session)
        await source.close()
        session.close.assert_not_awaited()


# ============================================================
# TEST: PAYLOAD VALIDATION
# ============================================================

class TestPayloadValidation:

    @pytest.mark.parametrize("body", [
        "Your search contained one or more invalid terms.",
        "The specified phrase is too short.",
        "Queries containing OR'd terms must be surrounded by ().",
    ])
    def test_error_text_raises(self, gdelt, body):
        with pytest.raises(UpstreamError):
            gdelt.parse_payload(body)

    def test_empty_body(self, gdelt):
        with pytest.raises(ParseError):
            gdelt.parse_payload("  ")

    def test_invalid_json(self, gdelt):
        with pytest.raises(ParseError) as exc_info:
            gdelt.parse_payload("{not json")
        assert not isinstance(exc_info.value, UpstreamError)

    def test_json_containing_error_word_is_parsed(self, gdelt):
        payload = gdelt.parse_payload('{"articles": [{"title": "Error in judgement"}]}')
        assert payload["articles"][0]["title"] == "Error in judgement"

    @pytest.mark.parametrize("payload, expected", [
        ([{"title": "a"}], 1),
        ({"articles": [{"title": "a"}, {"title": "b"}]}, 2),
        ({"results": [{"title": "a"}]}, 1),
        ({"docs": []}, 0),
        ({"articles": []}, 0),
        ([], 0),
    ])
    def test_record_locations(self, gdelt, payload, expected):
        assert len(gdelt.extract_records(payload)) == expected

    def test_non_dict_records_dropped(self, gdelt):
        assert gdelt.extract_records([{"title": "a"}, "junk", None]) == [{"title": "a"}]

    @pytest.mark.parametrize("payload", [
        {"error": "Invalid query"},
        {"message": "quota exceeded"},
        42,
        "text",
    ])
    def test_error_payloads(self, gdelt, payload):
        with pytest.raises(UpstreamError):
            gdelt.extract_records(payload)

    def test_unknown_object_shape(self, gdelt):
        with pytest.raises(ParseError) as exc_info:
            gdelt.extract_records({})
        assert not isinstance(exc_info.value, UpstreamError)


# ============================================================
# TEST: GDELT
# ============================================================

class TestGdeltSource:

    def test_primary_params(self, gdelt):
        params = gdelt.build_params(DATE_RANGE)
        assert params["mode"] == "artlist"
        assert params["format"] == "json"
        assert params["maxrecords"] == "30"
        assert params["sort"] == "hybridrel"
        assert params["startdatetime"] == "20240314120000"
        assert params["enddatetime"] == "20240315120000"

    def test_simple_params_have_no_window(self, gdelt):
        params = gdelt.build_params(None)
        assert "startdatetime" not in params
        assert "enddatetime" not in params

    @pytest.mark.asyncio
    async def test_native_tone_used(self, gdelt):
        body = json.dumps({"articles": [{
            "url": "https://example.org/a",
            "title": "Summit ends",
            "domain": "example.org",
            "seendate": "20240315T100000Z",
            "tone": -4.2,
        }]})
        with patch.object(gdelt, "_get_text", new=AsyncMock(return_value=body)):
            articles = await gdelt.fetch(DATE_RANGE)

        assert len(articles) == 1
        article = articles[0]
        assert article.sentiment == -4.2
        assert article.source == "example.org"
        assert article.url == "https://example.org/a"
        assert article.published_at == "20240315T100000Z"

    @pytest.mark.asyncio
    async def test_zero_tone_rescored_from_text(self, gdelt):
        body = json.dumps({"articles": [{"title": "War escalates", "tone": 0}]})
        with patch.object(gdelt, "_get_text", new=AsyncMock(return_value=body)):
            articles = await gdelt.fetch(DATE_RANGE)
        assert articles[0].sentiment == pytest.approx(-3.0)

    @pytest.mark.asyncio
    async def test_missing_source_is_unknown(self, gdelt):
        body = json.dumps([{"title": "Quiet day"}])
        with patch.object(gdelt, "_get_text", new=AsyncMock(return_value=body)):
            articles = await gdelt.fetch(DATE_RANGE)
        assert articles[0].source == "Unknown"
        assert articles[0].sentiment == 0.0

    @pytest.mark.asyncio
    async def test_tone_clamped_to_raw_scale(self, gdelt):
        body = json.dumps({"articles": [{"title": "x", "tone": -25.0}]})
        with patch.object(gdelt, "_get_text", new=AsyncMock(return_value=body)):
            articles = await gdelt.fetch(DATE_RANGE)
        assert articles[0].sentiment == -10.0

    @pytest.mark.asyncio
    async def test_error_text_triggers_simple_query(self, gdelt):
        body = json.dumps({"articles": [{"title": "Peace", "domain": "a.org"}]})
        get_text = AsyncMock(side_effect=["The specified phrase is too short.", body])

        with patch.object(gdelt, "_get_text", new=get_text):
            articles = await gdelt.fetch(DATE_RANGE)

        assert len(articles) == 1
        assert get_text.await_count == 2
        simple_params = get_text.await_args_list[1].args[1]
        assert "startdatetime" not in simple_params

    @pytest.mark.asyncio
    async def test_both_queries_failing_raises_primary_error(self, gdelt):
        get_text = AsyncMock(side_effect=[
            "The specified phrase is too short.",
            "Invalid query syntax.",
        ])
        with patch.object(gdelt, "_get_text", new=get_text):
            with pytest.raises(UpstreamError) as exc_info:
                await gdelt.fetch(DATE_RANGE)
        assert "too short" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_json_error_object_triggers_simple_query(self, gdelt):
        body = json.dumps({"articles": [{"title": "Peace", "domain": "a.org"}]})
        get_text = AsyncMock(side_effect=['{"error": "Your query was too short"}', body])

        with patch.object(gdelt, "_get_text", new=get_text):
            articles = await gdelt.fetch(DATE_RANGE)

        assert len(articles) == 1
        assert get_text.await_count == 2

    @pytest.mark.asyncio
    async def test_unknown_shape_triggers_simple_query(self, gdelt):
        body = json.dumps({"articles": [{"title": "Peace", "domain": "a.org"}]})
        get_text = AsyncMock(side_effect=['{"status": "weird"}', body])

        with patch.object(gdelt, "_get_text", new=get_text):
            articles = await gdelt.fetch(DATE_RANGE)

        assert len(articles) == 1
        assert "startdatetime" not in get_text.await_args_list[1].args[1]

    @pytest.mark.asyncio
    async def test_unknown_shape_twice_raises_primary_error(self, gdelt):
        get_text = AsyncMock(side_effect=['{"status": "weird"}', '{"error": "down"}'])
        with patch.object(gdelt, "_get_text", new=get_text):
            with pytest.raises(ParseError):
                await gdelt.fetch(DATE_RANGE)

    @pytest.mark.asyncio
    async def test_timeout_skips_simple_query(self, gdelt):
        get_text = AsyncMock(side_effect=RequestTimeoutError("timed out", timeout_seconds=8.0))
        with patch.object(gdelt, "_get_text", new=get_text):
            with pytest.raises(RequestTimeoutError):
                await gdelt.fetch(DATE_RANGE)
        # Three primary attempts, no simple query
        assert get_text.await_count == 3

    @pytest.mark.asyncio
    async def test_empty_result_is_not_an_error(self, gdelt):
        with patch.object(gdelt, "_get_text", new=AsyncMock(return_value='{"articles": []}')):
            assert await gdelt.fetch(DATE_RANGE) == []
        assert gdelt.get_health().status == SourceStatus.HEALTHY


# ============================================================
# TEST: NEWSAPI
# ============================================================

class TestNewsApiSource:

    def news_body(self, *articles):
        return json.dumps({"status": "ok", "totalResults": len(articles), "articles": list(articles)})

    @pytest.mark.asyncio
    async def test_skipped_without_key(self, no_wait_policy):
        source = NewsApiSource(NewsApiConfig(api_key=None), retry_policy=no_wait_policy)
        get_text = AsyncMock()
        with patch.object(source, "_get_text", new=get_text):
            assert await source.fetch(DATE_RANGE) == []
        assert source.enabled is False
        get_text.assert_not_awaited()

    def test_params(self, newsapi):
        params = newsapi.build_params(DATE_RANGE, "da")
        assert params["language"] == "da"
        assert params["from"] == "2024-03-14"
        assert params["to"] == "2024-03-15"
        assert params["pageSize"] == "15"
        assert params["apiKey"] == "test-key"

    @pytest.mark.asyncio
    async def test_one_call_per_language(self, newsapi):
        en = self.news_body({
            "title": "Peace deal signed",
            "description": "",
            "url": "https://example.org/peace",
            "source": {"id": "reuters", "name": "Reuters"},
            "publishedAt": "2024-03-15T08:00:00Z",
        })
        get_text = AsyncMock(side_effect=[en, self.news_body()])

        with patch.object(newsapi, "_get_text", new=get_text):
            articles = await newsapi.fetch(DATE_RANGE)

        assert get_text.await_count == 2
        languages = [c.args[1]["language"] for c in get_text.await_args_list]
        assert languages == ["en", "da"]
        assert len(articles) == 1
        assert articles[0].source == "Reuters"
        assert articles[0].sentiment == pytest.approx(2.0)
        assert articles[0].published_at == "2024-03-15T08:00:00Z"

    @pytest.mark.asyncio
    async def test_failing_language_skipped(self, newsapi):
        get_text = AsyncMock(side_effect=[
            FetchError("not found", status_code=404),
            self.news_body({"title": "Krise i regeringen", "source": {"name": "DR"}}),
        ])
        with patch.object(newsapi, "_get_text", new=get_text):
            articles = await newsapi.fetch(DATE_RANGE)
        assert [a.source for a in articles] == ["DR"]
        assert articles[0].sentiment < 0

    @pytest.mark.asyncio
    async def test_status_error_raises(self, newsapi):
        error = json.dumps({"status": "error", "code": "apiKeyInvalid", "message": "Your API key is invalid"})
        with patch.object(newsapi, "_get_text", new=AsyncMock(return_value=error)):
            with pytest.raises(UpstreamError):
                await newsapi.fetch(DATE_RANGE)

    @pytest.mark.asyncio
    async def test_records_without_text_skipped(self, newsapi):
        body = self.news_body(
            {"title": "", "description": None, "source": {"name": "Empty"}},
            {"title": "Hope returns", "source": {"id": "bbc-news"}},
        )
        with patch.object(newsapi, "_get_text", new=AsyncMock(side_effect=[body, self.news_body()])):
            articles = await newsapi.fetch(DATE_RANGE)
        assert [a.source for a in articles] == ["bbc-news"]

    @pytest.mark.asyncio
    async def test_sample_scored_with_text_scorer(self, no_wait_policy):
        text_scorer = MagicMock()
        text_scorer.score_text = AsyncMock(return_value=9.0)
        source = NewsApiSource(
            NewsApiConfig(api_key="k", languages=("en",), classifier_sample_size=1),
            text_scorer=text_scorer,
            retry_policy=no_wait_policy,
        )
        body = self.news_body(
            {"title": "First headline", "source": {"name": "A"}},
            {"title": "War continues", "source": {"name": "B"}},
        )
        with patch.object(source, "_get_text", new=AsyncMock(return_value=body)):
            articles = await source.fetch(DATE_RANGE)

        assert articles[0].sentiment == 9.0
        assert articles[1].sentiment == pytest.approx(-3.0)
        assert text_scorer.score_text.await_count == 1


# ============================================================
# TEST: REDDIT
# ============================================================

class TestEngagementBoost:

    def test_popularity_floor(self):
        assert popularity_weight(0) == pytest.approx(math.log10(2))
        assert popularity_weight(-5) == popularity_weight(1)

    def test_boost_grows_with_engagement(self):
        assert engagement_boost(10) < engagement_boost(1000)

    def test_boost_capped_at_twenty_percent(self):
        assert engagement_boost(99999) == pytest.approx(1.2)
        assert engagement_boost(10 ** 9) == pytest.approx(1.2)

    def test_minimum_boost(self):
        assert engagement_boost(0) == pytest.approx(1 + 0.2 * math.log10(2) / 5)


class TestRedditSource:

    @pytest.mark.asyncio
    async def test_listing_mapped_to_articles(self, reddit):
        get_text = AsyncMock(side_effect=[
            listing(post("Peace summit", ups=0, permalink="/r/worldnews/comments/1/peace")),
            listing(),
        ])
        with patch.object(reddit, "_get_text", new=get_text):
            articles = await reddit.fetch(DATE_RANGE)

        assert len(articles) == 1
        article = articles[0]
        assert article.source == "Reddit: r/worldnews"
        assert article.url == "https://reddit.com/r/worldnews/comments/1/peace"
        assert article.published_at == "2023-11-14T22:13:20+00:00"
        assert article.sentiment == pytest.approx(2.0 * engagement_boost(0))
        assert get_text.await_args_list[0].args[0] == "https://www.reddit.com/r/worldnews/hot.json"
        assert get_text.await_args_list[0].args[1] == {"limit": "10"}

    @pytest.mark.asyncio
    async def test_keeps_most_engaged(self, reddit):
        get_text = AsyncMock(side_effect=[
            listing(post("a", ups=10), post("b", ups=500)),
            listing(post("c", ups=50), post("d", ups=5)),
        ])
        with patch.object(reddit, "_get_text", new=get_text):
            articles = await reddit.fetch(DATE_RANGE)
        assert [a.title for a in articles] == ["b", "c", "a"]

    @pytest.mark.asyncio
    async def test_boost_keeps_raw_bound(self, reddit):
        get_text = AsyncMock(side_effect=[
            listing(post("excellent " * 50, ups=10 ** 6)),
            listing(),
        ])
        with patch.object(reddit, "_get_text", new=get_text):
            articles = await reddit.fetch(DATE_RANGE)
        assert articles[0].sentiment == 10.0

    @pytest.mark.asyncio
    async def test_failing_subreddit_skipped(self, reddit):
        get_text = AsyncMock(side_effect=[
            FetchError("forbidden", status_code=403),
            listing(post("Hope", permalink="/r/news/comments/2/hope")),
        ])
        with patch.object(reddit, "_get_text", new=get_text):
            articles = await reddit.fetch(DATE_RANGE)
        assert [a.source for a in articles] == ["Reddit: r/news"]

    @pytest.mark.asyncio
    async def test_all_subreddits_failing_raises(self, reddit):
        get_text = AsyncMock(side_effect=FetchError("forbidden", status_code=403))
        with patch.object(reddit, "_get_text", new=get_text):
            with pytest.raises(FetchError):
                await reddit.fetch(DATE_RANGE)

    @pytest.mark.asyncio
    async def test_error_object_instead_of_listing(self, reddit):
        error = json.dumps({"message": "Forbidden", "error": 403})
        with patch.object(reddit, "_get_text", new=AsyncMock(return_value=error)):
            with pytest.raises(UpstreamError):
                await reddit.fetch(DATE_RANGE)

    @pytest.mark.asyncio
    async def test_ignores_text_scorer(self, no_wait_policy):
        text_scorer = MagicMock()
        text_scorer.score_text = AsyncMock(return_value=9.0)
        source = RedditSource(
            RedditConfig(subreddits=("news",)),
            text_scorer=text_scorer,
            retry_policy=no_wait_policy,
        )
        with patch.object(source, "_get_text", new=AsyncMock(return_value=listing(post("Quiet")))):
            articles = await source.fetch(DATE_RANGE)
        assert articles[0].sentiment == 0.0
        text_scorer.score_text.assert_not_awaited()


# ============================================================
# TEST: HEALTH
# ============================================================

class TestSourceHealth:

    @pytest.mark.asyncio
    async def test_degrades_then_unavailable(self, gdelt):
        error = FetchError("not found", status_code=404)
        with patch.object(gdelt, "_get_text", new=AsyncMock(side_effect=error)):
            for _ in range(3):
                with pytest.raises(FetchError):
                    await gdelt.fetch(DATE_RANGE)
                if gdelt.get_health().consecutive_failures == 1:
                    assert gdelt.get_health().status == SourceStatus.DEGRADED

        health = gdelt.get_health()
        assert health.status == SourceStatus.UNAVAILABLE
        assert health.consecutive_failures == 3
        assert gdelt.get_stats()["errors"] == 3

    @pytest.mark.asyncio
    async def test_rate_limited_status(self):
        source = RedditSource(RedditConfig(subreddits=("news",)), retry_policy=RetryPolicy(max_attempts=1))
        with patch.object(source, "_get_text", new=AsyncMock(side_effect=RateLimitError("slow down"))):
            with pytest.raises(RateLimitError):
                await source.fetch(DATE_RANGE)
        assert source.get_health().status == SourceStatus.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_recovers_on_success(self, gdelt):
        # Primary and simple query both fail, then the next primary succeeds
        get_text = AsyncMock(side_effect=[
            FetchError("not found", status_code=404),
            FetchError("not found", status_code=404),
            '{"articles": [{"title": "ok"}]}',
        ])
        with patch.object(gdelt, "_get_text", new=get_text):
            with pytest.raises(FetchError):
                await gdelt.fetch(DATE_RANGE)
            await gdelt.fetch(DATE_RANGE)

        health = gdelt.get_health()
        assert health.status == SourceStatus.HEALTHY
        assert health.consecutive_failures == 0
        assert health.last_article_count == 1
