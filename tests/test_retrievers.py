"""
Retriever helpers and adapters, with HTTP replaced by a fake session.
"""

from typing import Any, Dict, List

import pytest
import requests

from models.schemas import Mention
from retrievers import (
    MockRetriever, RedditRetriever, RetrieverError, WebSearchRetriever,
    clean_text, deduplicate_mentions, normalize_url, platform_from_url, suggest_subreddits, truncate,
)
from retrievers.reddit import RedditThread, RedditComment, extract_comments, threads_to_mentions
from retrievers.web_search import build_query
from utils.rate_limit import RateLimiterRegistry
from utils.resilience import CircuitBreaker
from conftest import BrokenRetriever


class FakeResponse:
    def __init__(self, payload: Any, status_code: int = 200):
        self._payload = payload
        self.status_code = status_code
        self.reason = "OK" if status_code < 400 else "Error"

    def json(self):
        return self._payload


class FakeSession:
    """Routes GETs by URL substring; records every call."""

    def __init__(self, routes: Dict[str, Any]):
        self.routes = routes
        self.calls: List[Dict[str, Any]] = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params})
        for fragment, reply in self.routes.items():
            if fragment in url:
                if isinstance(reply, Exception):
                    raise reply
                return reply
        return FakeResponse({}, 404)


def _quiet_limiter():
    return RateLimiterRegistry(limits={}, default_limit=(1000.0, 1000), sleep=lambda s: None)


def _listing(*threads):
    return {"data": {"children": [{"kind": "t3", "data": t} for t in threads]}}


class TestHelpers:
    def test_clean_text_strips_markup(self):
        assert clean_text("<p>Great&nbsp;buds</p>\n\n  really") == "Great buds really"
        assert clean_text(None) == ""

    def test_truncate(self):
        assert truncate("abc", 5) == "abc"
        assert truncate("abcdefgh", 6) == "abc..."

    def test_normalize_url_and_dedupe(self):
        assert normalize_url("HTTPS://Reddit.com/r/x/#top") == "https://reddit.com/r/x"
        mentions = [
            Mention(platform="reddit", url="https://reddit.com/r/x/", text="a"),
            Mention(platform="reddit", url="https://REDDIT.com/r/x", text="b"),
            Mention(platform="web", url="https://e.com/y", text="c"),
        ]
        assert [m.text for m in deduplicate_mentions(mentions)] == ["a", "c"]

    def test_platform_from_url(self):
        assert platform_from_url("https://www.reddit.com/r/a") == "reddit"
        assert platform_from_url("https://www.trustpilot.com/review/x") == "trustpilot"
        assert platform_from_url("https://blog.example.com") == "web"

    def test_suggest_subreddits(self):
        assert "HeadphoneAdvice" in suggest_subreddits("Headphones")
        assert suggest_subreddits("garden hoses") == ["BuyItForLife", "goodvalue", "ProductReviews"]

    def test_build_query_variants(self):
        assert build_query("sleep buds", "reddit") == "site:reddit.com sleep buds"
        assert build_query("sleep buds", "forum").endswith("forum recommendation discussion")
        assert build_query("sleep buds", "general") == "sleep buds"


class TestGuardedRetrieve:
    def test_failures_trip_the_breaker(self):
        breaker = CircuitBreaker(threshold=2)
        retriever = BrokenRetriever(breaker=breaker)
        for _ in range(2):
            with pytest.raises(RetrieverError):
                retriever.guarded_retrieve(["x"])
        assert breaker.is_disabled("broken")
        assert retriever.guarded_retrieve(["x"]) == []

    def test_mock_retriever_is_deterministic(self):
        a = MockRetriever(breaker=CircuitBreaker()).guarded_retrieve(["sleep earbuds"])
        b = MockRetriever(breaker=CircuitBreaker()).guarded_retrieve(["sleep earbuds"])
        assert a == b
        assert len(a) == 6
        assert all(m.platform == "reddit" for m in a)


class TestRedditRetriever:
    def test_comment_walk_skips_deleted_and_bots(self):
        listing = {"data": {"children": [
            {"kind": "t1", "data": {"id": "c1", "author": "a", "body": "Top level comment", "replies": {
                "kind": "Listing", "data": {"children": [
                    {"kind": "t1", "data": {"id": "c2", "author": "b", "body": "Nested reply"}},
                    {"kind": "t1", "data": {"id": "c3", "author": "c", "body": "[deleted]"}},
                ]},
            }}},
            {"kind": "t1", "data": {"id": "c4", "author": "AutoModerator", "body": "Rules"}},
            {"kind": "more", "data": {}},
        ]}}
        assert [c.id for c in extract_comments(listing, 10)] == ["c1", "c2"]

    def test_threads_to_mentions_filters_short_text(self):
        thread = RedditThread(
            id="t", subreddit="sleep", title="Best sleep buds?", url="https://www.reddit.com/r/sleep/comments/t/",
            score=10, created_utc=1700000000, self_text="short",
            comments=[
                RedditComment(id="c1", author="a", body="The Ozlo Sleepbuds changed my life as a side sleeper"),
                RedditComment(id="c2", author="b", body="+1"),
            ],
        )
        mentions = threads_to_mentions([thread])
        assert len(mentions) == 1
        assert mentions[0].url == "https://www.reddit.com/r/sleep/comments/t/c1"
        assert mentions[0].author_handle == "a"

    def test_retrieve_searches_and_fetches_comments(self):
        post = {"id": "t1", "subreddit": "headphones", "title": "Sleep buds",
                "permalink": "/r/headphones/comments/t1/", "score": 5, "created_utc": 1700000000,
                "selftext": "Looking for earbuds I can wear while sleeping on my side."}
        comments = [{}, {"data": {"children": [
            {"kind": "t1", "data": {"id": "k1", "author": "z", "body": "Get the Sony WF-1000XM5, super comfortable"}},
        ]}}]
        session = FakeSession({
            "search.json": FakeResponse(_listing(post)),
            "/comments/t1/.json": FakeResponse(comments),
        })
        retriever = RedditRetriever(limiter=_quiet_limiter(), breaker=CircuitBreaker(), session=session)

        mentions = retriever.retrieve(["sleep earbuds"], category="headphones")

        assert [m.url for m in mentions] == [
            "https://www.reddit.com/r/headphones/comments/t1/",
            "https://www.reddit.com/r/headphones/comments/t1/k1",
        ]
        search_calls = [c for c in session.calls if "search.json" in c["url"]]
        assert len(search_calls) == len(suggest_subreddits("headphones"))
        assert search_calls[0]["params"]["restrict_sr"] == "true"

    def test_all_search_paths_failing_raises(self):
        session = FakeSession({"search.json": FakeResponse({}, 429)})
        retriever = RedditRetriever(limiter=_quiet_limiter(), breaker=CircuitBreaker(), session=session,
                                    max_retries=0)
        with pytest.raises(RetrieverError) as exc:
            retriever.search("x", ["a", "b"])
        assert exc.value.status_code == 429


class TestWebSearchRetriever:
    def test_missing_key_returns_empty(self):
        session = FakeSession({})
        retriever = WebSearchRetriever(api_key="", limiter=_quiet_limiter(), breaker=CircuitBreaker(), session=session)
        assert retriever.retrieve(["a", "b"]) == []
        assert session.calls == []

    def test_search_plan_and_mapping(self):
        payload = {"organic_results": [
            {"link": "https://www.reddit.com/r/sleep/x", "title": "Thread", "snippet": "Ozlo <b>Sleepbuds</b> rock"},
            {"link": "https://review.example.com/best", "title": "Best", "snippet": "Our picks"},
            {"title": "no link"},
        ]}
        session = FakeSession({"serpapi.com": FakeResponse(payload)})
        retriever = WebSearchRetriever(api_key="k", limiter=_quiet_limiter(), breaker=CircuitBreaker(), session=session)

        mentions = retriever.retrieve(["t1", "t2", "t3", "t4", "t5", "t6"])

        assert len(session.calls) == 3 * 3 + 2
        assert len(mentions) == 2 * 11
        assert mentions[0].platform == "reddit"
        assert mentions[0].text == "Ozlo Sleepbuds rock"
        assert mentions[1].platform == "web"

    def test_transport_error_is_wrapped(self):
        session = FakeSession({"serpapi.com": requests.ConnectionError("refused")})
        retriever = WebSearchRetriever(api_key="k", limiter=_quiet_limiter(), breaker=CircuitBreaker(), session=session,
                                       max_retries=0)
        with pytest.raises(RetrieverError):
            retriever.search("x")
