"""
Shared fixtures: scripted LLM, static retrievers, fake clock, in-memory store.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from typing import Any, Callable, Dict, List, Union

import pytest
from sqlalchemy.pool import StaticPool

from db import PipelineStore, init_db, make_engine, make_session_factory
from models.schemas import Mention
from retrievers.base import BaseRetriever, RetrieverError
from services.llm import LLMError
from utils.resilience import CircuitBreaker


Reply = Union[Dict[str, Any], Exception, Callable[[str], Any]]


class ScriptedLLM:
    """
    Answers by prompt prefix. A reply may be a payload, an exception to
    raise, or a callable taking the prompt.
    """

    def __init__(self, replies: Dict[str, Reply] = None, default: Reply = None):
        self.replies = replies or {}
        self.default = default if default is not None else LLMError("no scripted reply")
        self.prompts: List[str] = []

    async def generate_json(self, prompt: str) -> Any:
        self.prompts.append(prompt)
        reply = self.default
        for prefix, candidate in self.replies.items():
            if prompt.startswith(prefix):
                reply = candidate
                break
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(prompt)
        return reply


class FailingLLM:
    def __init__(self):
        self.calls = 0

    async def generate_json(self, prompt: str) -> Any:
        self.calls += 1
        raise LLMError("service unavailable")


class StaticRetriever(BaseRetriever):
    """Returns a fixed list of mentions regardless of the search terms."""

    def __init__(self, mentions: List[Mention], name: str = "static", **kwargs):
        kwargs.setdefault("breaker", CircuitBreaker())
        super().__init__(**kwargs)
        self.mentions = mentions
        self.name = name
        self.calls: List[List[str]] = []

    def retrieve(self, search_terms, **options):
        self.calls.append(list(search_terms))
        return list(self.mentions)


class BrokenRetriever(BaseRetriever):
    name = "broken"

    def __init__(self, **kwargs):
        kwargs.setdefault("breaker", CircuitBreaker())
        super().__init__(**kwargs)

    def retrieve(self, search_terms, **options):
        raise RetrieverError("HTTP 503: Service Unavailable", status_code=503, platform="web")


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


# ─── Sample data ─────────────────────────────────────────────────────────────


SLEEP_MENTIONS = [
    Mention(
        platform="reddit",
        url="https://www.reddit.com/r/headphones/comments/a1/",
        text="The Sony WF-1000XM5 are the most comfortable for side sleeping, love them.",
    ),
    Mention(
        platform="reddit",
        url="https://www.reddit.com/r/sleep/comments/b2/",
        text="Sony WF-1000XM5 noise cancelling is great at night, battery lasts.",
    ),
    Mention(
        platform="web",
        url="https://example.com/bose-sleepbuds-review",
        text="Bose Sleepbuds II review: good noise masking but the battery is weak.",
    ),
]


def sleep_intent_reply(prompt: str) -> Dict[str, Any]:
    return {
        "intent": {
            "useCase": "sleeping with headphones",
            "constraints": ["comfortable for side sleeping"],
            "mustHaves": ["wireless"],
            "niceToHaves": ["long battery life"],
        },
        "seedTerms": [
            "headphones for sleeping", "sleep earbuds", "best sleep headphones reddit",
            "side sleeper earbuds", "sleep headphones vs earbuds", "low profile earbuds",
        ],
        "inferredCategory": "headphones",
    }


def sleep_products_reply(prompt: str) -> Dict[str, Any]:
    return {"products": [
        {"brand": "Sony", "model": "WF-1000XM5", "category": "earbuds", "sourceIndex": 0},
        {"brand": "Sony", "model": "WF-1000XM5", "category": "earbuds", "sourceIndex": 1},
        {"brand": "Bose", "model": "Sleepbuds II", "category": "earbuds", "sourceIndex": 2},
    ]}


def sleep_evidence_reply(prompt: str) -> Dict[str, Any]:
    if prompt.startswith('Analyze these mentions of "Sony WF-1000XM5"'):
        return {"evidence": [
            {"sentiment": "positive", "themes": ["comfort"], "claimTags": ["side_sleep"],
             "quote": "most comfortable for side sleeping", "sourceIndex": 0},
            {"sentiment": "positive", "themes": ["noise_control", "battery"], "claimTags": ["noise_cancellation"],
             "quote": "noise cancelling is great at night", "sourceIndex": 1},
        ]}
    return {"evidence": [
        {"sentiment": "negative", "themes": ["battery"], "claimTags": ["noise_masking"],
         "quote": "the battery is weak", "sourceIndex": 0},
    ]}


def sleep_llm() -> ScriptedLLM:
    return ScriptedLLM({
        "You are a product research assistant": sleep_intent_reply,
        "Extract all specific product mentions": sleep_products_reply,
        "These are product candidates": {"groups": []},
        "Analyze these mentions of": sleep_evidence_reply,
        "Generate a brief ranking rationale": {"rationales": [
            "Most praised for side sleeping comfort.",
            "Good masking but weaker battery.",
        ]},
    })


# ─── Fixtures ────────────────────────────────────────────────────────────────


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def store():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield PipelineStore(make_session_factory(engine))
    engine.dispose()


@pytest.fixture
def sleep_mentions():
    return list(SLEEP_MENTIONS)
