"""
Reddit Retriever
-----------------
Searches Reddit's public JSON endpoints, fetches comments for the highest
scoring threads and turns thread bodies and substantive comments into
mentions.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from config.settings import settings
from models.schemas import Mention
from retrievers.base import BaseRetriever, RetrieverError, clean_text, truncate

logger = logging.getLogger(__name__)

REDDIT_BASE = "https://www.reddit.com"

_SUBREDDITS_BY_CATEGORY: Dict[str, List[str]] = {
    "headphones": ["headphones", "HeadphoneAdvice", "audiophile", "budgetaudiophile"],
    "earbuds": ["headphones", "HeadphoneAdvice", "earbuds"],
    "keyboards": ["MechanicalKeyboards", "keyboards", "BudgetKeebs"],
    "mice": ["MouseReview", "pcgaming"],
    "monitors": ["Monitors", "ultrawidemasterrace", "buildapc"],
    "laptops": ["laptops", "SuggestALaptop", "GamingLaptops"],
    "phones": ["Android", "iphone", "smartphones"],
    "cameras": ["photography", "Cameras", "videography"],
    "speakers": ["BudgetAudiophile", "audiophile", "hometheater"],
    "desks": ["standingdesk", "WFH", "battlestations"],
    "chairs": ["OfficeChairs", "officechairs", "WFH"],
    "shoes": ["RunningShoeGeeks", "Sneakers", "BarefootRunning"],
    "mattresses": ["Mattress", "sleep"],
    "skincare": ["SkincareAddiction", "AsianBeauty"],
    "supplements": ["Supplements", "Nootropics"],
}
_FALLBACK_SUBREDDITS = ["BuyItForLife", "goodvalue", "ProductReviews"]


def suggest_subreddits(category: str) -> List[str]:
    lower = (category or "").lower()
    for key, subs in _SUBREDDITS_BY_CATEGORY.items():
        if key in lower:
            return subs
    return list(_FALLBACK_SUBREDDITS)


@dataclass
class RedditComment:
    id: str
    author: str
    body: str
    score: int = 0
    created_utc: float = 0.0


@dataclass
class RedditThread:
    id: str
    subreddit: str
    title: str
    url: str
    score: int
    created_utc: float
    self_text: str = ""
    comments: List[RedditComment] = field(default_factory=list)


def _iso(ts: float) -> Optional[str]:
    if not ts:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def extract_comments(listing: Dict[str, Any], max_comments: int) -> List[RedditComment]:
    """Walk a comment listing depth-first, skipping deleted and bot comments."""
    comments: List[RedditComment] = []

    def walk(children: List[Dict[str, Any]]) -> None:
        for thing in children:
            if len(comments) >= max_comments:
                return
            if thing.get("kind") != "t1":
                continue
            d = thing.get("data", {})
            body = d.get("body") or ""
            if not body or body in ("[deleted]", "[removed]") or d.get("author") == "AutoModerator":
                continue
            comments.append(RedditComment(
                id=d.get("id", ""),
                author=d.get("author", ""),
                body=body,
                score=d.get("score") or 0,
                created_utc=d.get("created_utc") or 0.0,
            ))
            replies = d.get("replies")
            if isinstance(replies, dict) and replies.get("kind") == "Listing":
                walk(replies.get("data", {}).get("children", []))

    walk(listing.get("data", {}).get("children", []))
    return comments


def threads_to_mentions(threads: List[RedditThread]) -> List[Mention]:
    mentions: List[Mention] = []
    for thread in threads:
        if len(thread.self_text) > 20:
            mentions.append(Mention(
                platform="reddit",
                url=thread.url,
                title=thread.title,
                created_at=_iso(thread.created_utc),
                text=truncate(clean_text(thread.self_text), 2000),
            ))
        for comment in thread.comments:
            if len(comment.body) < 30:
                continue
            mentions.append(Mention(
                platform="reddit",
                url=f"{thread.url}{comment.id}",
                title=thread.title,
                author_handle=comment.author,
                created_at=_iso(comment.created_utc),
                text=truncate(clean_text(comment.body), 1500),
            ))
    return mentions


class RedditRetriever(BaseRetriever):
    name = "reddit"
    platform = "reddit"

    def __init__(self, max_threads_per_term: int = 10, max_comments_per_thread: int = 30,
                 max_threads: int = 30, **kwargs):
        super().__init__(**kwargs)
        self.max_threads_per_term = max_threads_per_term
        self.max_comments_per_thread = max_comments_per_thread
        self.max_threads = max_threads
        self.headers = {"User-Agent": settings.REDDIT_USER_AGENT}

    def search(self, query: str, subreddits: Optional[List[str]] = None,
               limit: int = 25) -> List[RedditThread]:
        subreddits = subreddits or []
        paths = [f"/r/{s}/search.json" for s in subreddits] or ["/search.json"]
        threads: List[RedditThread] = []
        last_error: Optional[RetrieverError] = None
        failures = 0

        for path in paths:
            params = {
                "q": query,
                "sort": "relevance",
                "t": "year",
                "limit": str(min(limit, 100)),
                "restrict_sr": "true" if subreddits else "false",
                "type": "link",
            }
            try:
                listing = self._get_json(f"{REDDIT_BASE}{path}", params=params, headers=self.headers)
            except RetrieverError as e:
                logger.warning(f"[reddit] Search failed for {path}: {e}")
                last_error = e
                failures += 1
                continue
            for thing in listing.get("data", {}).get("children", []):
                if thing.get("kind") != "t3":
                    continue
                d = thing.get("data", {})
                threads.append(RedditThread(
                    id=d.get("id", ""),
                    subreddit=d.get("subreddit", ""),
                    title=d.get("title", ""),
                    url=f"{REDDIT_BASE}{d.get('permalink', '')}",
                    score=d.get("score") or 0,
                    created_utc=d.get("created_utc") or 0.0,
                    self_text=d.get("selftext") or "",
                ))

        if last_error is not None and failures == len(paths):
            raise last_error
        return threads

    def fetch_comments(self, thread: RedditThread) -> RedditThread:
        try:
            data = self._get_json(
                f"{thread.url}.json",
                params={"limit": str(self.max_comments_per_thread), "sort": "top"},
                headers=self.headers,
            )
        except Exception as e:
            # A thread without comments still contributes its body
            logger.warning(f"[reddit] Comments unavailable for {thread.url}: {e}")
            return thread
        if isinstance(data, list) and len(data) >= 2:
            thread.comments = extract_comments(data[1], self.max_comments_per_thread)
        return thread

    def retrieve(self, search_terms: List[str], category: str = "general", **options) -> List[Mention]:
        subreddits = options.get("subreddits") or suggest_subreddits(category)
        logger.info(f"[reddit] Searching {len(search_terms)} terms in r/{', r/'.join(subreddits)}")

        seen_ids = set()
        threads: List[RedditThread] = []
        for term in search_terms:
            for thread in self.search(term, subreddits, limit=self.max_threads_per_term):
                if thread.id in seen_ids:
                    continue
                seen_ids.add(thread.id)
                threads.append(thread)

        top = sorted(threads, key=lambda t: t.score, reverse=True)[: self.max_threads]
        enriched = [self.fetch_comments(t) for t in top]
        mentions = threads_to_mentions(enriched)
        logger.info(f"[reddit] {len(threads)} threads → {len(mentions)} mentions")
        return mentions
