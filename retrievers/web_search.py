"""
Web Search Retriever
---------------------
Product discovery through SerpAPI's Google engine. Each of the first three
terms is searched as a review roundup, a reddit-scoped query and a plain
query; terms four and five get a forum-style query. Result snippets become
mentions, with the platform inferred from the result URL.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from config.settings import settings
from models.schemas import Mention
from retrievers.base import BaseRetriever, clean_text, platform_from_url, truncate

logger = logging.getLogger(__name__)

SERPAPI_URL = "https://serpapi.com/search.json"


def build_query(base_query: str, search_type: str) -> str:
    if search_type == "review":
        return f"{base_query} best review roundup {datetime.now().year}"
    if search_type == "reddit":
        return f"site:reddit.com {base_query}"
    if search_type == "forum":
        return f"{base_query} forum recommendation discussion"
    return base_query


def result_to_mention(result: Dict[str, Any]) -> Mention:
    link = result.get("link", "")
    return Mention(
        platform=platform_from_url(link),
        url=link,
        title=result.get("title"),
        text=truncate(clean_text(result.get("snippet")), 500),
        created_at=result.get("date"),
    )


class WebSearchRetriever(BaseRetriever):
    name = "web"
    platform = "web"

    def __init__(self, api_key: Optional[str] = None, max_results_per_search: int = 15, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key if api_key is not None else settings.SERPAPI_API_KEY
        self.max_results_per_search = max_results_per_search

    def search(self, query: str, search_type: str = "general") -> List[Mention]:
        params = {
            "q": build_query(query, search_type),
            "api_key": self.api_key,
            "engine": "google",
            "num": str(self.max_results_per_search),
            "gl": "us",
            "hl": "en",
        }
        data = self._get_json(SERPAPI_URL, params=params)
        return [
            result_to_mention(r)
            for r in data.get("organic_results", [])
            if r.get("link")
        ]

    def retrieve(self, search_terms: List[str], **options) -> List[Mention]:
        if not self.api_key:
            logger.warning("SERPAPI_API_KEY not set — web search skipped")
            return []

        plan = [(term, t) for term in search_terms[:3] for t in ("review", "reddit", "general")]
        plan += [(term, "forum") for term in search_terms[3:5]]

        mentions: List[Mention] = []
        for term, search_type in plan:
            mentions.extend(self.search(term, search_type))

        logger.info(f"[web] {len(plan)} searches → {len(mentions)} results")
        return mentions
