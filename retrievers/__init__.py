from .base import (
    BaseRetriever, RetrieverError, deduplicate_mentions, normalize_url,
    platform_from_url, clean_text, truncate,
)
from .reddit import RedditRetriever, suggest_subreddits
from .web_search import WebSearchRetriever
from .mock import MockRetriever

__all__ = [
    "BaseRetriever", "RetrieverError", "deduplicate_mentions", "normalize_url",
    "platform_from_url", "clean_text", "truncate",
    "RedditRetriever", "suggest_subreddits", "WebSearchRetriever", "MockRetriever",
]
