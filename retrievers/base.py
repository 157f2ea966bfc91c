"""
Retriever base class and shared helpers.

Contract: retrieve(search_terms, **options) -> List[Mention]. An adapter
returns [] when there is nothing to find and raises only on transport
failures. guarded_retrieve() is the entry point the candidate generator
uses; it applies the shared circuit breaker and URL deduplication.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlsplit, urlunsplit

import requests
from bs4 import BeautifulSoup

from config.settings import settings
from models.schemas import Mention
from utils.rate_limit import RateLimiterRegistry, rate_limiter
from utils.resilience import CircuitBreaker, circuit_breaker, retry_call

logger = logging.getLogger(__name__)


class RetrieverError(Exception):
    """Transport-level failure talking to an external source."""

    def __init__(self, message: str, status_code: Optional[int] = None, platform: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.platform = platform


# ─── Text & URL Helpers ──────────────────────────────────────────────────────


def clean_text(text: Optional[str]) -> str:
    """Strip markup and HTML entities, collapse whitespace."""
    if not text:
        return ""
    if "<" in text or "&" in text:
        text = BeautifulSoup(text, "html.parser").get_text(" ")
    return re.sub(r"\s+", " ", text).strip()


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def normalize_url(url: str) -> str:
    """Lowercase scheme/host, drop fragment and trailing slash."""
    parts = urlsplit(url.strip())
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, "")).lower()


def deduplicate_mentions(mentions: Iterable[Mention]) -> List[Mention]:
    """Keep the first mention for each normalized URL."""
    seen = set()
    unique = []
    for m in mentions:
        key = normalize_url(m.url)
        if key in seen:
            continue
        seen.add(key)
        unique.append(m)
    return unique


_PLATFORM_HOSTS = (
    ("reddit.com", "reddit"),
    ("tiktok.com", "tiktok"),
    ("trustpilot.com", "trustpilot"),
    ("amazon.com", "amazon"),
    ("sephora.com", "sephora"),
    ("youtube.com", "youtube"),
)


def platform_from_url(url: str) -> str:
    lowered = url.lower()
    for host, platform in _PLATFORM_HOSTS:
        if host in lowered:
            return platform
    return "web"


# ─── Base Retriever ──────────────────────────────────────────────────────────


class BaseRetriever:
    name = "base"
    platform = "web"

    def __init__(
        self,
        limiter: Optional[RateLimiterRegistry] = None,
        breaker: Optional[CircuitBreaker] = None,
        session: Optional[requests.Session] = None,
        max_retries: Optional[int] = None,
    ):
        self.limiter = limiter or rate_limiter
        self.breaker = breaker or circuit_breaker
        self.session = session or requests.Session()
        self.max_retries = settings.MAX_RETRIES if max_retries is None else max_retries

    def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None,
                  headers: Optional[Dict[str, str]] = None) -> Any:
        """Rate-limited HTTP GET with retry + exponential backoff."""
        def _request():
            self.limiter.wait_for_token(url)
            try:
                resp = self.session.get(
                    url, params=params, headers=headers, timeout=settings.REQUEST_TIMEOUT
                )
            except requests.RequestException as e:
                raise RetrieverError(str(e), platform=self.platform) from e
            if resp.status_code >= 400:
                raise RetrieverError(
                    f"HTTP {resp.status_code}: {resp.reason}",
                    status_code=resp.status_code,
                    platform=self.platform,
                )
            return resp.json()

        return retry_call(
            _request,
            max_retries=self.max_retries,
            on_retry=lambda attempt, err: logger.warning(
                f"[{self.name}] Attempt {attempt} failed for {url}: {err}"
            ),
        )

    def retrieve(self, search_terms: List[str], **options) -> List[Mention]:
        raise NotImplementedError

    def guarded_retrieve(self, search_terms: List[str], **options) -> List[Mention]:
        """
        retrieve() behind the shared circuit breaker. Returns [] without
        calling the source while its circuit is open.
        """
        if self.breaker.is_disabled(self.name):
            logger.warning(f"[{self.name}] Circuit open, skipping source")
            return []
        try:
            mentions = self.retrieve(search_terms, **options)
        except Exception:
            self.breaker.record_failure(self.name)
            raise
        self.breaker.record_success(self.name)
        return deduplicate_mentions(mentions)

    def __repr__(self):
        return f"<Retriever: {self.name}>"
