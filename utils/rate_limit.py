"""
Rate limiting for external sources.

Two limiters live here:
  - TokenBucket / RateLimiterRegistry: per-domain token buckets with lazy
    refill, shared by every pipeline run in the process.
  - check_rate_limit / wait_for_rate_limit: a sliding-window request log per
    platform, used for coarse "N calls per window" quotas.

Adapters run in worker threads, so all shared state is guarded by locks and
the actual sleeping happens outside them.
"""

import logging
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional
from urllib.parse import urlparse

from config.settings import settings

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


# ─── Token Bucket ────────────────────────────────────────────────────────────


class TokenBucket:
    """
    Token bucket with capacity C and refill rate R tokens/sec.
    Tokens refill lazily on access: tokens = min(C, tokens + elapsed * R).
    """

    def __init__(
        self,
        capacity: int,
        refill_rate: float,
        clock: Clock = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if capacity < 1 or refill_rate <= 0:
            raise ValueError("capacity must be >= 1 and refill_rate > 0")
        self.capacity = capacity
        self.refill_rate = refill_rate
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._last_refill = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_rate)
        self._last_refill = now

    @property
    def tokens(self) -> float:
        with self._lock:
            self._refill()
            return self._tokens

    def try_acquire(self) -> bool:
        """Take a token if one is available. Never blocks."""
        with self._lock:
            self._refill()
            if self._tokens >= 1:
                self._tokens -= 1
                return True
            return False

    def wait_time(self) -> float:
        """Seconds until one token is available (0.0 if available now)."""
        with self._lock:
            self._refill()
            if self._tokens >= 1:
                return 0.0
            return (1 - self._tokens) / self.refill_rate

    def wait_for_token(self) -> float:
        """
        Block until a token is available, then consume it.
        Returns the number of seconds slept.
        """
        if self.try_acquire():
            return 0.0
        wait = self.wait_time()
        self._sleep(wait)
        with self._lock:
            self._refill()
            # May go slightly negative under contention; later callers wait longer.
            self._tokens -= 1
        return wait


@dataclass
class RateLimitStatus:
    domain: str
    available_tokens: float
    capacity: int
    refill_rate: float
    wait_seconds: float


class RateLimiterRegistry:
    """Process-wide map of domain -> TokenBucket."""

    def __init__(
        self,
        limits: Optional[Dict[str, tuple]] = None,
        default_limit: tuple = settings.DEFAULT_RATE_LIMIT,
        clock: Clock = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._limits: Dict[str, tuple] = dict(limits if limits is not None else settings.RATE_LIMITS)
        self._default_limit = default_limit
        self._buckets: Dict[str, TokenBucket] = {}
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()

    @staticmethod
    def domain_for(url_or_name: str) -> str:
        """
        Base domain for a URL ("https://www.reddit.com/r/x" -> "reddit.com").
        Plain service names ("serpapi") are returned lowercased as-is.
        """
        if "://" not in url_or_name:
            return url_or_name.strip().lower() or "default"
        try:
            hostname = urlparse(url_or_name).hostname or ""
        except ValueError:
            return "default"
        if not hostname:
            return "default"
        parts = hostname.split(".")
        return ".".join(parts[-2:]) if len(parts) >= 2 else hostname

    def bucket(self, domain: str) -> TokenBucket:
        with self._lock:
            if domain not in self._buckets:
                rps, burst = self._limits.get(domain, self._default_limit)
                self._buckets[domain] = TokenBucket(
                    capacity=burst, refill_rate=rps, clock=self._clock, sleep=self._sleep
                )
            return self._buckets[domain]

    def try_acquire(self, url_or_name: str) -> bool:
        return self.bucket(self.domain_for(url_or_name)).try_acquire()

    def wait_for_token(self, url_or_name: str) -> float:
        domain = self.domain_for(url_or_name)
        waited = self.bucket(domain).wait_for_token()
        if waited > 0:
            logger.info(f"[RateLimit] Throttled {domain} for {waited:.2f}s")
        return waited

    def configure(self, domain: str, requests_per_second: float, burst_capacity: int) -> None:
        """Override a domain's limit at runtime; its bucket starts fresh."""
        with self._lock:
            self._limits[domain] = (requests_per_second, burst_capacity)
            self._buckets.pop(domain, None)

    def status(self, url_or_name: str) -> RateLimitStatus:
        domain = self.domain_for(url_or_name)
        bucket = self.bucket(domain)
        return RateLimitStatus(
            domain=domain,
            available_tokens=bucket.tokens,
            capacity=bucket.capacity,
            refill_rate=bucket.refill_rate,
            wait_seconds=bucket.wait_time(),
        )

    def reset(self, domain: Optional[str] = None) -> None:
        with self._lock:
            if domain is None:
                self._buckets.clear()
            else:
                self._buckets.pop(domain, None)


rate_limiter = RateLimiterRegistry()


# ─── Sliding Window ──────────────────────────────────────────────────────────


_request_log: Dict[str, Deque[float]] = defaultdict(deque)
_request_log_lock = threading.Lock()


def check_rate_limit(
    platform: str,
    max_requests: int,
    window_seconds: float,
    clock: Clock = time.monotonic,
) -> bool:
    """
    Record a call for `platform` if fewer than `max_requests` calls were
    admitted in the trailing `window_seconds`. Returns False when limited.
    """
    now = clock()
    with _request_log_lock:
        log = _request_log[platform]
        while log and now - log[0] >= window_seconds:
            log.popleft()
        if len(log) >= max_requests:
            return False
        log.append(now)
        return True


def wait_for_rate_limit(
    platform: str,
    max_requests: int,
    window_seconds: float,
    poll_seconds: float = 0.5,
    clock: Clock = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> float:
    """Block until a call for `platform` is admitted; returns seconds waited."""
    waited = 0.0
    while not check_rate_limit(platform, max_requests, window_seconds, clock=clock):
        sleep(poll_seconds)
        waited += poll_seconds
    return waited


def reset_rate_limits(platform: Optional[str] = None) -> None:
    with _request_log_lock:
        if platform is None:
            _request_log.clear()
        else:
            _request_log.pop(platform, None)
