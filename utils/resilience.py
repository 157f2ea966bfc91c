"""
Retry and circuit-breaker primitives shared by every external call.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from config.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")
RetryObserver = Callable[[int, BaseException], None]


# ─── Retry ───────────────────────────────────────────────────────────────────


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number `attempt + 1`: min(max_delay, base * 2^attempt)."""
    return min(max_delay, base_delay * (2 ** attempt))


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = settings.RETRY_BASE_DELAY_SECONDS,
    max_delay: float = settings.RETRY_MAX_DELAY_SECONDS,
    on_retry: Optional[RetryObserver] = None,
) -> T:
    """
    Await `fn()` and retry up to `max_retries` times on failure with
    exponential backoff. The last error is re-raised unchanged.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            if attempt >= max_retries:
                raise
            if on_retry is not None:
                on_retry(attempt + 1, e)
            await asyncio.sleep(backoff_delay(attempt, base_delay, max_delay))
            attempt += 1


def retry_call(
    fn: Callable[[], T],
    max_retries: int = settings.MAX_RETRIES,
    base_delay: float = settings.RETRY_BASE_DELAY_SECONDS,
    max_delay: float = settings.RETRY_MAX_DELAY_SECONDS,
    on_retry: Optional[RetryObserver] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Blocking twin of `with_retry` for the requests-based adapters."""
    attempt = 0
    while True:
        try:
            return fn()
        except Exception as e:
            if attempt >= max_retries:
                raise
            if on_retry is not None:
                on_retry(attempt + 1, e)
            sleep(backoff_delay(attempt, base_delay, max_delay))
            attempt += 1


# ─── Circuit Breaker ─────────────────────────────────────────────────────────


@dataclass
class _FailureRecord:
    count: int
    last_failure: float


class CircuitBreaker:
    """
    Per-source failure counter.

    A source is disabled once it has `threshold` failures, each within
    `reset_seconds` of the previous one. It re-enables on its own once
    `reset_seconds` pass without a new failure; `record_success` clears it
    immediately. Callers check `is_disabled` and skip the call when open.
    """

    def __init__(
        self,
        threshold: int = settings.CIRCUIT_FAILURE_THRESHOLD,
        reset_seconds: float = settings.CIRCUIT_RESET_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.threshold = threshold
        self.reset_seconds = reset_seconds
        self._clock = clock
        self._failures: Dict[str, _FailureRecord] = {}
        self._lock = threading.Lock()

    def record_failure(self, source: str) -> None:
        now = self._clock()
        with self._lock:
            record = self._failures.get(source)
            if record is None or now - record.last_failure > self.reset_seconds:
                record = _FailureRecord(count=1, last_failure=now)
            else:
                record.count += 1
                record.last_failure = now
            self._failures[source] = record
            count = record.count

        if count >= self.threshold:
            logger.warning(f"[CircuitBreaker] Source {source} disabled after {count} failures")

    def record_success(self, source: str) -> None:
        with self._lock:
            self._failures.pop(source, None)

    def is_disabled(self, source: str) -> bool:
        with self._lock:
            record = self._failures.get(source)
            if record is None:
                return False
            if self._clock() - record.last_failure > self.reset_seconds:
                del self._failures[source]
                return False
            return record.count >= self.threshold

    def status(self, source: str) -> Dict[str, Any]:
        disabled = self.is_disabled(source)
        with self._lock:
            record = self._failures.get(source)
            failures = record.count if record else 0
        return {"failures": failures, "disabled": disabled}

    def reset(self) -> None:
        with self._lock:
            self._failures.clear()


circuit_breaker = CircuitBreaker()
