"""
Per-key sliding-window rate limiter.

One instance is built per process and passed to the callers that need it;
the clock and sleep are injectable so tests never wait.
"""

import asyncio
import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque, Dict, Optional

import structlog

from ..config import get_settings
from ..exceptions import RateLimitError

logger = structlog.get_logger()


@dataclass(frozen=True)
class RateLimit:
    """At most max_requests per window_seconds."""
    max_requests: int
    window_seconds: float


OCR = "ocr"
BULK = "bulk"
GENERAL = "general"

DEFAULT_LIMITS: Dict[str, RateLimit] = {
    OCR: RateLimit(max_requests=15, window_seconds=60.0),
    BULK: RateLimit(max_requests=5, window_seconds=60.0),
    GENERAL: RateLimit(max_requests=30, window_seconds=60.0),
}


class RateLimiter:
    """Sliding-window limiter keyed by API identifier."""

    def __init__(
        self,
        limits: Optional[Dict[str, RateLimit]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.limits = dict(DEFAULT_LIMITS)
        if limits:
            self.limits.update(limits)
        self._clock = clock
        self._sleep = sleep
        self._buckets: Dict[str, Deque[float]] = {}

    @classmethod
    def from_settings(cls, **kwargs) -> "RateLimiter":
        """Defaults, with the OCR window taken from settings."""
        settings = get_settings()
        limits = {OCR: RateLimit(settings.ocr_rate_limit, settings.ocr_rate_window_seconds)}
        return cls(limits, **kwargs)

    def _limit(self, key: str) -> RateLimit:
        return self.limits.get(key, self.limits[GENERAL])

    def _prune(self, key: str) -> Deque[float]:
        bucket = self._buckets.setdefault(key, deque())
        window = self._limit(key).window_seconds
        now = self._clock()
        while bucket and now - bucket[0] >= window:
            bucket.popleft()
        return bucket

    def can_make_request(self, key: str) -> bool:
        return len(self._prune(key)) < self._limit(key).max_requests

    def record_request(self, key: str) -> None:
        self._prune(key).append(self._clock())

    def remaining(self, key: str) -> int:
        return max(0, self._limit(key).max_requests - len(self._prune(key)))

    def time_until_reset(self, key: str) -> float:
        """Seconds until the oldest request in the window expires."""
        bucket = self._prune(key)
        if not bucket:
            return 0.0
        return max(0.0, bucket[0] + self._limit(key).window_seconds - self._clock())

    def acquire(self, key: str) -> None:
        """Take a slot now or raise RateLimitError."""
        if not self.can_make_request(key):
            wait = self.time_until_reset(key)
            raise RateLimitError(
                f"Rate limit exceeded. Try again in {math.ceil(wait)}s",
                retry_after_seconds=wait,
            )
        self.record_request(key)

    async def wait_for_slot(self, key: str) -> None:
        """Wait until a slot is free, then take it."""
        while not self.can_make_request(key):
            wait = self.time_until_reset(key)
            logger.info("Rate limit reached, waiting", key=key, wait_seconds=round(wait, 2))
            await self._sleep(wait)
        self.record_request(key)

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self._buckets.clear()
        else:
            self._buckets.pop(key, None)
