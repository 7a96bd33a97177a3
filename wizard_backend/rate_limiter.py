"""
Per-session submission rate limiting.

InMemoryRateLimiter is the single-process implementation. RedisRateLimiter
keeps the same fixed-window counter in Redis so several worker processes
share one count per session.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import redis

from wizard_backend.config import RATE_LIMIT_MAX_REQUESTS, RATE_LIMIT_WINDOW_SECONDS, REDIS_URL


@dataclass
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: Optional[int] = None


@dataclass
class _Window:
    count: int
    reset_at: float


class InMemoryRateLimiter:
    """At most ``max_requests`` submissions per session inside each ``window_seconds`` window."""

    def __init__(
        self,
        max_requests: int = RATE_LIMIT_MAX_REQUESTS,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, _Window] = {}

    def check(self, session_id: str) -> RateLimitDecision:
        # Check and increment happen without an await in between.
        now = self._clock()
        window = self._windows.get(session_id)

        if window is None or now >= window.reset_at:
            self._windows[session_id] = _Window(count=1, reset_at=now + self.window_seconds)
            return RateLimitDecision(allowed=True)

        if window.count >= self.max_requests:
            retry_after = max(1, math.ceil(window.reset_at - now))
            return RateLimitDecision(allowed=False, retry_after_seconds=retry_after)

        window.count += 1
        return RateLimitDecision(allowed=True)

    def count_for(self, session_id: str) -> int:
        window = self._windows.get(session_id)
        if window is None or self._clock() >= window.reset_at:
            return 0
        return window.count


class RedisRateLimiter:
    """Fixed-window counter stored in Redis with a TTL equal to the window."""

    def __init__(
        self,
        client,
        max_requests: int = RATE_LIMIT_MAX_REQUESTS,
        window_seconds: int = RATE_LIMIT_WINDOW_SECONDS,
        key_prefix: str = "video-wizard:rate:",
    ):
        self.client = client
        self.max_requests = max_requests
        self.window_seconds = int(window_seconds)
        self.key_prefix = key_prefix

    def check(self, session_id: str) -> RateLimitDecision:
        key = f"{self.key_prefix}{session_id}"
        count = int(self.client.incr(key))
        if count == 1:
            self.client.expire(key, self.window_seconds)

        if count > self.max_requests:
            ttl = int(self.client.ttl(key))
            if ttl < 0:
                # Counter lost its expiry; start a fresh window instead of blocking forever.
                self.client.expire(key, self.window_seconds)
                ttl = self.window_seconds
            return RateLimitDecision(allowed=False, retry_after_seconds=max(1, ttl))

        return RateLimitDecision(allowed=True)


def get_rate_limiter():
    """Redis-backed limiter when REDIS_URL is configured, in-memory otherwise.

    Only the counter is shared. JobChangeFeed stays per process, so with several
    workers a subscribe stream gets pushes only for jobs running in its own
    worker; clients still converge through status polling.
    """
    if REDIS_URL:
        logging.info("🚦 Using Redis rate limiter")
        logging.warning("Job change feed is per process; subscribers on other workers rely on polling")
        return RedisRateLimiter(redis.Redis.from_url(REDIS_URL, decode_responses=True))
    logging.info("🚦 Using in-memory rate limiter")
    return InMemoryRateLimiter()
