"""Fixed-window request throttling for the registration and check-in endpoints.

Limits are counted per ``"{user_id}:{client_ip}"`` key. The in-memory limiter
is per-process; set ``RATE_LIMIT_REDIS_URL`` to share the window across
server instances.
"""
import logging
import os
import threading
import time
from typing import Callable, Dict, Optional, Tuple

import redis
from fastapi import Request

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = int(os.environ.get("RATE_LIMIT_MAX_REQUESTS", 10))
DEFAULT_WINDOW_SECONDS = int(os.environ.get("RATE_LIMIT_WINDOW_SECONDS", 60))


class RateLimiter:
    def allow(self, key: str) -> bool:
        raise NotImplementedError


class InMemoryRateLimiter(RateLimiter):
    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._buckets: Dict[str, Tuple[float, int]] = {}
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            window_start, count = self._buckets.get(key, (now, 0))
            if now - window_start >= self.window_seconds:
                window_start, count = now, 0
            if count >= self.max_requests:
                self._buckets[key] = (window_start, count)
                return False
            self._buckets[key] = (window_start, count + 1)
            return True

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()


class RedisRateLimiter(RateLimiter):
    def __init__(
        self,
        client,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        prefix: str = "ratelimit",
    ):
        self.client = client
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.prefix = prefix

    def allow(self, key: str) -> bool:
        redis_key = f"{self.prefix}:{key}"
        count = self.client.incr(redis_key)
        if count == 1:
            self.client.expire(redis_key, self.window_seconds)
        return count <= self.max_requests


_limiter: Optional[RateLimiter] = None
_limiter_lock = threading.Lock()


def build_rate_limiter() -> RateLimiter:
    redis_url = os.environ.get("RATE_LIMIT_REDIS_URL")
    if redis_url:
        logger.info("Using Redis-backed rate limiter")
        return RedisRateLimiter(redis.Redis.from_url(redis_url))
    return InMemoryRateLimiter()


def get_rate_limiter() -> RateLimiter:
    global _limiter
    if _limiter is None:
        with _limiter_lock:
            if _limiter is None:
                _limiter = build_rate_limiter()
    return _limiter


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit_key(user_id, request: Request) -> str:
    return f"{user_id}:{client_ip(request)}"
