"""
Token-bucket rate limiter.

- In-memory, keyed by ``<scope>:<client ip>``.
- Process-local: each worker keeps its own buckets.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from callmap.core.config import settings


@dataclass
class RateLimitConfig:
    enabled: bool = True
    attempts: int = 5
    window_seconds: int = 15 * 60

    @property
    def refill_rate_per_sec(self) -> float:
        return self.attempts / float(max(1, self.window_seconds))


class TokenBucket:
    def __init__(self, capacity: int, refill_rate_per_sec: float, time_fn: Callable[[], float] = time.monotonic):
        self.capacity = max(1, capacity)
        self.tokens = float(self.capacity)
        self.refill_rate = max(0.0, refill_rate_per_sec)
        self.time_fn = time_fn
        self.last_refill = self.time_fn()

    def _refill(self) -> None:
        now = self.time_fn()
        elapsed = now - self.last_refill
        if elapsed <= 0:
            return
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def allow(self, cost: float = 1.0) -> bool:
        self._refill()
        if self.tokens >= cost:
            self.tokens -= cost
            return True
        return False


class InMemoryRateLimiter:
    def __init__(self, config: RateLimitConfig, time_fn: Callable[[], float] = time.monotonic):
        self.config = config
        self.time_fn = time_fn
        self.buckets: Dict[str, TokenBucket] = {}
        self._lock = threading.Lock()

    def _bucket_for(self, key: str) -> TokenBucket:
        if key not in self.buckets:
            self.buckets[key] = TokenBucket(
                capacity=self.config.attempts,
                refill_rate_per_sec=self.config.refill_rate_per_sec,
                time_fn=self.time_fn,
            )
        return self.buckets[key]

    def allow(self, key: str) -> bool:
        if not self.config.enabled:
            return True
        with self._lock:
            return self._bucket_for(key).allow()

    def clear(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self.buckets.clear()
            else:
                self.buckets.pop(key, None)


def build_login_rate_limit_config(settings_obj=None) -> RateLimitConfig:
    cfg = settings_obj or settings
    return RateLimitConfig(
        enabled=cfg.LOGIN_RATE_LIMIT_ATTEMPTS > 0,
        attempts=cfg.LOGIN_RATE_LIMIT_ATTEMPTS,
        window_seconds=cfg.LOGIN_RATE_LIMIT_WINDOW_SECONDS,
    )


_login_limiter: Optional[InMemoryRateLimiter] = None


def get_login_limiter() -> InMemoryRateLimiter:
    global _login_limiter
    if _login_limiter is None:
        _login_limiter = InMemoryRateLimiter(build_login_rate_limit_config())
    return _login_limiter


def reset_login_limiter(limiter: Optional[InMemoryRateLimiter] = None) -> None:
    """Drop all buckets (tests) or install a specific limiter."""
    global _login_limiter
    _login_limiter = limiter
