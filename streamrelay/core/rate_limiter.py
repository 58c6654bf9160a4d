"""Token-bucket rate limiters for inbound traffic.

Three independent limiters protect the service:

- webhook: bounds EventSub notification processing (single shared key)
- caller: per authenticated identity, or per client address when anonymous
- global: backstop across every caller (single shared key)

Limiters never block. ``check()`` answers immediately and, on rejection,
carries a retry hint for the ``Retry-After`` header. Bucket state lives in a
``cachetools.TTLCache`` keyed by caller; every access re-inserts the bucket,
so the TTL measures idle time and ``sweep()`` drops keys nobody has used
within the idle window.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from cachetools import TTLCache  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

WEBHOOK_KEY = "webhook"
GLOBAL_KEY = "global"


@dataclass
class TokenBucket:
    tokens: float
    updated_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after: int = 0


class TokenBucketLimiter:
    """Keyed token-bucket limiter with idle-key eviction."""

    def __init__(
        self,
        name: str,
        rate: float,
        capacity: float,
        *,
        idle_ttl: float = 600.0,
        maxsize: int = 100_000,
        clock: Clock = time.monotonic,
    ) -> None:
        if rate <= 0 or capacity <= 0:
            raise ValueError("rate and capacity must be positive")
        self.name = name
        self.rate = rate
        self.capacity = capacity
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: TTLCache = TTLCache(maxsize=maxsize, ttl=idle_ttl, timer=clock)

    @classmethod
    def per_second(cls, name: str, rate: float, burst: int, **kwargs) -> TokenBucketLimiter:
        return cls(name, rate, burst, **kwargs)

    @classmethod
    def per_minute(cls, name: str, rate: float, burst: int, **kwargs) -> TokenBucketLimiter:
        return cls(name, rate / 60.0, burst, **kwargs)

    def check(self, key: str) -> RateLimitDecision:
        """Take one token for *key*, or report how long until one is available."""
        with self._lock:
            now = self._clock()
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = TokenBucket(tokens=self.capacity, updated_at=now)
            else:
                elapsed = max(now - bucket.updated_at, 0.0)
                bucket.tokens = min(self.capacity, bucket.tokens + elapsed * self.rate)
                bucket.updated_at = now

            if bucket.tokens >= 1.0:
                bucket.tokens -= 1.0
                decision = RateLimitDecision(allowed=True)
            else:
                wait = (1.0 - bucket.tokens) / self.rate
                decision = RateLimitDecision(allowed=False, retry_after=max(1, math.ceil(wait)))

            # Re-insert to refresh the idle TTL
            self._buckets[key] = bucket
            return decision

    def allow(self, key: str) -> bool:
        return self.check(key).allowed

    def sweep(self) -> int:
        """Evict buckets idle longer than the TTL. Returns the number removed."""
        with self._lock:
            removed = len(self._buckets.expire())
        if removed:
            logger.debug(f"Rate limiter '{self.name}' evicted {removed} idle key(s)")
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)


@dataclass
class RateLimiters:
    """The three inbound limiters, built together from settings."""

    webhook: TokenBucketLimiter
    caller: TokenBucketLimiter
    global_: TokenBucketLimiter

    @classmethod
    def from_settings(cls, settings, clock: Clock = time.monotonic) -> RateLimiters:
        idle = settings.rate_limit_idle_seconds
        return cls(
            webhook=TokenBucketLimiter.per_second(
                "webhook",
                settings.webhook_rate_per_second,
                settings.webhook_burst,
                idle_ttl=idle,
                clock=clock,
            ),
            caller=TokenBucketLimiter.per_minute(
                "caller",
                settings.caller_rate_per_minute,
                settings.caller_burst,
                idle_ttl=idle,
                clock=clock,
            ),
            global_=TokenBucketLimiter.per_second(
                "global",
                settings.global_rate_per_second,
                settings.global_burst,
                idle_ttl=idle,
                clock=clock,
            ),
        )

    def sweep(self) -> int:
        return self.webhook.sweep() + self.caller.sweep() + self.global_.sweep()
