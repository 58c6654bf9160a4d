"""Transport-level duplicate suppression for EventSub deliveries.

Twitch resends a notification when it does not see a timely 2xx. The guard
remembers message IDs for a short window so those resends are answered with
200 without touching the dispatcher. It is not the durable ledger; the
delivery log is.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from cachetools import TTLCache  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)


class IdempotencyGuard:
    """Concurrency-safe set of recently processed message IDs."""

    def __init__(
        self,
        ttl: float = 900.0,
        *,
        maxsize: int = 200_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._seen: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl, timer=clock)

    def is_duplicate(self, message_id: str) -> bool:
        with self._lock:
            return message_id in self._seen

    def mark_processed(self, message_id: str) -> None:
        with self._lock:
            self._seen[message_id] = self._clock()

    def claim(self, message_id: str) -> bool:
        """Atomically mark *message_id*; False if it was already seen."""
        with self._lock:
            if message_id in self._seen:
                return False
            self._seen[message_id] = self._clock()
            return True

    def sweep(self) -> int:
        """Drop entries older than the TTL. Returns the number removed."""
        with self._lock:
            removed = len(self._seen.expire())
        if removed:
            logger.debug(f"Idempotency guard evicted {removed} message id(s)")
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)
