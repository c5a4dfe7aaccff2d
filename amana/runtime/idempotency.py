"""Deduplication of retried inbound webhook deliveries.

Telegram re-sends an update when it does not get a timely 200.  The guard
remembers each ``delivery_id`` for a TTL so a retried delivery is
acknowledged without running the orchestrator again.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable

from loguru import logger


class DeliveryGuard:
    """Bounded ``delivery_id -> first_seen`` map with TTL expiry."""

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._seen: OrderedDict[str, float] = OrderedDict()
        self._mutex = threading.Lock()

    def seen(self, delivery_id: str | int) -> bool:
        """Return True if *delivery_id* was already seen within the TTL.

        Otherwise record it and return False.  Check and insert happen
        under one mutex so two concurrent deliveries cannot both pass.
        """
        key = str(delivery_id)
        now = self._clock()
        with self._mutex:
            self._sweep(now)
            if key in self._seen:
                logger.info(f"Duplicate delivery {key} ignored")
                return True
            self._seen[key] = now
            while len(self._seen) > self.max_entries:
                self._seen.popitem(last=False)
            return False

    def __len__(self) -> int:
        return len(self._seen)

    def _sweep(self, now: float) -> None:
        # Insertion order == first_seen order, so expired keys sit at the front.
        while self._seen:
            oldest_key, first_seen = next(iter(self._seen.items()))
            if now - first_seen <= self.ttl:
                break
            del self._seen[oldest_key]
