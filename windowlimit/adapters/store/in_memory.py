"""In-memory counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
- Expired keys are dropped lazily on access.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterator

from windowlimit.adapters.store.base import TTL_MISSING, TTL_NO_EXPIRY, AbstractCounterStore


@dataclass
class _Counter:
    value: int
    expires_at: float | None = None


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store backed by a dict, mirroring Redis INCR/EXPIRE/TTL semantics.

    Useful for tests and single-process deployments. It does not share counts
    between processes, so it is not a substitute for Redis behind a load
    balancer.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the store.

        Args:
            clock: Time source function returning UNIX time in seconds.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._counters: dict[str, _Counter] = {}

    def _live(self, key: str, now: float) -> _Counter | None:
        counter = self._counters.get(key)
        if counter is not None and counter.expires_at is not None and counter.expires_at <= now:
            del self._counters[key]
            return None
        return counter

    def _ttl_locked(self, key: str, now: float) -> int:
        counter = self._live(key, now)
        if counter is None:
            return TTL_MISSING
        if counter.expires_at is None:
            return TTL_NO_EXPIRY
        return max(0, int(math.ceil(counter.expires_at - now)))

    def incr(self, key: str) -> int:
        with self._lock:
            counter = self._live(key, self._clock())
            if counter is None:
                counter = _Counter(value=0)
                self._counters[key] = counter
            counter.value += 1
            return counter.value

    def expire(self, key: str, seconds: int) -> bool:
        with self._lock:
            now = self._clock()
            counter = self._live(key, now)
            if counter is None:
                return False
            counter.expires_at = now + seconds
            return True

    def ttl(self, key: str) -> int:
        with self._lock:
            return self._ttl_locked(key, self._clock())

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._counters.pop(key, None) is not None

    def scan(self, prefix: str) -> Iterator[str]:
        with self._lock:
            now = self._clock()
            keys = [k for k in list(self._counters) if k.startswith(prefix) and self._live(k, now)]
        return iter(keys)

    def incr_with_expiry(self, key: str, seconds: int) -> tuple[int, int]:
        """Increment and arm the expiry under a single lock acquisition."""
        with self._lock:
            now = self._clock()
            counter = self._live(key, now)
            if counter is None:
                counter = _Counter(value=0)
                self._counters[key] = counter
            counter.value += 1
            if counter.value == 1 or counter.expires_at is None:
                counter.expires_at = now + seconds
            return counter.value, self._ttl_locked(key, now)
