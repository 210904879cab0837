"""Counter store interface.

Fixed-window limiting needs four primitives from a shared store: atomic
increment, expiry arming, remaining-TTL query and deletion. Implementations
must be safe for concurrent use from many in-flight requests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterator

# TTL sentinels, same values Redis returns from TTL.
TTL_NO_EXPIRY = -1
TTL_MISSING = -2


class AbstractCounterStore(ABC):
    """Interface for shared request counters.

    Every method may raise `InfrastructureError` when the store cannot be
    reached or answers with an error.
    """

    @abstractmethod
    def incr(self, key: str) -> int:
        """Create `key` at 0 if absent, increment by 1 and return the new value."""
        raise NotImplementedError

    @abstractmethod
    def expire(self, key: str, seconds: int) -> bool:
        """Set a time-to-live on an existing key.

        Returns:
            False when the key does not exist.
        """
        raise NotImplementedError

    @abstractmethod
    def ttl(self, key: str) -> int:
        """Seconds until `key` expires, TTL_NO_EXPIRY or TTL_MISSING."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove `key`. Returns False when it did not exist."""
        raise NotImplementedError

    @abstractmethod
    def scan(self, prefix: str) -> Iterator[str]:
        """Iterate over keys starting with `prefix`."""
        raise NotImplementedError

    def incr_with_expiry(self, key: str, seconds: int) -> tuple[int, int | None]:
        """Increment `key` and arm its expiry when this call opened the window.

        The base implementation issues separate calls, so a crash between the
        increment and the expiry leaves a key without TTL. Stores with a
        server-side atomic primitive override this.

        Returns:
            Tuple of (count, ttl). ttl is None when it was not fetched; the
            caller queries it only if it needs one.
        """
        count = self.incr(key)
        if count == 1:
            self.expire(key, seconds)
        return count, None
