"""Counter store adapters.

The decision engine depends only on `AbstractCounterStore`, so the shared
Redis store and the per-process in-memory store are interchangeable.
"""

from windowlimit.adapters.store.base import TTL_MISSING, TTL_NO_EXPIRY, AbstractCounterStore
from windowlimit.adapters.store.in_memory import InMemoryCounterStore
from windowlimit.adapters.store.redis_store import RedisCounterStore

__all__ = [
    "AbstractCounterStore",
    "InMemoryCounterStore",
    "RedisCounterStore",
    "TTL_MISSING",
    "TTL_NO_EXPIRY",
]
