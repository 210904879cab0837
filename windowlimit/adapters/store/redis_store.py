"""Redis-backed counter store.

Counts are shared by every process talking to the same Redis, which is what
makes the limit global across workers and hosts. Atomicity of INCR is the
only ordering guarantee the limiter relies on.
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from typing import Iterator

import redis

from windowlimit.adapters.store.base import AbstractCounterStore
from windowlimit.core.errors import ConfigurationError, InfrastructureError

logger = logging.getLogger(__name__)

# Increment, then arm the window when this call created the key or the key
# lost its TTL. Returns {count, ttl}.
INCR_WITH_EXPIRY_LUA = """
local count = redis.call('INCR', KEYS[1])
local ttl = redis.call('TTL', KEYS[1])
if count == 1 or ttl == -1 then
    redis.call('EXPIRE', KEYS[1], ARGV[1])
    ttl = tonumber(ARGV[1])
end
return {count, ttl}
"""

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def _escape_glob(value: str) -> str:
    return _GLOB_SPECIAL.sub(r"\\\1", value)


@contextmanager
def _store_errors(operation: str):
    try:
        yield
    except redis.RedisError as exc:
        logger.debug(
            "rate_limit.store_call_failed",
            extra={"operation": operation, "error_type": type(exc).__name__},
        )
        raise InfrastructureError(
            code="counter_store_unavailable",
            message=f"Counter store {operation} failed: {exc}",
            details={"operation": operation},
        ) from exc


class RedisCounterStore(AbstractCounterStore):
    """Counter store on top of a redis-py client.

    The client may be owned (built from a URL via `from_url`) or borrowed
    from the caller. redis-py clients pool connections and are safe to share
    between threads.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._client = client
        self._incr_with_expiry = client.register_script(INCR_WITH_EXPIRY_LUA)

    @classmethod
    def from_url(cls, url: str | None, *, socket_timeout: float | None = None) -> "RedisCounterStore":
        """Build a store from a Redis connection string.

        Args:
            url: Connection string such as ``redis://:secret@host:6379/0``.
            socket_timeout: Optional socket timeout in seconds.

        Raises:
            ConfigurationError: If the URL is missing or malformed.
        """
        if not url:
            raise ConfigurationError(
                code="store_url_missing",
                message="No counter store connection string configured",
                details={"hint": "Set REDIS_URL or pass a store to the limiter"},
            )
        try:
            client = redis.Redis.from_url(url, socket_timeout=socket_timeout, decode_responses=True)
        except ValueError as exc:
            raise ConfigurationError(
                code="store_url_invalid",
                message=f"Invalid counter store connection string: {exc}",
            ) from exc
        return cls(client)

    @property
    def client(self) -> redis.Redis:
        return self._client

    def incr(self, key: str) -> int:
        with _store_errors("incr"):
            return int(self._client.incr(key))

    def expire(self, key: str, seconds: int) -> bool:
        with _store_errors("expire"):
            return bool(self._client.expire(key, seconds))

    def ttl(self, key: str) -> int:
        with _store_errors("ttl"):
            return int(self._client.ttl(key))

    def delete(self, key: str) -> bool:
        with _store_errors("delete"):
            return bool(self._client.delete(key))

    def scan(self, prefix: str) -> Iterator[str]:
        with _store_errors("scan"):
            for key in self._client.scan_iter(match=_escape_glob(prefix) + "*"):
                yield key.decode() if isinstance(key, bytes) else key

    def incr_with_expiry(self, key: str, seconds: int) -> tuple[int, int]:
        """Single round-trip increment + conditional expiry (Lua script)."""
        with _store_errors("incr_with_expiry"):
            count, ttl = self._incr_with_expiry(keys=[key], args=[seconds])
        return int(count), int(ttl)
