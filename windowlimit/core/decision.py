"""Fixed-window rate decisions against a shared counter store.

Each (client, method, path) triple owns one counter. The first request of a
window creates it and arms its expiry to the rule duration; the counter
disappears when the window ends and the next request opens a fresh one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from windowlimit.adapters.store.base import AbstractCounterStore
from windowlimit.core.logging import hash_for_log
from windowlimit.core.rules import Limit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Decision:
    """Outcome of a rate limit check.

    Attributes:
        allowed: Whether the request may reach the handler.
        limit: Max requests per window.
        remaining: Requests left in the current window (0 when rejected).
        retry_after_seconds: Seconds until the window resets, only when rejected.
    """

    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int | None = None

    @classmethod
    def admit(cls, *, limit: int, remaining: int) -> "Decision":
        return cls(allowed=True, limit=limit, remaining=max(0, remaining))

    @classmethod
    def reject(cls, *, limit: int, retry_after_seconds: int) -> "Decision":
        return cls(allowed=False, limit=limit, remaining=0, retry_after_seconds=retry_after_seconds)

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Limit": str(self.limit),
        }
        if not self.allowed and self.retry_after_seconds is not None:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers


class RateDecisionEngine:
    """Counts requests per counting key and decides admit/reject.

    Correctness under concurrency rests on the store's atomic increment; the
    engine holds no mutable state and can be shared by all requests.
    """

    def __init__(self, store: AbstractCounterStore, *, key_prefix: str, atomic: bool = True) -> None:
        """Initialize the engine.

        Args:
            store: Shared counter store.
            key_prefix: Namespace prepended to every counting key.
            atomic: Use the store's single-call increment + expiry.
        """
        if not key_prefix:
            raise ValueError("key_prefix must be a non-empty string")
        self._store = store
        self._key_prefix = key_prefix
        self._atomic = atomic

    @property
    def key_prefix(self) -> str:
        return self._key_prefix

    @property
    def store(self) -> AbstractCounterStore:
        return self._store

    def counting_key(self, rule: Limit, client: str) -> str:
        return f"{self._key_prefix}:({client}){rule.method}{rule.path}"

    def _count(self, key: str, rule: Limit) -> tuple[int, int | None]:
        if self._atomic:
            return self._store.incr_with_expiry(key, rule.duration)

        count = self._store.incr(key)
        if count == 1:
            self._store.expire(key, rule.duration)
        return count, None

    def decide(self, rule: Limit, client: str) -> Decision:
        """Consume one request from the client's window for `rule`.

        Raises:
            InfrastructureError: If any store call fails. Nothing is retried.
        """
        key = self.counting_key(rule, client)
        count, ttl = self._count(key, rule)

        if count > rule.requests:
            if ttl is None:
                ttl = self._store.ttl(key)
            # A key left without TTL reports a negative value; fall back to
            # the configured window length.
            if ttl < 0:
                retry_after = rule.duration
            else:
                retry_after = min(ttl, rule.duration)
            logger.info(
                "rate_limit.exceeded",
                extra={
                    "key_hash": hash_for_log(key),
                    "method": rule.method,
                    "path": rule.path,
                    "limit": rule.requests,
                    "count": count,
                    "retry_after_s": retry_after,
                },
            )
            return Decision.reject(limit=rule.requests, retry_after_seconds=retry_after)

        decision = Decision.admit(limit=rule.requests, remaining=rule.requests - count)
        logger.debug(
            "rate_limit.admitted",
            extra={
                "key_hash": hash_for_log(key),
                "method": rule.method,
                "path": rule.path,
                "limit": rule.requests,
                "remaining": decision.remaining,
            },
        )
        return decision
