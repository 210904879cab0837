"""Limiter: rule table, address source and decision engine in one object.

Example:
    >>> limiter = Limiter([Limit("GET", "/", requests=3, duration=60)])
    >>> app = limiter.handle(app)
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

from starlette.types import ASGIApp

from windowlimit.adapters.store.base import TTL_NO_EXPIRY, AbstractCounterStore
from windowlimit.adapters.store.redis_store import RedisCounterStore
from windowlimit.core.address import AddressSource, resolve_address, source_from_header
from windowlimit.core.config import settings
from windowlimit.core.decision import Decision, RateDecisionEngine
from windowlimit.core.middleware import RateLimitMiddleware
from windowlimit.core.rules import Limit, RuleTable

logger = logging.getLogger(__name__)


class Limiter:
    """Fixed-window limiter over a shared counter store.

    Arguments left as None fall back to `settings.limiter`. When no store is
    given, a Redis store is created from `REDIS_URL`; the limiter never
    closes a store it was handed.
    """

    def __init__(
        self,
        limits: Iterable[Limit],
        source: AddressSource | None = None,
        store: AbstractCounterStore | None = None,
        *,
        key_prefix: str | None = None,
        strict: bool | None = None,
        atomic: bool | None = None,
    ) -> None:
        """Build the limiter.

        Args:
            limits: Ordered rules; one per (method, path).
            source: Where to read the client address from.
            store: Counter store to use instead of connecting to Redis.
            key_prefix: Namespace for counting keys.
            strict: Reject duplicate rules instead of keeping the last.
            atomic: Use the store's single-call increment + expiry.

        Raises:
            ConfigurationError: Invalid rules or store connection string.
        """
        cfg = settings.limiter

        self.rules = RuleTable.build(limits, strict=cfg.strict_rules if strict is None else strict)
        self.source = source if source is not None else source_from_header(cfg.address_header)

        if store is None:
            store = RedisCounterStore.from_url(
                settings.store.url,
                socket_timeout=settings.store.socket_timeout_seconds,
            )

        self.engine = RateDecisionEngine(
            store,
            key_prefix=key_prefix or cfg.key_prefix,
            atomic=cfg.atomic if atomic is None else atomic,
        )

        logger.info(
            "rate_limit.configured",
            extra={
                "rules": len(self.rules),
                "source": type(self.source).__name__,
                "store": type(store).__name__,
                "key_prefix": self.engine.key_prefix,
            },
        )

    @property
    def store(self) -> AbstractCounterStore:
        return self.engine.store

    def resolve(self, *, headers: Mapping[str, str], peer: str) -> str:
        return resolve_address(self.source, headers=headers, peer=peer)

    def decide(self, rule: Limit, client: str) -> Decision:
        return self.engine.decide(rule, client)

    def check(self, method: str, path: str, *, headers: Mapping[str, str], peer: str) -> Decision | None:
        """Run the full decision for a request outside of the middleware.

        Returns:
            None when no rule matches, otherwise the decision.

        Raises:
            AddressResolutionError: Client address could not be read.
            InfrastructureError: Counter store failure.
        """
        rule = self.rules.lookup(method, path)
        if rule is None:
            return None
        return self.decide(rule, self.resolve(headers=headers, peer=peer))

    def handle(self, app: ASGIApp) -> RateLimitMiddleware:
        """Wrap an ASGI app so every request passes through this limiter."""
        return RateLimitMiddleware(app, limiter=self)

    def reset(self, client: str, method: str, path: str) -> bool:
        """Forget the current window of one client on one route."""
        rule = self.rules.lookup(method, path)
        if rule is None:
            return False
        return self.store.delete(self.engine.counting_key(rule, client))

    def _duration_for(self, key: str) -> int:
        # Keys end with ")METHODpath"; the client part may itself contain ")".
        route = key[key.rfind(")") + 1:]
        for rule in self.rules:
            if f"{rule.method}{rule.path}" == route:
                return rule.duration
        return max((rule.duration for rule in self.rules), default=1)

    def sweep(self) -> int:
        """Arm an expiry on namespace keys that lost theirs.

        A process dying between increment and expiry (non-atomic mode, or a
        store without scripting) leaves a counter that never resets. Run this
        periodically to repair such keys.

        Returns:
            Number of keys repaired.
        """
        repaired = 0
        for key in list(self.store.scan(f"{self.engine.key_prefix}:")):
            if self.store.ttl(key) == TTL_NO_EXPIRY:
                self.store.expire(key, self._duration_for(key))
                repaired += 1
        if repaired:
            logger.warning("rate_limit.sweep_repaired", extra={"keys": repaired})
        return repaired

    def clear(self) -> int:
        """Delete every counter in this limiter's namespace."""
        deleted = 0
        for key in list(self.store.scan(f"{self.engine.key_prefix}:")):
            if self.store.delete(key):
                deleted += 1
        return deleted
