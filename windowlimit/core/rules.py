"""Limit rules and the lookup table built from them."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from windowlimit.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


def rule_key(method: str, path: str) -> str:
    return f"{method}:{path}"


@dataclass(frozen=True)
class Limit:
    """A quota for one route.

    Attributes:
        method: HTTP method to limit (matched exactly, e.g. "GET").
        path: Route path to limit (matched exactly, no patterns).
        requests: Requests allowed per window.
        duration: Window length in seconds.
    """

    method: str
    path: str
    requests: int
    duration: int

    def __post_init__(self) -> None:
        if not self.method:
            raise ConfigurationError(code="invalid_limit", message="method must be non-empty")
        if not self.path:
            raise ConfigurationError(code="invalid_limit", message="path must be non-empty")
        for field in ("requests", "duration"):
            value = getattr(self, field)
            # bool is an int subclass but never a meaningful quota
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigurationError(
                    code="invalid_limit",
                    message=f"{field} must be an integer >= 1",
                    details={"method": self.method, "path": self.path},
                )


class RuleTable:
    """Immutable (method, path) → Limit mapping.

    Duplicate rules keep the last one unless `strict` is set, in which case
    construction fails.
    """

    def __init__(self, rules: Mapping[str, Limit]) -> None:
        self._rules = MappingProxyType(dict(rules))

    @classmethod
    def build(cls, limits: Iterable[Limit], *, strict: bool = False) -> "RuleTable":
        """Build a table from an ordered list of limits.

        Raises:
            ConfigurationError: On a duplicate (method, path) when strict.
        """
        rules: dict[str, Limit] = {}
        for limit in limits:
            key = rule_key(limit.method, limit.path)
            if key in rules:
                if strict:
                    raise ConfigurationError(
                        code="duplicate_rule",
                        message=f"Duplicate rate limit rule for {limit.method} {limit.path}",
                        details={"method": limit.method, "path": limit.path},
                    )
                logger.warning(
                    "rate_limit.duplicate_rule",
                    extra={"method": limit.method, "path": limit.path},
                )
            rules[key] = limit
        return cls(rules)

    def lookup(self, method: str, path: str) -> Limit | None:
        return self._rules.get(rule_key(method, path))

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Limit]:
        return iter(self._rules.values())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RuleTable):
            return NotImplemented
        return dict(self._rules) == dict(other._rules)

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"RuleTable({list(self._rules)})"
