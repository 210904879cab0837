"""Distributed fixed-window HTTP rate limiting for ASGI apps."""

from windowlimit.core.address import AddressSource, UseHeader, UsePeerAddress
from windowlimit.core.decision import Decision, RateDecisionEngine
from windowlimit.core.errors import (
    AddressResolutionError,
    AppError,
    ConfigurationError,
    InfrastructureError,
)
from windowlimit.core.middleware import RateLimitMiddleware
from windowlimit.core.rules import Limit, RuleTable
from windowlimit.limiter import Limiter

__all__ = [
    "AddressResolutionError",
    "AddressSource",
    "AppError",
    "ConfigurationError",
    "Decision",
    "InfrastructureError",
    "Limit",
    "Limiter",
    "RateDecisionEngine",
    "RateLimitMiddleware",
    "RuleTable",
    "UseHeader",
    "UsePeerAddress",
]
