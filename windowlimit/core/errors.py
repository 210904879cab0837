"""Rate limiter exception types.

Per-request failures (address resolution, counter store) are caught at the
middleware boundary and turned into HTTP responses. Configuration failures
abort construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    header: str
    operation: str
    method: str
    path: str
    http_status: int
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for limiter failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class AddressResolutionError(AppError):
    """Raised when a client address cannot be read from the request."""


class InfrastructureError(AppError):
    """Raised when the counter store cannot be reached or answers badly."""


class ConfigurationError(AppError):
    """Raised at construction time for invalid limiter or store setup."""
