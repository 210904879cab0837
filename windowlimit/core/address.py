"""Client address resolution.

The client identity is either the transport peer address or the first hop
of a proxy header such as X-Forwarded-For. Ports are stripped so that
successive connections from the same host share one quota.

Bare IPv6 literals without brackets are ambiguous with ``host:port`` and
lose their last group; bracketed forms (``[::1]:443``) are handled.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Union

from windowlimit.core.errors import AddressResolutionError


@dataclass(frozen=True)
class UsePeerAddress:
    """Use the transport-level peer address."""


@dataclass(frozen=True)
class UseHeader:
    """Read the client address from a request header."""

    name: str

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("header name must be a non-empty string")


AddressSource = Union[UsePeerAddress, UseHeader]


def source_from_header(header: str | None) -> AddressSource:
    """Build an address source from an optional header name."""
    if header:
        return UseHeader(header)
    return UsePeerAddress()


def format_peer(client: tuple[str, int] | None) -> str:
    """Render an ASGI ``client`` tuple as ``host:port``."""
    if not client:
        return ""
    host, port = client[0], client[1]
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def strip_port(address: str) -> str:
    """Drop a trailing ``:port`` from an address.

    Examples:
        >>> strip_port("0.0.0.0:80")
        '0.0.0.0'
        >>> strip_port("0.0.0.0")
        '0.0.0.0'
        >>> strip_port("[2001:db8::1]:443")
        '2001:db8::1'
    """
    if address.startswith("["):
        end = address.find("]")
        if end != -1:
            return address[1:end]
    idx = address.rfind(":")
    if idx == -1:
        return address
    return address[:idx]


def resolve_address(source: AddressSource, *, headers: Mapping[str, str], peer: str) -> str:
    """Extract the client identity for a request.

    Args:
        source: Where to read the address from.
        headers: Request headers (case-insensitive mapping).
        peer: Transport peer address as ``host:port``.

    Returns:
        The client host, without port.

    Raises:
        AddressResolutionError: If no address could be read.
    """
    if isinstance(source, UseHeader):
        raw = headers.get(source.name) or ""
    else:
        raw = peer or ""

    first = raw.split(",")[0].strip()
    address = strip_port(first).strip()

    if not address:
        details = {"header": source.name} if isinstance(source, UseHeader) else None
        raise AddressResolutionError(
            code="address_unresolved",
            message="Could not read address",
            details=details,
        )
    return address
