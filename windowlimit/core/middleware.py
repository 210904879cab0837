"""ASGI middleware enforcing fixed-window rate limits.

Request flow:
- No rule for (method, path): forwarded untouched.
- Client address unreadable: 400, handler not called.
- Counter store failure: 500, handler not called.
- Over quota: 429 with X-RateLimit-* and Retry-After, handler not called.
- Otherwise: forwarded, X-RateLimit-* added to the handler's response.

Usage:
    app.add_middleware(RateLimitMiddleware, limiter=limiter)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from starlette.concurrency import run_in_threadpool
from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from windowlimit.core.address import format_peer
from windowlimit.core.errors import AddressResolutionError, AppError
from windowlimit.core.exception_handlers import error_response

if TYPE_CHECKING:
    from windowlimit.limiter import Limiter

logger = logging.getLogger(__name__)

TOO_MANY_REQUESTS_BODY = "429, Too Many Requests"


class RateLimitMiddleware:
    """Wrap an ASGI app with a `Limiter`."""

    def __init__(self, app: ASGIApp, limiter: "Limiter") -> None:
        self.app = app
        self.limiter = limiter

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope["method"]
        path = scope["path"]
        rule = self.limiter.rules.lookup(method, path)
        if rule is None:
            await self.app(scope, receive, send)
            return

        try:
            client = self.limiter.resolve(
                headers=Headers(scope=scope),
                peer=format_peer(scope.get("client")),
            )
            # Store round-trips are blocking; keep them off the event loop.
            decision = await run_in_threadpool(self.limiter.decide, rule, client)
        except AddressResolutionError as exc:
            logger.warning(
                "rate_limit.address_error",
                extra={"error_code": exc.code, "method": method, "path": path},
            )
            await error_response(exc)(scope, receive, send)
            return
        except AppError as exc:
            logger.error(
                "rate_limit.store_error",
                extra={"error_code": exc.code, "method": method, "path": path},
            )
            await error_response(exc)(scope, receive, send)
            return
        except Exception:
            logger.exception(
                "rate_limit.unexpected_error",
                extra={"method": method, "path": path},
            )
            response = JSONResponse(
                status_code=500,
                content={
                    "error": {
                        "code": "internal_server_error",
                        "message": "Rate limit check failed. Please try again later.",
                    }
                },
            )
            await response(scope, receive, send)
            return

        rate_headers = decision.headers()

        if not decision.allowed:
            response = PlainTextResponse(
                TOO_MANY_REQUESTS_BODY,
                status_code=429,
                headers=rate_headers,
            )
            await response(scope, receive, send)
            return

        async def send_with_rate_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in rate_headers.items():
                    headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_rate_headers)
