"""Application factory for the demo FastAPI app.

Mirrors the minimal example: one limited route (3 requests per minute) and
an unlimited health check.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from windowlimit.adapters.store.base import AbstractCounterStore
from windowlimit.adapters.store.in_memory import InMemoryCounterStore
from windowlimit.core.config import settings
from windowlimit.core.exception_handlers import setup_exception_handlers
from windowlimit.core.logging import configure_logging
from windowlimit.core.middleware import RateLimitMiddleware
from windowlimit.core.rules import Limit
from windowlimit.limiter import Limiter

DEMO_LIMITS = [Limit(method="GET", path="/", requests=3, duration=60)]


def create_app(store: AbstractCounterStore | None = None) -> FastAPI:
    """Create and configure the demo application.

    Args:
        store: Counter store override. Without one, Redis is used when
            REDIS_URL is set and an in-memory store otherwise.

    Returns:
        FastAPI app with the rate limit middleware installed.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    if store is None and not settings.store.url:
        store = InMemoryCounterStore()

    limiter = Limiter(DEMO_LIMITS, store=store)

    app = FastAPI(title="windowlimit demo", version="0.1.0")
    app.state.limiter = limiter
    app.add_middleware(RateLimitMiddleware, limiter=limiter)
    setup_exception_handlers(app)

    @app.get("/", response_class=PlainTextResponse)
    def index() -> str:
        return "ok"

    @app.get("/health")
    def health_check() -> dict:
        return {"status": "ok"}

    return app
