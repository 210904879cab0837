"""Mapping from limiter errors to HTTP responses.

The rate limit middleware uses `error_response` directly so that no
per-request failure escapes into the host transport. `setup_exception_handlers`
registers the same mapping on a FastAPI app for errors raised from routes
(for example from `Limiter.check` called inside an endpoint).

Design:
- AddressResolutionError → 400 (client fault)
- InfrastructureError → 500 (counter store fault)
- Any other AppError → 500
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from windowlimit.core.errors import AddressResolutionError, AppError

logger = logging.getLogger(__name__)


def status_for(exc: AppError) -> int:
    if isinstance(exc, AddressResolutionError):
        return 400
    return 500


def error_response(exc: AppError) -> JSONResponse:
    """Build the JSON error envelope for a limiter error.

    Store failures only expose their code; the underlying driver message
    stays in the logs.

    Args:
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the mapped status code.
    """
    status_code = status_for(exc)
    message = exc.message if status_code < 500 else "Rate limit check failed. Please try again later."

    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": exc.code, "message": message}},
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "status_code": status_for(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )
    return error_response(exc)


def setup_exception_handlers(app) -> None:
    """Register limiter error handlers with a FastAPI app.

    Example:
        >>> from fastapi import FastAPI
        >>> app = FastAPI()
        >>> setup_exception_handlers(app)
    """
    app.exception_handler(AppError)(app_error_handler)
