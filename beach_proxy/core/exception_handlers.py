"""Global exception handlers for consistent error responses.

Every error leaves the proxy as JSON with at least an ``error`` message:

    {"error": "...", "code": "...", "request_id": "...", "details": {...}}

Design:
- AppError subclasses -> the status their class declares (400, 401, 403,
  404, 429, 5xx), or ``details["http_status"]`` when set
- RequestValidationError -> 400
- Starlette HTTPException (unknown route, wrong method) -> its own status
- Unexpected Exception -> generic 500 (safety net, no message or trace leaks)
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from beach_proxy.core.errors import AppError
from beach_proxy.core.logging import get_request_id

logger = logging.getLogger(__name__)

# Internal routing hints that are never echoed to clients
_INTERNAL_DETAIL_KEYS = {"http_status", "context"}


def _error_body(
    message: str,
    code: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "error": message,
        "code": code,
        "request_id": get_request_id(),
    }
    if details:
        body["details"] = details
    return body


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the error's status code, plus ``Retry-After`` for
        rate limit errors that know when to come back.
    """
    status_code = exc.http_status

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_path": request.url.path,
        },
    )

    public_details = {
        k: v for k, v in (exc.details or {}).items() if k not in _INTERNAL_DETAIL_KEYS
    }

    headers: dict[str, str] = {}
    retry_after = public_details.get("retry_after")
    if status_code == 429 and retry_after is not None:
        headers["Retry-After"] = str(max(0, int(round(float(retry_after)))))

    return JSONResponse(
        status_code=status_code,
        content=_error_body(exc.message, exc.code, public_details),
        headers=headers or None,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI request validation failures as 400 errors."""
    errors = [
        {"parameter": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    logger.warning(
        "request_validation_failed",
        extra={"request_path": request.url.path, "error_count": len(errors)},
    )
    return JSONResponse(
        status_code=400,
        content=_error_body("Invalid request parameters", "invalid_parameter", {"errors": errors}),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Keep framework-level HTTP errors (404 route, 405 method) in the same shape."""
    message = exc.detail if isinstance(exc.detail, str) else "HTTP error"
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(message, f"http_{exc.status_code}"),
        headers=getattr(exc, "headers", None),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic message.
    Prevents information leakage (no stack traces or exception text to client).
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content=_error_body("Internal server error", "internal_server_error"),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(Exception)(general_exception_handler)
