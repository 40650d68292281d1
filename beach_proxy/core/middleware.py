"""HTTP middleware: request correlation and one access log line per request.

The request id comes from the configured header (``X-Request-ID`` by
default) or is generated, lives in a contextvar while the request runs so
proxy, retry and cache logs carry it, and is echoed on the response along
with the total duration.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from beach_proxy.core.config import settings
from beach_proxy.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)


async def request_id_middleware(request: Request, call_next) -> Response:
    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or uuid.uuid4().hex
    set_request_id(request_id)

    started = time.perf_counter()
    try:
        response: Response = await call_next(request)
    except Exception:
        logger.error(
            "http.request_failed",
            extra={
                "method": request.method,
                "route": request.url.path,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        raise
    else:
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "http.request",
            extra={
                "method": request.method,
                "route": request.url.path,
                "status": response.status_code,
                "duration_ms": round(elapsed_ms, 2),
                "cache": response.headers.get("X-Cache"),
            },
        )
    finally:
        clear_request_id()

    response.headers[header_name] = request_id
    response.headers["X-Request-Duration-ms"] = f"{elapsed_ms:.2f}"
    return response
