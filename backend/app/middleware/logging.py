"""
Doll Pin API: Access Log Middleware
=====================================

What:  One log line per HTTP request: method, path, status, duration.
How:   Times the downstream call with perf_counter and picks the level from
       the status class (5xx ERROR, 4xx WARNING, otherwise INFO).
Who:   Registered in main.py, inside RequestIDMiddleware so the id is set.

Liveness and health checks ("/" and "/health") are not logged; they fire
every few seconds and drown out real traffic.

Logged fields:
    method, path, status, duration_ms, request_id, client_ip
Never logged:
    request bodies, uploaded file contents, headers
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.middleware.request_id import request_id_var

logger = logging.getLogger("dollpin.access")

QUIET_PATHS = frozenset({"/", "/health"})


def level_for_status(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        method = request.method

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        rid = request_id_var.get("")

        logger.log(
            level_for_status(status),
            "%s %s %d %.1fms [%s] from %s",
            method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
