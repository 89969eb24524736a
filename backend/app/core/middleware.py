"""
HTTP Middleware
Request correlation, timing and response headers
"""

import logging
import time
from typing import Callable, Optional, Set
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from app.core.logging_config import (
    logger,
    clear_context,
    set_request_id,
    set_session_id,
    generate_request_id,
)


# Probes and docs are not worth a log line per hit
QUIET_PATHS: Set[str] = {
    "/",
    "/favicon.ico",
    "/docs",
    "/redoc",
    "/openapi.json",
}

# Second path segment under /sessions/{deptId}/ that is not a session id
NON_SESSION_SEGMENTS: Set[str] = {"overdue"}

SLOW_REQUEST_MS = 1000

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Cache-Control": "no-store",
}


def is_quiet_path(path: str) -> bool:
    return path in QUIET_PATHS or path.endswith("/health") or "/health/" in path


def extract_session_id(path: str) -> Optional[str]:
    """Pull the academic session id out of /sessions/{deptId}/{id}/... paths"""
    if "/sessions/" not in path:
        return None
    parts = [p for p in path.split("/sessions/", 1)[1].split("/") if p]
    if len(parts) < 2 or parts[1] in NON_SESSION_SEGMENTS:
        return None
    return parts[1]


def status_log_level(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an id (the caller's X-Request-ID if given),
    records which academic session the path addresses, and logs one line
    per completed request with its status and duration.
    """

    def __init__(self, app: ASGIApp, slow_request_ms: float = SLOW_REQUEST_MS):
        super().__init__(app)
        self.slow_request_ms = slow_request_ms

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_id(request_id)

        path = request.url.path
        session_id = extract_session_id(path)
        if session_id:
            set_session_id(session_id)

        quiet = is_quiet_path(path)
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"{request.method} {path} raised {type(exc).__name__} after {duration_ms:.2f}ms",
                exc_info=True,
                extra={"event_type": "http_request_error", "http_method": request.method,
                       "http_path": path, "duration_ms": duration_ms},
            )
            clear_context()
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

        if not quiet:
            slow = duration_ms > self.slow_request_ms
            level = max(status_log_level(response.status_code), logging.WARNING if slow else logging.INFO)
            logger.log(
                level,
                f"{request.method} {path} - {response.status_code} ({duration_ms:.2f}ms)"
                + (" [slow]" if slow else ""),
                extra={
                    "event_type": "http_request",
                    "http_method": request.method,
                    "http_path": path,
                    "http_status": response.status_code,
                    "duration_ms": duration_ms,
                    "client_ip": request.client.host if request.client else "unknown",
                },
            )

        clear_context()
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds SECURITY_HEADERS to every response"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response


__all__ = [
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
    "extract_session_id",
    "is_quiet_path",
    "QUIET_PATHS",
]
