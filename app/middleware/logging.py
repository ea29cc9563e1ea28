"""
Logging Setup and Access Log Middleware

configure_logging() sets up the root logger once at startup; every module
logs through logging.getLogger(__name__).

The access log records one line per request:
    METHOD PATH STATUS DURATION_MS client=<id>
where <id> comes from the same resolution the view rate limiter uses, so a
blocked view can be traced back to its requests.
"""

import logging
import time
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.client_identity import resolve_client_id
from app.core.setting import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

access_logger = logging.getLogger("linkgate.access")


def configure_logging(level: Optional[str] = None) -> None:
    """Install the root handler (first call only) and set the level."""
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger().setLevel((level or settings.LOG_LEVEL).upper())


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Logs each request and exposes its duration in X-Process-Time."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        access_logger.info(
            f"{request.method} {request.url.path} {response.status_code} "
            f"{elapsed * 1000:.2f}ms client={resolve_client_id(request)}"
        )
        response.headers["X-Process-Time"] = f"{elapsed:.6f}"
        return response


def add_logging_middleware(app) -> None:
    app.add_middleware(AccessLogMiddleware)
