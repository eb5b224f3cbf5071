"""
Per-request id and duration tracking.

Every response carries ``X-Request-ID`` (echoed from the request when the
client sent one) and ``X-Request-Duration-Ms``.  Requests slower than
``SLOW_REQUEST_MS`` are logged at WARNING, 5xx responses at ERROR and the
rest at DEBUG; the health check is not logged.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

QUIET_PATHS = frozenset({"/api/v1/health"})

SLOW_REQUEST_MS = 1000


def _log_level(status_code: int, duration_ms: float) -> int:
    if status_code >= 500:
        return logging.ERROR
    if duration_ms > SLOW_REQUEST_MS:
        return logging.WARNING
    return logging.DEBUG


def init_request_timing(app: Flask):
    @app.before_request
    def _begin():
        g.started_at = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish(response):
        started = g.pop("started_at", None)
        if started is None:
            return response

        elapsed = (time.perf_counter() - started) * 1000
        request_id = g.get("request_id", "")
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed:.1f}"

        if request.path not in QUIET_PATHS:
            logger.log(
                _log_level(response.status_code, elapsed),
                "%s %s -> %d",
                request.method,
                request.path,
                response.status_code,
                extra={
                    "method": request.method,
                    "path": request.path,
                    "status": response.status_code,
                    "duration_ms": elapsed,
                    "remote_addr": request.remote_addr,
                    "request_id": request_id,
                },
            )
        return response
