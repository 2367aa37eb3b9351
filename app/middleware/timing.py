"""
Request timing middleware.

Stamps every response with ``X-Request-ID`` (echoed from the client when
supplied) and ``X-Request-Duration-Ms``, and writes one access-log line
per request: WARNING when slow, ERROR on 5xx, DEBUG otherwise.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Probes hit these every few seconds
_SKIP_LOG = frozenset({"/api/v1/health", "/api/v1/health/ready", "/api/v1/health/live"})

SLOW_THRESHOLD_MS = 1000


def _level_for(status: int, duration_ms: float) -> tuple[int, str]:
    if duration_ms > SLOW_THRESHOLD_MS:
        return logging.WARNING, "Slow request"
    if status >= 500:
        return logging.ERROR, "Server error"
    return logging.DEBUG, "Request"


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _stamp_and_log(response):
        started = g.get("request_start")
        if started is None:
            return response

        elapsed = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.get("request_id", "")
        response.headers["X-Request-Duration-Ms"] = f"{elapsed:.1f}"

        # An SSE stream is still open here, elapsed is only time-to-first-byte
        if request.path in _SKIP_LOG or response.mimetype == "text/event-stream":
            return response

        level, label = _level_for(response.status_code, elapsed)
        logger.log(
            level, "%s: %s %s %d (%.0fms)",
            label, request.method, request.path, response.status_code, elapsed,
            extra={
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": elapsed,
                "remote_addr": request.remote_addr,
            },
        )
        return response
