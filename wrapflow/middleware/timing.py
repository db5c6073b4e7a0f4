"""
Request timing and access logging.

Each request gets an id (the caller's ``X-Request-ID`` when it is a sane
token, otherwise a fresh one) and a single access record once the response
is ready. Template mutations are logged at INFO, reads at DEBUG, slow
requests at WARNING and server errors at ERROR.

Response headers: ``X-Request-ID``, ``X-Request-Duration-Ms``.
"""

import logging
import re
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

SLOW_THRESHOLD_MS = 1000
MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
QUIET_PATHS = frozenset({"/api/v1/health"})

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def _request_id():
    incoming = request.headers.get("X-Request-ID", "")
    return incoming if _REQUEST_ID_RE.match(incoming) else uuid.uuid4().hex[:12]


def _level_for(status, duration_ms):
    if status >= 500:
        return logging.ERROR
    if duration_ms > SLOW_THRESHOLD_MS:
        return logging.WARNING
    if request.method in MUTATING_METHODS:
        return logging.INFO
    return logging.DEBUG


def init_request_timing(app: Flask):
    """Register the before/after hooks on ``app``."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = _request_id()

    @app.after_request
    def _finish(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"

        if request.path in QUIET_PATHS:
            return response

        level = _level_for(response.status_code, duration_ms)
        if logger.isEnabledFor(level):
            logger.log(
                level, "%s %s -> %d", request.method, request.path, response.status_code,
                extra={
                    "method": request.method,
                    "path": request.path,
                    "status": response.status_code,
                    "duration_ms": duration_ms,
                    "remote_addr": request.remote_addr,
                    "workflow_id": (request.view_args or {}).get("workflow_id"),
                },
            )
        return response
