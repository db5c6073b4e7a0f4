"""Uniform JSON error envelope for every API failure.

Body shape::

    {"error": "<message>", "code": "ERR_...", "details": {...}, "request_id": "..."}

``details`` is omitted when empty; ``request_id`` is present whenever the
timing middleware assigned one.

Usage
-----
    from wrapflow.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Workflow not found")
    return api_error(E.CIRCULAR_DEPENDENCY, "Circular dependency detected",
                     details={"cycle": ["a", "b", "a"]})
"""

from __future__ import annotations

from flask import g, has_request_context, jsonify


class E:
    """Machine-readable error codes."""

    # 400
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    ORDER_OUT_OF_RANGE = "ERR_ORDER_OUT_OF_RANGE"
    DUPLICATE_ORDER = "ERR_DUPLICATE_ORDER"

    # 401 / 403
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # 404 / 405
    NOT_FOUND = "ERR_NOT_FOUND"
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"

    # 409: template state conflicts
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    WORKFLOW_INACTIVE = "ERR_WORKFLOW_INACTIVE"
    LIVE_REFERENCES = "ERR_LIVE_REFERENCES"
    CIRCULAR_DEPENDENCY = "ERR_CIRCULAR_DEPENDENCY"
    DUPLICATE_EDGE = "ERR_DUPLICATE_EDGE"

    # 413 / 415 / 429: request guards
    PAYLOAD_TOO_LARGE = "ERR_PAYLOAD_TOO_LARGE"
    UNSUPPORTED_MEDIA_TYPE = "ERR_UNSUPPORTED_MEDIA_TYPE"
    RATE_LIMITED = "ERR_RATE_LIMITED"

    # 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


_STATUS_BY_CODE: dict[str, int] = {
    E.VALIDATION_INVALID: 400,
    E.ORDER_OUT_OF_RANGE: 400,
    E.DUPLICATE_ORDER: 400,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.CONFLICT_DUPLICATE: 409,
    E.WORKFLOW_INACTIVE: 409,
    E.LIVE_REFERENCES: 409,
    E.CIRCULAR_DEPENDENCY: 409,
    E.DUPLICATE_EDGE: 409,
    E.PAYLOAD_TOO_LARGE: 413,
    E.UNSUPPORTED_MEDIA_TYPE: 415,
    E.RATE_LIMITED: 429,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def status_for(code: str) -> int:
    """HTTP status for ``code``; unknown codes are treated as client errors."""
    return _STATUS_BY_CODE.get(code, 400)


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(response, status)`` for a Flask view or error handler."""
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    if has_request_context() and getattr(g, "request_id", None):
        body["request_id"] = g.request_id
    return jsonify(body), status or status_for(code)
