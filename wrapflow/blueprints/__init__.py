"""
wrapflow
Shared helpers for API blueprints.
"""

from flask import request


def _int_arg(name, default):
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


def pagination_args(default_limit=100, max_limit=500):
    """``(limit, offset)`` from the query string.

    Garbage or non-positive ``limit`` falls back to ``default_limit``; values
    above ``max_limit`` are clamped. Negative offsets become 0.
    """
    limit = _int_arg("limit", default_limit)
    if limit < 1:
        limit = default_limit
    return min(limit, max_limit), max(_int_arg("offset", 0), 0)
