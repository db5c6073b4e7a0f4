"""
Per-IP request limits for the template API (Flask-Limiter).

Writes and reads are counted separately so a burst of batch edits cannot
starve listing endpoints:

    RATELIMIT_WRITE   POST/PUT/PATCH/DELETE   default 60/minute
    RATELIMIT_READ    everything else          default 200/minute

The health probe is exempt. Limits are skipped entirely under TESTING.
"""

import logging

from flask import request

from wrapflow.middleware.timing import MUTATING_METHODS

logger = logging.getLogger(__name__)

LIMITED_BLUEPRINTS = ("workflow",)


def _is_write():
    return request.method in MUTATING_METHODS


def _is_read():
    return request.method not in MUTATING_METHODS


def init_rate_limits(app, limiter):
    """Attach limits to the API blueprints; call after they are registered."""
    if app.config.get("TESTING"):
        logger.debug("Rate limits skipped under TESTING")
        return

    write_limit = app.config["RATELIMIT_WRITE"]
    read_limit = app.config["RATELIMIT_READ"]

    for name in LIMITED_BLUEPRINTS:
        bp = app.blueprints.get(name)
        if bp is None:
            logger.warning("Rate limit target blueprint %r not registered", name)
            continue
        limiter.limit(write_limit, exempt_when=_is_read)(bp)
        limiter.limit(read_limit, exempt_when=_is_write)(bp)

    health = app.view_functions.get("health")
    if health is not None:
        limiter.exempt(health)

    logger.info("Rate limits active write=%s read=%s", write_limit, read_limit)
