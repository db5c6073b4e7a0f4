"""
wrapflow
Workflow template service: Flask application factory.

    from wrapflow import create_app
    app = create_app()           # APP_ENV, falling back to "development"
    app = create_app("testing")

Hook order matters: request timing runs first so every later hook (JWT
parsing, body guards) and every error response can see ``g.request_id``.
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import event
from sqlalchemy.engine import Engine

from wrapflow.config import config
from wrapflow.middleware.jwt_auth import API_PREFIX, init_jwt_middleware
from wrapflow.middleware.logging_config import configure_logging
from wrapflow.middleware.rate_limiter import init_rate_limits
from wrapflow.middleware.timing import MUTATING_METHODS, init_request_timing
from wrapflow.models import db
from wrapflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)

HEALTH_PATH = "/api/v1/health"

migrate = Migrate()
# Limits are attached per blueprint in init_rate_limits; storage comes from
# RATELIMIT_STORAGE_URI in the app config.
limiter = Limiter(key_func=get_remote_address, default_limits=[])


@event.listens_for(Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, _record):
    # Cascades on phases/tasks/edges rely on FK enforcement
    if "sqlite" not in type(dbapi_conn).__module__:
        return
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


# ═════════════════════════════════════════════════════════════════════════
# Factory
# ═════════════════════════════════════════════════════════════════════════


def create_app(config_name=None):
    """Build a configured application for ``config_name``.

    Raises:
        KeyError: unknown configuration name.
        RuntimeError: the selected configuration is incomplete.
    """
    config_name = config_name or os.getenv("APP_ENV", "development")
    cfg = config[config_name]
    cfg.check()

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(cfg)

    configure_logging(app)
    _init_extensions(app)

    init_request_timing(app)
    init_jwt_middleware(app)
    _register_guards(app)

    if config_name != "production":
        _create_schema(app)

    from wrapflow.blueprints.workflow_bp import workflow_bp

    app.register_blueprint(workflow_bp)
    app.add_url_rule(HEALTH_PATH, "health", _health)
    _register_error_handlers(app)

    init_rate_limits(app, limiter)

    logger.info("wrapflow ready env=%s", config_name)
    return app


def _health():
    return {"status": "ok", "app": "wrapflow"}


# ── Extensions ───────────────────────────────────────────────────────────


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    origins = [o.strip() for o in app.config.get("CORS_ORIGINS", "*").split(",") if o.strip()]
    if not origins or origins == ["*"]:
        CORS(app)
    else:
        CORS(app, origins=origins)


def _create_schema(app):
    """Create missing tables; production schema is owned by Alembic."""
    from wrapflow.models import auth, project, workflow  # noqa: F401  registers tables

    uri = app.config["SQLALCHEMY_DATABASE_URI"]
    if uri.startswith("sqlite:///") and ":memory:" not in uri:
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        db.create_all()


# ── Request guards ───────────────────────────────────────────────────────


def _register_guards(app):
    max_len = app.config.get("MAX_CONTENT_LENGTH")

    @app.before_request
    def _reject_bad_bodies():
        if max_len and (request.content_length or 0) > max_len:
            abort(413)
        if request.method not in MUTATING_METHODS or not request.path.startswith(API_PREFIX):
            return
        if request.get_data(cache=True) and not request.is_json:
            abort(415)


# ── Error handlers ───────────────────────────────────────────────────────


def _register_error_handlers(app):
    """JSON bodies for errors raised outside the workflow blueprint."""

    @app.errorhandler(404)
    def _not_found(_e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def _method_not_allowed(_e):
        return api_error(E.METHOD_NOT_ALLOWED, f"{request.method} not allowed on {request.path}")

    @app.errorhandler(413)
    def _too_large(_e):
        return api_error(
            E.PAYLOAD_TOO_LARGE, "Request body too large",
            details={"max_bytes": app.config.get("MAX_CONTENT_LENGTH")},
        )

    @app.errorhandler(415)
    def _unsupported_media(_e):
        return api_error(E.UNSUPPORTED_MEDIA_TYPE, "Content-Type must be application/json")

    @app.errorhandler(429)
    def _rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"limit": str(e.description)})

    @app.errorhandler(500)
    def _server_error(e):
        logger.error("Unhandled server error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")
