"""
Vesta Plan Resilience Review

The app factory wires the pieces together in this order: config, logging,
Flask extensions, the workspace store, request middleware, tables,
blueprints and JSON error pages.

    from vesta import create_app
    app = create_app()           # APP_ENV, else "development"
    app = create_app("testing")
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from vesta.config import ProductionConfig, config
from vesta.middleware.identity import init_identity_middleware
from vesta.middleware.logging_config import configure_logging
from vesta.middleware.timing import init_request_timing
from vesta.models import db

logger = logging.getLogger(__name__)

migrate = Migrate()
# AI-backed routes opt in with shared limits; nothing is limited globally
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri=os.getenv("REDIS_URL") or "memory://",
)

# Bodies the API accepts on write requests
_ACCEPTED_BODIES = ("json", "multipart/form-data")


def _init_extensions(app: Flask) -> None:
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    origins = app.config.get("CORS_ORIGINS", "*")
    if origins and origins != "*":
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])
    else:
        CORS(app)

    from vesta.services.store import MemoryWorkspaceStore, init_store
    init_store(app, MemoryWorkspaceStore() if app.config.get("STORE_BACKEND") == "memory" else None)


def _init_request_guards(app: Flask) -> None:
    @app.before_request
    def _check_body():
        size = request.content_length
        if not size:
            return
        limit = app.config.get("MAX_CONTENT_LENGTH")
        if limit and size > limit:
            abort(413, description="Request body too large")
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            content_type = request.content_type or ""
            if not any(kind in content_type for kind in _ACCEPTED_BODIES):
                abort(415, description="Content-Type must be application/json or multipart/form-data")


def _create_tables(app: Flask) -> None:
    from vesta.models import store as _store_models  # noqa: F401

    uri = app.config.get("SQLALCHEMY_DATABASE_URI") or ""
    if uri.startswith("sqlite:///") and ":memory:" not in uri:
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        db.create_all()
    logger.debug("Tables ready on %s", uri.split("@")[-1])


def _register_blueprints(app: Flask) -> None:
    from vesta.blueprints.audit_bp import audit_bp
    from vesta.blueprints.auth_bp import auth_bp
    from vesta.blueprints.health_bp import health_bp
    from vesta.blueprints.invitation_bp import invitation_bp
    from vesta.blueprints.knowledge_bp import knowledge_bp
    from vesta.blueprints.report_bp import report_bp
    from vesta.blueprints.workspace_bp import workspace_bp

    for bp in (health_bp, auth_bp, workspace_bp, invitation_bp, report_bp, knowledge_bp, audit_bp):
        app.register_blueprint(bp)


def _register_error_pages(app: Flask) -> None:
    """JSON bodies for errors raised outside any blueprint handler."""

    def _error(status, code, message, **extra):
        @app.errorhandler(status)
        def _handler(e):
            if status == 500:
                logger.error("Unhandled server error: %s", e, exc_info=True)
            body = {"error": message or e.description, "code": code}
            body.update({k: fn(e) for k, fn in extra.items()})
            return body, status

    _error(404, "ERR_NOT_FOUND", "Not found", path=lambda e: request.path)
    _error(405, "ERR_METHOD_NOT_ALLOWED", "Method not allowed")
    _error(413, "ERR_PAYLOAD_TOO_LARGE", "Request body too large")
    _error(415, "ERR_UNSUPPORTED_MEDIA_TYPE", None)
    _error(429, "ERR_RATE_LIMITED", "Too many requests", retry_after=lambda e: e.description)
    _error(500, "ERR_INTERNAL", "Internal server error")


def create_app(config_name=None):
    """
    Build the Flask application.

    Args:
        config_name: "development", "testing" or "production"; defaults to
                     the APP_ENV environment variable.

    Raises:
        RuntimeError: Production settings are incomplete.
    """
    config_name = config_name or os.getenv("APP_ENV", "development")
    app = Flask(__name__, instance_relative_config=True)
    config_class = config[config_name]
    app.config.from_object(config_class() if config_class is ProductionConfig else config_class)

    configure_logging(app)
    _init_extensions(app)
    init_identity_middleware(app)
    init_request_timing(app)
    _init_request_guards(app)
    _create_tables(app)
    _register_blueprints(app)
    _register_error_pages(app)

    logger.info("Vesta app created (%s)", config_name)
    return app
