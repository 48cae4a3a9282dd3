"""
Consultation marketplace Flask application factory.

    from app import create_app
    app = create_app()           # APP_ENV, default "development"
    app = create_app("testing")
"""

import importlib
import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine, event as _sa_event
from sqlalchemy.exc import SQLAlchemyError

from app.config import config
from app.middleware.logging_config import configure_logging
from app.middleware.rate_limiter import init_rate_limits
from app.middleware.timing import init_request_timing
from app.models import db
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Imported for their table definitions (create_all and Alembic autogenerate)
_MODEL_MODULES = (
    "app.models.user",
    "app.models.problem",
    "app.models.invitation",
    "app.models.token",
    "app.models.audit",
    "app.models.notification",
    "app.models.scheduling",
)

migrate = Migrate()
# Limits are attached per blueprint in init_rate_limits
limiter = Limiter(key_func=get_remote_address, default_limits=[])


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_app(config_name=None):
    """Build the app for ``config_name`` ("development", "testing" or "production")."""
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiated so ProductionConfig can refuse to start without its env vars
    app.config.from_object(config[config_name]())
    app.config.setdefault("MAX_CONTENT_LENGTH", 1024 * 1024)

    configure_logging(app)
    _init_extensions(app)
    init_request_timing(app)
    _init_json_guard(app)

    for module in _MODEL_MODULES:
        importlib.import_module(module)
    if app.config.get("AUTO_CREATE_TABLES", True):
        with app.app_context():
            try:
                db.create_all()
            except SQLAlchemyError as exc:
                logger.warning("create_all failed, run migrations instead: %s", exc)

    from app.blueprints import ALL_BLUEPRINTS
    for bp in ALL_BLUEPRINTS:
        app.register_blueprint(bp)
    init_rate_limits(app, limiter)

    _register_error_handlers(app)
    _register_cli(app)

    # Job handlers register themselves on import
    importlib.import_module("app.services.scheduled_jobs")
    from app.services.scheduler_service import SchedulerService
    SchedulerService.init_app(app)

    return app


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    origins = app.config.get("CORS_ORIGINS", "*")
    if origins and origins != "*":
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])
    else:
        CORS(app)


def _init_json_guard(app):
    @app.before_request
    def _require_json_body():
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            if request.data and not request.is_json:
                abort(415, description="Content-Type must be application/json")


def _register_error_handlers(app):
    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, f"No route for {request.path}")

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(413)
    def too_large(e):
        return api_error(E.VALIDATION_INVALID, "Request body too large", status=413)

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return api_error(E.VALIDATION_INVALID, e.description, status=415)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"limit": e.description})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("Unhandled error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")


def _register_cli(app):
    @app.cli.command("invitations-expire")
    def invitations_expire_cmd():
        """Expire overdue consultant invitations and refund unmatched problems."""
        from app.services.scheduler_service import SchedulerService

        SchedulerService.ensure_jobs_registered()
        outcome = SchedulerService.run_job("expire_invitations")
        logger.info("invitations-expire finished: status=%s result=%s",
                    outcome.get("status"), outcome.get("result"),
                    extra={"job_name": "expire_invitations"})
        if outcome.get("status") in ("failed", "error"):
            raise SystemExit(1)
