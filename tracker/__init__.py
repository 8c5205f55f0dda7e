"""
Activity Tracker
Flask Application Factory.

Usage:
    from tracker import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import importlib
import logging
import os

from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from tracker.config import config
from tracker.core.exceptions import TrackerError, UploadTooLarge
from tracker.middleware.jwt_auth import init_jwt_middleware
from tracker.middleware.logging_config import configure_logging
from tracker.middleware.rate_limiter import init_rate_limits
from tracker.middleware.timing import init_request_timing
from tracker.models import db
from tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine  # noqa: E402


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "migrations")

migrate = Migrate(directory=MIGRATIONS_DIR, render_as_batch=True)  # SQLite ALTER via batch mode
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # per-route only (login)
)

# Multipart framing on top of the file itself
_UPLOAD_OVERHEAD = 64 * 1024


def _register_error_handlers(app):
    @app.errorhandler(TrackerError)
    def handle_tracker_error(exc):
        db.session.rollback()
        if exc.status >= 500:
            logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.path, exc.message)
        else:
            logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.path, exc.message)
        return jsonify(exc.to_body()), exc.status

    @app.errorhandler(RequestEntityTooLarge)
    def request_too_large(e):
        err = UploadTooLarge(app.config.get("MAX_UPLOAD_BYTES"))
        return jsonify(err.to_body()), err.status

    @app.errorhandler(404)
    def not_found(e):
        if request.path.startswith("/api/"):
            return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})
        return e

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"retry_after": e.description})

    @app.errorhandler(Exception)
    def unexpected_error(e):
        if isinstance(e, HTTPException):
            return e
        db.session.rollback()
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        if request.path.startswith("/api/"):
            return api_error(E.INTERNAL, "Internal server error")
        return "Internal Server Error", 500


def _init_database(app):
    """create_all, optional Alembic upgrade and default admin seeding."""
    from tracker.models import activity as _activity_models            # noqa: F401
    from tracker.models import collaboration as _collaboration_models  # noqa: F401
    from tracker.models import notification as _notification_models    # noqa: F401
    from tracker.models import scheduling as _scheduling_models        # noqa: F401
    from tracker.models import user as _user_models                    # noqa: F401
    from tracker.services.user_service import seed_default_admin

    uri = app.config.get("SQLALCHEMY_DATABASE_URI") or ""
    if uri.startswith("sqlite:///") and ":memory:" not in uri:
        os.makedirs(os.path.dirname(uri[len("sqlite:///"):]) or ".", exist_ok=True)

    with app.app_context():
        db.create_all()
        app.logger.info("db.create_all() completed successfully")

        if app.config.get("AUTO_MIGRATE"):
            from flask_migrate import upgrade
            upgrade(directory=MIGRATIONS_DIR)
            app.logger.info("Alembic upgrade to head completed")

        if app.config.get("SEED_DEFAULT_ADMIN"):
            seed_default_admin()


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    cfg = config[config_name]
    app.config.from_object(cfg() if config_name == "production" else cfg)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── JWT auth middleware (sets g.current_user) ────────────────────────
    init_jwt_middleware(app)

    # ── Upload cap: werkzeug rejects bodies well above the file limit ───
    app.config["MAX_CONTENT_LENGTH"] = app.config["MAX_UPLOAD_BYTES"] + _UPLOAD_OVERHEAD

    _register_error_handlers(app)
    _init_database(app)

    # ── Blueprints ───────────────────────────────────────────────────────
    from tracker.blueprints.activity_bp import activity_bp
    from tracker.blueprints.analytics_bp import analytics_bp
    from tracker.blueprints.auth_bp import auth_bp
    from tracker.blueprints.collaboration_bp import collaboration_bp
    from tracker.blueprints.export_bp import export_bp
    from tracker.blueprints.health_bp import health_bp
    from tracker.blueprints.notification_bp import notification_bp
    from tracker.blueprints.template_bp import template_bp
    from tracker.blueprints.users_bp import users_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(activity_bp)
    app.register_blueprint(analytics_bp)
    app.register_blueprint(collaboration_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(template_bp)
    app.register_blueprint(export_bp)
    app.register_blueprint(health_bp)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Scheduler initialization (import jobs to register them) ──────────
    importlib.import_module("tracker.services.scheduled_jobs")  # registers @register_job handlers
    from tracker.services.scheduler_service import SchedulerService
    SchedulerService.init_app(app)
    if app.config.get("SCHEDULER_ENABLED"):
        SchedulerService.start()

    return app
