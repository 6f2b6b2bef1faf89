"""
Sign-um Document Approval Engine
Flask Application Factory.

Usage:
    from signum import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from signum.config import config
from signum.middleware.logging_config import configure_logging
from signum.middleware.rate_limiter import init_rate_limits
from signum.middleware.timeout_sweep import init_timeout_sweep
from signum.middleware.timing import init_request_timing
from signum.models import db

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per blueprint
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)


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
    app.config.from_object(config[config_name])

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

    # ── Engine collaborators (renderer, event sink, side-effect dispatcher) ──
    from signum.services.artifacts import SnapshotRenderer
    from signum.services.event_sink import build_event_sink
    from signum.services.side_effects import SideEffectDispatcher

    app.extensions["signum.renderer"] = SnapshotRenderer()
    app.extensions["signum.event_sink"] = build_event_sink(app)
    app.extensions["signum.side_effects"] = SideEffectDispatcher(app)

    # ── Request timing + stale document sweep ────────────────────────────
    init_request_timing(app)
    init_timeout_sweep(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from signum.models import audit as _audit_models              # noqa: F401
    from signum.models import document as _document_models        # noqa: F401
    from signum.models import event as _event_models              # noqa: F401
    from signum.models import fund as _fund_models                # noqa: F401
    from signum.models import notification as _notification_models  # noqa: F401
    from signum.models import people as _people_models            # noqa: F401

    # ── Blueprints ───────────────────────────────────────────────────────
    from signum.blueprints.document_bp import document_bp
    from signum.blueprints.fund_bp import fund_bp
    from signum.blueprints.health_bp import health_bp
    from signum.blueprints.notification_bp import notification_bp

    app.register_blueprint(document_bp)
    app.register_blueprint(fund_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("sweep-timeouts")
    def sweep_timeouts_cmd():
        """Resolve documents pending longer than DOC_TIMEOUT_DAYS."""
        from signum.services.timeout_sweeper import sweep_stale_documents
        report = sweep_stale_documents()
        click.echo(f"Resolved {len(report.processed)} stale documents, {len(report.failed)} failed.")

    @app.cli.command("init-db")
    def init_db_cmd():
        """Create all tables (development only; use `flask db upgrade` elsewhere)."""
        db.create_all()
        click.echo("Database tables created.")

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        from flask import request
        return {"success": False, "error": "Not found", "path": request.path}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"success": False, "error": "Internal server error"}, 500

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"success": False, "error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"success": False, "error": "Too many requests", "retry_after": e.description}, 429

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
