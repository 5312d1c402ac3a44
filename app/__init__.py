"""
Team Resource Planner
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import importlib
import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine, event as _sa_event
from sqlalchemy.exc import IntegrityError, OperationalError

from app.config import config, load_planning_overrides
from app.core.exceptions import (
    AuthenticationError,
    ForbiddenError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from app.middleware.jwt_auth import init_jwt_middleware
from app.middleware.logging_config import configure_logging
from app.middleware.rate_limiter import init_rate_limits
from app.middleware.timing import init_request_timing
from app.models import db
from app.utils.errors import E, api_error

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
    default_limits=[],                     # limits applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
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
    load_planning_overrides(app)

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

    # ── Request timing + JWT auth middleware ─────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from app.models import auth as _auth_models              # noqa: F401
    from app.models import team as _team_models              # noqa: F401
    from app.models import okr as _okr_models                # noqa: F401
    from app.models import capacity as _capacity_models      # noqa: F401
    from app.models import checkin as _checkin_models        # noqa: F401
    from app.models import task as _task_models              # noqa: F401
    from app.models import imports as _imports_models        # noqa: F401
    from app.models import export as _export_models          # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if app.config.get("SQLALCHEMY_DATABASE_URI", "").startswith("sqlite:///") and not app.config.get("TESTING"):
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from app.blueprints.health_bp import health_bp
    from app.blueprints.auth_bp import auth_bp
    from app.blueprints.members_bp import members_bp
    from app.blueprints.goals_bp import goals_bp
    from app.blueprints.key_results_bp import key_results_bp
    from app.blueprints.initiatives_bp import initiatives_bp
    from app.blueprints.weekly_checkins_bp import weekly_checkins_bp
    from app.blueprints.weekly_allocations_bp import weekly_allocations_bp
    from app.blueprints.allocations_bp import allocations_bp
    from app.blueprints.timeoff_bp import timeoff_bp
    from app.blueprints.tasks_bp import tasks_bp
    from app.blueprints.time_entries_bp import time_entries_bp
    from app.blueprints.dashboard_bp import dashboard_bp
    from app.blueprints.calendar_bp import calendar_bp
    from app.blueprints.imports_bp import imports_bp
    from app.blueprints.exports_bp import exports_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(members_bp)
    app.register_blueprint(goals_bp)
    app.register_blueprint(key_results_bp)
    app.register_blueprint(initiatives_bp)
    app.register_blueprint(weekly_checkins_bp)
    app.register_blueprint(weekly_allocations_bp)
    app.register_blueprint(allocations_bp)
    app.register_blueprint(timeoff_bp)
    app.register_blueprint(tasks_bp)
    app.register_blueprint(time_entries_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(calendar_bp)
    app.register_blueprint(imports_bp)
    app.register_blueprint(exports_bp)

    # ── Service exceptions → JSON errors ─────────────────────────────────
    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        return api_error(E.NOT_FOUND, str(e))

    @app.errorhandler(ValidationError)
    def handle_validation(e):
        return api_error(E.VALIDATION_INVALID, str(e), details=e.details, extra=e.extra)

    @app.errorhandler(ForbiddenError)
    def handle_forbidden(e):
        return api_error(E.FORBIDDEN, str(e))

    @app.errorhandler(AuthenticationError)
    def handle_authentication(e):
        return api_error(E.UNAUTHORIZED, str(e))

    @app.errorhandler(UpstreamError)
    def handle_upstream(e):
        logger.warning("Upstream failure on %s: %s", request.path, e)
        return api_error(E.UPSTREAM, str(e))

    @app.errorhandler(IntegrityError)
    def handle_integrity(e):
        db.session.rollback()
        logger.warning("Constraint violation on %s: %s", request.path, e.orig)
        return api_error(E.CONFLICT_DUPLICATE, "Record conflicts with existing data")

    @app.errorhandler(OperationalError)
    def handle_operational(e):
        db.session.rollback()
        logger.exception("Database error on %s", request.path)
        return api_error(E.DATABASE, "Database error")

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error on %s: %s", request.path, e, exc_info=True)
        return {"error": "Internal server error"}, 500

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Uploaded file is too large"}, 413

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed")
    def seed_cmd():
        """Replace the database contents with demo data."""
        from app.services.seed_service import DEFAULT_ADMIN_PASSWORD, DEFAULT_ADMIN_USERNAME, seed
        counts = seed()
        click.echo(f"Seeded: {counts}")
        click.echo(f"Login with {DEFAULT_ADMIN_USERNAME}/{DEFAULT_ADMIN_PASSWORD}")

    @app.cli.command("backup")
    def backup_cmd():
        """Copy the SQLite database into BACKUP_DIR now."""
        from app.services.backup_service import create_backup
        path = create_backup()
        if path is None:
            raise click.ClickException("Backup failed: database file not found")
        click.echo(f"Backup created: {path}")

    @app.cli.command("list-backups")
    def list_backups_cmd():
        """List existing backups, newest first."""
        from app.services.backup_service import list_backups
        backups = list_backups()
        if not backups:
            click.echo("No backups found")
        for b in backups:
            click.echo(f"{b['name']}  {b['sizeMB']} MB  {b['created']}")

    @app.cli.command("run-job")
    @click.argument("job_name")
    def run_job_cmd(job_name):
        """Run a scheduled job once (e.g. weekly_backup)."""
        from app.services.scheduler_service import SchedulerService
        result = SchedulerService.run_job(job_name)
        click.echo(result)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Scheduler initialization (import jobs to register them) ──────────
    importlib.import_module("app.services.scheduled_jobs")  # registers @register_job handlers
    from app.services.scheduler_service import SchedulerService as _SchedulerSvc
    _SchedulerSvc.init_app(app)

    return app
