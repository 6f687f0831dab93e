"""
Production Workflow System
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from app.config import config
from app.core.exceptions import (
    AccountingSyncError,
    ConflictError,
    GateError,
    NotFoundError,
    PermissionDenied,
    TransitionError,
    ValidationError,
)
from app.models import db
from app.middleware.logging_config import configure_logging
from app.middleware.timing import init_request_timing
from app.middleware.security_headers import init_security_headers
from app.middleware.rate_limiter import init_rate_limits
from app.middleware.jwt_auth import init_jwt_middleware
from app.middleware.tenant_context import init_tenant_context
from app.utils.errors import E, api_error

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


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per-blueprint
)


def _register_error_handlers(app):
    """Translate service exceptions into the standard JSON error body."""

    @app.errorhandler(NotFoundError)
    def _not_found(exc):
        db.session.rollback()
        logger.info("Not found: %s", exc)
        return api_error(E.NOT_FOUND, f"{exc.resource} not found")

    @app.errorhandler(ValidationError)
    def _validation(exc):
        db.session.rollback()
        return api_error(E.BUSINESS_RULE, str(exc), details=exc.details)

    @app.errorhandler(ConflictError)
    def _conflict(exc):
        db.session.rollback()
        return api_error(
            E.CONFLICT_DUPLICATE, str(exc), details={exc.field: exc.value},
        )

    @app.errorhandler(PermissionDenied)
    def _permission(exc):
        db.session.rollback()
        logger.warning("Permission denied: %s", exc)
        return api_error(
            E.FORBIDDEN, exc.reason or "Permission denied", details={"action": exc.action},
        )

    @app.errorhandler(GateError)
    def _gate(exc):
        db.session.rollback()
        return api_error(
            E.GATE_BLOCKED, str(exc),
            details={"from": exc.current, "to": exc.target, "failed": exc.failed},
        )

    @app.errorhandler(TransitionError)
    def _transition(exc):
        db.session.rollback()
        return api_error(
            E.WORKFLOW_TRANSITION, str(exc),
            details={"from": exc.current, "to": exc.target},
        )

    @app.errorhandler(AccountingSyncError)
    def _accounting(exc):
        db.session.rollback()
        logger.error("Accounting sync failed: %s", exc)
        return api_error(E.UPSTREAM, str(exc), details={"provider": exc.provider})

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(413)
    def too_large(e):
        return api_error(E.VALIDATION_CONSTRAINT, "Request body too large", status=413)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(
            E.VALIDATION_CONSTRAINT, "Too many requests",
            status=429, details={"retry_after": e.description},
        )

    @app.errorhandler(500)
    def server_error(e):
        db.session.rollback()
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")


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
    os.makedirs(app.instance_path, exist_ok=True)

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

    # ── Security headers ─────────────────────────────────────────────────
    init_security_headers(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── JWT auth middleware (sets g.actor) ───────────────────────────────
    init_jwt_middleware(app)

    # ── Tenant context middleware (sets g.tenant from JWT) ───────────────
    init_tenant_context(app)

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from app.blueprints.health_bp import health_bp
    from app.blueprints.order_bp import order_bp
    from app.blueprints.order_import_bp import order_import_bp
    from app.blueprints.external_job_bp import external_job_bp, partner_portal_bp
    from app.blueprints.workflow_bp import workflow_bp
    from app.blueprints.notification_bp import notification_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(order_import_bp)
    app.register_blueprint(order_bp)
    app.register_blueprint(external_job_bp)
    app.register_blueprint(partner_portal_bp)
    app.register_blueprint(workflow_bp)
    app.register_blueprint(notification_bp)

    _register_error_handlers(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-workflow-defaults")
    def seed_workflow_defaults_cmd():
        """Seed default workflow rules for every tenant that has none."""
        from app.models.auth import Tenant
        from app.services.workflow_rules_service import get_or_seed_rules

        tenants = Tenant.query.all()
        for tenant in tenants:
            get_or_seed_rules(tenant.id)
        db.session.commit()
        logger.info("Seeded workflow defaults for %s tenants.", len(tenants))

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
