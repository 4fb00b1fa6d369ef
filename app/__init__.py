"""
QA Test Case Library
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os
import signal
import threading

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from app.config import config
from app.models import db
from app.middleware.identity import init_identity_context
from app.middleware.logging_config import configure_logging
from app.middleware.rate_limiter import init_rate_limits
from app.middleware.timing import init_request_timing
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


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
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
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

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Identity context (X-User-Id / X-User-Role from the gateway) ──────
    init_identity_context(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    @app.before_request
    def _guard_request():
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                return api_error(
                    E.BAD_REQUEST, "Content-Type must be application/json", status=415,
                )
        return None

    # ── Import all models so Alembic can detect them ─────────────────────
    from app.models import automation as _automation_models  # noqa: F401
    from app.models import library as _library_models        # noqa: F401

    # ── Auto-create tables outside of migration-managed deployments ──────
    if config_name != "production":
        with app.app_context():
            if "sqlite" in app.config["SQLALCHEMY_DATABASE_URI"] and not app.config.get("TESTING"):
                os.makedirs(app.instance_path, exist_ok=True)
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from app.blueprints.library_bp import library_bp

    app.register_blueprint(library_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-library")
    @click.option("--force", is_flag=True, help="Wipe existing library data first.")
    @click.option("--author", default="seed", show_default=True, help="User id recorded as author.")
    def seed_library_cmd(force, author):
        """Seed example collections and test cases."""
        from app.services.library_seed_service import seed_library
        result = seed_library(author, force=force)
        if result.get("skipped"):
            click.echo(
                f"Library already has {result['collections']} collection(s). "
                "Run with --force to wipe and re-seed."
            )
            return
        click.echo(
            f"Seeded {result['collections']} collections and {result['test_cases']} test cases."
        )

    @app.cli.command("library-auto-match")
    @click.option("--threshold", type=click.IntRange(0, 100), default=None,
                  help="Minimum score (default LIBRARY_MATCH_THRESHOLD).")
    def library_auto_match_cmd(threshold):
        """Link unlinked test cases to automated tests by title similarity.

        Ctrl+C stops after the current test case; links made so far are kept.
        """
        from app.services.library_matcher_service import auto_match
        cancel = threading.Event()
        previous = signal.signal(signal.SIGINT, lambda *_: cancel.set())
        try:
            result = auto_match(threshold=threshold, cancel=cancel)
        finally:
            signal.signal(signal.SIGINT, previous)
        click.echo(
            f"scanned={result['scanned']} matched={result['matched']} "
            f"skipped={result['skipped']} unmatched={result['unmatched']}"
            + (" (cancelled)" if result["cancelled"] else "")
        )

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "QA Test Case Library"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": E.NOT_FOUND, "path": request.path}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": E.INTERNAL}, 500

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "code": E.RATE_LIMITED, "retry_after": e.description}, 429

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
