"""
Document Ledger application factory.

Usage:
    from docledger import create_app

    app = create_app()                 # APP_ENV or "development"
    app = create_app("testing")
    app = create_app("testing", SQLALCHEMY_DATABASE_URI="sqlite:///ledger.db")
"""

import logging
import os

from flask import Flask, abort, request
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from docledger.config import config
from docledger.middleware.logging_config import configure_logging
from docledger.middleware.tenant_context import init_tenant_context
from docledger.models import db

logger = logging.getLogger(__name__)

migrate = Migrate()


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, connection_record):
    """SQLite ships with foreign keys off; turn them on per connection."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _register_request_guards(app):
    @app.before_request
    def _guard_api_body():
        if not request.path.startswith("/api/"):
            return None
        limit = app.config.get("MAX_CONTENT_LENGTH")
        if limit and request.content_length and request.content_length > limit:
            abort(413, description="Request body too large")
        if request.method in ("POST", "PUT", "PATCH") and request.data:
            if "json" not in (request.content_type or ""):
                abort(415, description="Content-Type must be application/json")
        return None


def _register_error_handlers(app):
    @app.errorhandler(404)
    def _not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(500)
    def _server_error(e):
        logger.error("Unhandled server error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500


def _register_cli(app):
    @app.cli.command("cleanup-drafts")
    def cleanup_drafts_cmd():
        """Delete drafts untouched for DRAFT_RETENTION_DAYS, across all tenants."""
        from docledger.services.draft_cache import cleanup_abandoned_drafts

        days = app.config["DRAFT_RETENTION_DAYS"]
        removed = cleanup_abandoned_drafts(days)
        logger.info("cleanup-drafts: %d draft(s) older than %d day(s) removed", removed, days)


def create_app(config_name=None, **overrides):
    """
    Build the Flask application.

    Args:
        config_name: "development", "testing" or "production".
                     Defaults to the APP_ENV env var, then "development".
        **overrides: Config keys applied on top of the environment class.

    Returns:
        Configured Flask application instance.
    """
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())
    app.config.update(overrides)

    configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)

    init_tenant_context(app)
    _register_request_guards(app)

    # Model modules must be imported before create_all() / autogenerate
    from docledger.models import document, sequence, tenant  # noqa: F401

    with app.app_context():
        if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and config_name == "development":
            os.makedirs(app.instance_path, exist_ok=True)
        db.create_all()

    from docledger.blueprints.documents_bp import documents_bp

    app.register_blueprint(documents_bp)

    _register_cli(app)
    _register_error_handlers(app)

    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Document Ledger"}

    logger.debug("Application created (config=%s)", config_name)
    return app
