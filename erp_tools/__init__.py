"""
ERP Workflow Tools
Flask application factory.

    from erp_tools import create_app

    app = create_app()                     # APP_ENV or "development"
    app = create_app("testing")
    app = create_app("testing", overrides={"SQLALCHEMY_BINDS": {...}})
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_migrate import Migrate
from sqlalchemy import event
from sqlalchemy.engine import Engine

from erp_tools.config import config
from erp_tools.middleware.logging_config import configure_logging
from erp_tools.middleware.timing import init_request_timing
from erp_tools.models import db

logger = logging.getLogger(__name__)

migrate = Migrate()


@event.listens_for(Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, connection_record):
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_app(config_name=None, overrides=None):
    """Build the application.

    Args:
        config_name: "development", "testing" or "production"; defaults to
            the APP_ENV environment variable.
        overrides: config values applied after the config object, e.g. file
            backed databases for tests that need real concurrency.
    """
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())
    if overrides:
        app.config.update(overrides)

    configure_logging(app)
    _init_extensions(app)
    init_request_timing(app)
    _load_models()

    if config_name != "testing":
        _create_tables(app)

    _register_blueprints(app)
    _register_cli(app)
    _register_app_routes(app)
    return app


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)

    origins = app.config.get("CORS_ORIGINS") or "*"
    if origins == "*":
        CORS(app)
    else:
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])


def _load_models():
    # Every bind's metadata must be complete before create_all / migrations
    from erp_tools.models import audit, auth, notification, planner, requests, warehouse  # noqa: F401


def _create_tables(app):
    """Create missing tables on every bind; SQLite files live under instance/."""
    urls = [app.config.get("SQLALCHEMY_DATABASE_URI")]
    urls += list((app.config.get("SQLALCHEMY_BINDS") or {}).values())
    for url in urls:
        if isinstance(url, str) and url.startswith("sqlite:///") and ":memory:" not in url:
            os.makedirs(os.path.dirname(url[len("sqlite:///"):]) or ".", exist_ok=True)

    with app.app_context():
        try:
            db.create_all()
        except Exception as exc:
            app.logger.warning("db.create_all() failed: %s", exc)
        else:
            app.logger.info("Tables ready on %d database(s)", len(urls))


def _register_blueprints(app):
    from erp_tools.blueprints.notification_bp import notification_bp
    from erp_tools.blueprints.settings_bp import settings_bp
    from erp_tools.blueprints.warehouse_bp import warehouse_bp
    from erp_tools.blueprints.workflow_bp import workflow_bp

    for bp in (workflow_bp, settings_bp, warehouse_bp, notification_bp):
        app.register_blueprint(bp)


def _register_cli(app):
    @app.cli.command("seed-settings")
    def seed_settings_cmd():
        """Insert default settings rows and counters for every module."""
        from erp_tools.services.settings_service import seed_defaults

        added = seed_defaults()
        db.session.commit()
        logger.info("Seeded %s settings/counter rows.", added)

    @app.cli.command("seed-roles")
    def seed_roles_cmd():
        """Insert the baseline roles (admin, purchasing, sales, planner, warehouse)."""
        from erp_tools.models.auth import seed_default_roles

        added = seed_default_roles()
        db.session.commit()
        logger.info("Seeded %s roles.", added)


def _register_app_routes(app):
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "ERP Workflow Tools"}

    @app.errorhandler(404)
    def not_found(exc):
        return {"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(exc):
        return {"error": "Method not allowed", "code": "ERR_METHOD"}, 405

    @app.errorhandler(500)
    def server_error(exc):
        logger.error("Unhandled server error: %s", exc, exc_info=True)
        return {"error": "Internal server error", "code": "ERR_INTERNAL"}, 500
