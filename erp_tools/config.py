"""
ERP Workflow Tools
Configuration objects for ``create_app``.

``APP_ENV`` picks one of ``config`` (development, testing, production).

Besides the main database (settings, roles, audit, notifications) every
workflow module owns a logical database, registered as a Flask-SQLAlchemy
bind and configured through ``<BIND>_DATABASE_URL``:

    requests   purchase requests
    planner    production orders
    warehouse  dispatch containers, assignments and inventory units
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

MODULE_BINDS = ("requests", "planner", "warehouse")

IN_MEMORY_SQLITE = "sqlite:///:memory:"

POOLED_ENGINE_OPTIONS = {
    "pool_pre_ping": True,
    "pool_size": 5,
    "max_overflow": 10,
    "pool_recycle": 300,
    "pool_timeout": 20,
}


def _env_url(name: str) -> str | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    # SQLAlchemy 2 only accepts the postgresql:// scheme
    if raw.startswith("postgres://"):
        raw = "postgresql://" + raw[len("postgres://"):]
    return raw


def instance_sqlite(name: str) -> str:
    return "sqlite:///" + os.path.join(basedir, "instance", f"{name}.db")


def bind_urls(fallback) -> dict:
    return {bind: _env_url(f"{bind.upper()}_DATABASE_URL") or fallback(bind) for bind in MODULE_BINDS}


def _flag(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").strip().lower() in ("1", "true", "yes")


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = dict(POOLED_ENGINE_OPTIONS)

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    LOG_LEVEL = os.getenv("LOG_LEVEL")
    LOG_FORMAT = os.getenv("LOG_FORMAT")

    # Audit rows are always written; this only switches the in-app inbox
    WORKFLOW_NOTIFY = _flag("WORKFLOW_NOTIFY", True)
    WORKFLOW_PAGE_SIZE = int(os.getenv("WORKFLOW_PAGE_SIZE", "50"))


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _env_url("DATABASE_URL") or instance_sqlite("main")
    SQLALCHEMY_BINDS = bind_urls(instance_sqlite)
    # File-backed SQLite has no sized queue pool
    SQLALCHEMY_ENGINE_OPTIONS = (
        dict(POOLED_ENGINE_OPTIONS) if _env_url("DATABASE_URL") else {"pool_pre_ping": True}
    )


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = _env_url("TEST_DATABASE_URL") or IN_MEMORY_SQLITE
    SQLALCHEMY_BINDS = {bind: IN_MEMORY_SQLITE for bind in MODULE_BINDS}
    # StaticPool (in-memory SQLite) rejects pool sizing options
    SQLALCHEMY_ENGINE_OPTIONS = {}
    WORKFLOW_NOTIFY = True


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _env_url("DATABASE_URL")
    SQLALCHEMY_BINDS = bind_urls(lambda bind: None)
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        **POOLED_ENGINE_OPTIONS,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    def __init__(self):
        required = []
        if not self.SQLALCHEMY_DATABASE_URI:
            required.append("DATABASE_URL")
        required += [f"{bind.upper()}_DATABASE_URL" for bind, url in self.SQLALCHEMY_BINDS.items() if not url]
        if not os.getenv("SECRET_KEY"):
            required.append("SECRET_KEY")
        if required:
            raise RuntimeError("Production config requires: " + ", ".join(required))


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
