"""
Shared pytest fixtures for the ERP Workflow Tools test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Table creation/teardown on every bind (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate, seeded settings,
      roles and users (autouse)
    - client: Flask test client (function-scoped)
    - make_request / make_order: service-level entity factories

Seeded actors:
    Ana, Luis, Marta   admin role (every permission)
    Sofia              sales role (create, unapproval requests, no approvals)
    Carla              purchasing role (cancellation requests, ordering)
    Pablo              planner role
    Bruno              warehouse role
"""

from datetime import date, timedelta

import pytest

from erp_tools import create_app
from erp_tools.models import db as _db
from erp_tools.models.auth import User, seed_default_roles
from erp_tools.services import workflow_service as wf
from erp_tools.services.settings_service import seed_defaults

TEST_USERS = (
    ("Ana", "admin"),
    ("Luis", "admin"),
    ("Marta", "admin"),
    ("Sofia", "sales"),
    ("Carla", "purchasing"),
    ("Pablo", "planner"),
    ("Bruno", "warehouse"),
)


def _seed():
    seed_defaults()
    seed_default_roles()
    for name, role_id in TEST_USERS:
        _db.session.add(User(name=name, email=f"{name.lower()}@example.com", role_id=role_id))
    _db.session.commit()


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, seed, rollback after test, recreate tables."""
    with app.app_context():
        _seed()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


def request_payload(**overrides):
    payload = {
        "client_name": "Distribuidora Central",
        "item_description": "Rollo film stretch 20\"",
        "quantity": 10,
        "required_date": (date.today() + timedelta(days=14)).isoformat(),
        "priority": "medium",
    }
    payload.update(overrides)
    return payload


def order_payload(**overrides):
    payload = {
        "customer_name": "Plásticos del Valle",
        "product_description": "Bolsa 30x40 impresa",
        "quantity": 5000,
        "delivery_date": (date.today() + timedelta(days=21)).isoformat(),
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def make_request():
    """Factory: create a purchase request as Ana (admin) and return its dict."""

    def _make(actor="Ana", **overrides):
        return wf.create_entity("requests", request_payload(**overrides), actor)

    return _make


@pytest.fixture()
def make_order():
    """Factory: create a production order as Ana (admin) and return its dict."""

    def _make(actor="Ana", **overrides):
        return wf.create_entity("planner", order_payload(**overrides), actor)

    return _make


@pytest.fixture()
def request_data():
    """Builder for a valid purchase-request payload: ``request_data(quantity=3)``."""
    return request_payload


@pytest.fixture()
def order_data():
    """Builder for a valid production-order payload."""
    return order_payload
