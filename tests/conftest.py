"""
Shared pytest fixtures for the Document Ledger test suite.

Provides:
    - app: Flask application on in-memory SQLite (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB reset (autouse)
    - client: Flask test client (function-scoped)
    - tenant / other_tenant: Pre-created Tenant entities
    - file_app: Flask application on a file-backed SQLite DB, for tests
      that run real threads against the database
    - complete_payload: a payload that passes completion validation
"""

import copy

import pytest

from docledger import create_app
from docledger.models import db as _db
from docledger.models.tenant import Tenant
from docledger.services.security_observability import reset_security_events

COMPLETE_PAYLOAD = {
    "contact_info": {
        "business_name": "Acme",
        "contact_person": "Jo Rivera",
        "email": "jo@acme.example.com",
        "phone": "+61 400 000 000",
    },
    "business_context": {
        "industry": "Retail",
        "business_type": "ecommerce",
        "team_size": 12,
        "marketing_channels": ["email", "search"],
    },
    "pain_points": {
        "primary_challenges": ["Slow checkout"],
        "urgency_level": "high",
    },
    "goals_objectives": {
        "primary_goals": ["Double online revenue"],
        "timeline": {"desired_start": "2026-11-01", "milestones": ["MVP"]},
        "budget_range": "10k-25k",
    },
    "notes": "Referred by partner agency.",
}


def _make_tenant(name: str, slug: str, **kwargs) -> Tenant:
    """Create and commit a Tenant."""
    t = Tenant(name=name, slug=slug, **kwargs)
    _db.session.add(t)
    _db.session.commit()
    return t


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
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        reset_security_events()
        yield _db.session
        reset_security_events()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def tenant():
    return _make_tenant("Tenant A", "tenant-a")


@pytest.fixture()
def other_tenant():
    return _make_tenant("Tenant B", "tenant-b")


@pytest.fixture()
def file_app(tmp_path):
    """Application on a file-backed SQLite database shared by many threads.

    Each worker thread must push its own app context so it gets its own
    session and connection.
    """
    application = create_app(
        "testing",
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'ledger.db'}",
        LOCK_TIMEOUT_SECONDS=30,
        SQLALCHEMY_ENGINE_OPTIONS={
            "connect_args": {"timeout": 30, "check_same_thread": False},
            "pool_size": 20,
            "max_overflow": 40,
        },
    )
    yield application
    with application.app_context():
        _db.session.remove()
        _db.engine.dispose()


@pytest.fixture()
def complete_payload():
    return copy.deepcopy(COMPLETE_PAYLOAD)
