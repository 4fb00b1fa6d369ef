"""
Shared pytest fixtures for the QA Test Case Library test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate, event bus reset (autouse)
    - client: Flask test client (function-scoped)
    - manager_headers / member_headers: gateway identity headers
    - make_test_case / make_automated_test: factories for service-level tests
"""

import pytest

from app import create_app
from app.models import db as _db
from app.models.automation import AutomatedTest
from app.services import event_bus, library_service

MANAGER_ID = "user-manager"
MEMBER_ID = "user-member"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


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
        event_bus.reset_publisher()
        yield
        event_bus.reset_publisher()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Identity ─────────────────────────────────────────────────────────────


@pytest.fixture()
def manager_headers():
    return {"X-User-Id": MANAGER_ID, "X-User-Role": "TEAM_LEAD"}


@pytest.fixture()
def member_headers():
    return {"X-User-Id": MEMBER_ID, "X-User-Role": "MEMBER"}


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_test_case():
    """Create a test case through the catalog service; returns its dict."""
    counter = {"n": 0}

    def _make(**overrides):
        author = overrides.pop("author", MANAGER_ID)
        counter["n"] += 1
        data = {
            "title": f"Library test case {counter['n']}",
            "description": "desc",
            "steps": "1. Open\n2. Check",
            "expected_outcome": "- Works",
        }
        data.update(overrides)
        return library_service.create_test_case(data, author=author)

    return _make


@pytest.fixture()
def make_automated_test():
    """Insert a telemetry row as the CI ingestion would."""

    def _make(test_id, title, last_executed_at=None, **extra):
        row = AutomatedTest(id=test_id, title=title, last_executed_at=last_executed_at, **extra)
        _db.session.add(row)
        _db.session.commit()
        return row

    return _make
