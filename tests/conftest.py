"""
Shared pytest fixtures for the AI Use-Case Governance Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - governed: factory for use-case bodies that pass every governance gate
    - use_case: Pre-created Backlog use case with all gate data
"""

import pytest

from aigov import create_app
from aigov.models import db as _db


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
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


def governed_fields(**overrides):
    """Field set that satisfies Gates 1–3 and the Strategic exit requirements."""
    data = {
        "title": "Claims triage assistant",
        "description": "Routes inbound claims to the right handler",
        "primary_business_owner": "Jordan Lee",
        "business_function": "Claims",
        "use_case_status": "Backlog",
        "revenue_impact": 4,
        "cost_savings": 4,
        "risk_reduction": 3,
        "broker_partner_experience": 4,
        "strategic_fit": 5,
        "explainability_required": True,
        "customer_harm_risk": "Low",
        "human_accountability": True,
        "data_outside_uk_eu": False,
        "third_party_model": False,
        "rai_risk_tier": "Tier 2",
    }
    data.update(overrides)
    return data


@pytest.fixture()
def governed():
    """Factory for gate-complete use-case bodies; keyword args override fields."""
    return governed_fields


@pytest.fixture()
def use_case(client):
    """Create and return a fully governed Backlog use case via the API."""
    res = client.post("/api/v1/use-cases", json=governed_fields())
    assert res.status_code == 201
    return res.get_json()
