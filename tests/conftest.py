"""
Shared pytest fixtures for the SitePulse survey service test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - fake_gateway: MagicMock standing in for the prediction boundary
"""

from unittest.mock import MagicMock, patch

import pytest

from sitepulse import create_app
from sitepulse.integrations.prediction_gateway import GatewayResult
from sitepulse.models import db as _db


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


# ── Prediction boundary ──────────────────────────────────────────────────


def _ok_result(data=None, status_code=200) -> GatewayResult:
    """A successful GatewayResult carrying ``data`` as the function result."""
    return GatewayResult(ok=True, status_code=status_code, data=data, error=None, duration_ms=40)


@pytest.fixture()
def fake_gateway():
    """Replace the prediction boundary for the duration of one test.

    Defaults: submission accepted with no updates, no predictions.
    Tests override ``return_value`` / ``side_effect`` per method.
    """
    gateway = MagicMock()
    gateway.submit_daily_survey.return_value = _ok_result(
        {"success": True, "updatesProcessed": 0, "updates": []}
    )
    gateway.predict_all_delays.return_value = _ok_result({"predictions": [], "totalTasks": 0})
    gateway.predict_delay.return_value = _ok_result({})
    with patch(
        "sitepulse.integrations.prediction_gateway.build_prediction_gateway",
        return_value=gateway,
    ):
        yield gateway
