"""
Pytest configuration and fixtures

Tests run against an in-memory SQLite database. The schema is created
fresh for every test and dropped afterwards, so nothing leaks between
tests. External services (Stripe, Expo, RevenueCat, OpenAI, the pose
estimator) are stubbed per test with monkeypatch.
"""
import os
import sys

# Must be set before core.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-at-least-32-chars")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["CACHE_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_FORMAT"] = "text"
os.environ["SENTRY_DSN"] = ""
for _key in ("OPENAI_API_KEY", "REVENUECAT_WEBHOOK_SECRET", "REVENUECAT_API_KEY", "STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET"):
    os.environ.pop(_key, None)

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from core import account_security  # noqa: E402
from core.database import Base, SessionLocal, engine  # noqa: E402
from core.security import create_access_token  # noqa: E402
import models  # noqa: E402,F401
from models import User, XPRecord  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _reset_login_attempts():
    account_security._login_attempts.clear()
    yield
    account_security._login_attempts.clear()


@pytest.fixture
def db_session():
    """
    Session for arranging and asserting test data.

    Commit before calling the API. The app uses its own session, so call
    db_session.expire_all() before reading rows the app has changed.
    """
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    from main import app

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    """Factory: make_user(tier="free", role="user", xp=None, **fields) -> User."""

    def _make(tier: str = "free", role: str = "user", xp=None, **fields) -> User:
        fields.setdefault("email", f"user_{uuid4().hex[:10]}@example.com")
        fields.setdefault("username", fields["email"].split("@")[0])
        user = User(tier=tier, role=role, best_lifts={}, stats={}, **fields)
        db_session.add(user)
        db_session.flush()
        if xp is not None:
            db_session.add(XPRecord(user_id=user.id, xp=xp, streak=0))
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        token = create_access_token({"sub": str(user.id)})
        return {"Authorization": f"Bearer {token}"}

    return _headers
