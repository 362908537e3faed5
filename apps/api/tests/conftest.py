"""
Pytest configuration and fixtures

Tests run against an in-memory SQLite database. The schema is dropped and
recreated around every test, so nothing leaks between tests.
"""
import os
import sys
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from cryptography.fernet import Fernet

# Settings are read at import time; configure before importing the app
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-at-least-32-characters-long"
# Nothing listens here, so the cache degrades to disabled immediately
os.environ["REDIS_URL"] = "redis://127.0.0.1:1/0"
os.environ["TOKEN_ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["STRAVA_CLIENT_ID"] = "12345"
os.environ["STRAVA_CLIENT_SECRET"] = "strava-secret"
os.environ["STRAVA_REDIRECT_URI"] = "http://localhost:8000/api/strava/callback"
os.environ["STRAVA_WEBHOOK_VERIFY_TOKEN"] = "verify-me"
os.environ["STRAVA_SYNC_PAGE_DELAY_S"] = "0"
os.environ["STRAVA_SYNC_ITEM_DELAY_S"] = "0"
os.environ["LOG_FORMAT"] = "text"
os.environ["ENVIRONMENT"] = "test"

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fastapi.testclient import TestClient  # noqa: E402

from core.database import Base, SessionLocal, engine  # noqa: E402
from core.security import create_access_token  # noqa: E402
from models import Activity, User  # noqa: E402


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def make_user(db, **kwargs) -> User:
    values = {"email": f"test_{uuid4().hex}@example.com", "name": "Test User"}
    values.update(kwargs)
    user = User(**values)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_activity(db, user, **kwargs) -> Activity:
    start = kwargs.pop("start_date", datetime(2024, 3, 1, 7, 0, tzinfo=timezone.utc))
    values = {
        "name": "Morning Run",
        "type": "Run",
        "source": "manual",
        "start_date": start,
        "start_date_local": start.replace(tzinfo=None),
        "distance": 5000,
        "moving_time": 1500,
        "elapsed_time": 1600,
        "total_elevation_gain": 20,
    }
    values.update(kwargs)
    activity = Activity(user_id=user.id, **values)
    db.add(activity)
    db.commit()
    db.refresh(activity)
    return activity


def auth_headers_for(user) -> dict:
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def test_user(db_session):
    return make_user(db_session)


@pytest.fixture
def auth_headers(test_user):
    return auth_headers_for(test_user)


@pytest.fixture
def strava_user(db_session):
    """A user with a linked Strava account and a token that is still valid."""
    from services.token_encryption import encrypt_token

    return make_user(
        db_session,
        strava_id=987654,
        strava_access_token=encrypt_token("access-token"),
        strava_refresh_token=encrypt_token("refresh-token"),
        strava_token_expires_at=datetime.now(timezone.utc) + timedelta(hours=6),
    )


@pytest.fixture
def client():
    from main import app

    return TestClient(app)


class _RateLimitedResponse:
    status_code = 429
    headers = {"Retry-After": "900"}


@pytest.fixture
def strava_rate_limited(monkeypatch):
    """Every Strava GET answers 429; returns the list of sleeps requested."""
    import requests
    from services import strava_service

    sleeps = []
    monkeypatch.setattr(requests, "get", lambda *args, **kwargs: _RateLimitedResponse())
    monkeypatch.setattr(strava_service.time, "sleep", sleeps.append)
    return sleeps
