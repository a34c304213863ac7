"""
Pytest configuration and fixtures for testing.

This file provides reusable test fixtures for:
- Database setup/teardown
- FastAPI test client with bearer tokens
- Recording fakes for the email and SMS channels
"""

import uuid
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.core.security import create_access_token
from app.models.notification import NotificationSetting
from app.models.user import User
from app.services.email_service import email_service
from app.services.scheduler import build_job_registry
from app.services.sms_service import sms_service
from main import app


# Use in-memory SQLite for testing (fast, isolated)
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Fixed clock shared by tests that inject "now" (a Wednesday)
NOW = datetime(2026, 3, 4, 12, 0, 0, tzinfo=timezone.utc)


class ChannelRecorder:
    """Stands in for a delivery call and remembers what it was asked to send."""

    def __init__(self):
        self.calls = []
        self.result = True
        self.error = None

    def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        if self.error is not None:
            raise self.error
        return self.result

    @property
    def count(self):
        return len(self.calls)


@pytest.fixture
def db_session():
    """
    Create a fresh database for each test.
    """
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Every email leaving the app goes through EmailService.send_email."""
    recorder = ChannelRecorder()
    monkeypatch.setattr(email_service, "send_email", recorder)
    return recorder


@pytest.fixture(autouse=True)
def sent_sms(monkeypatch):
    """Every text leaving the app goes through SmsService.send_sms."""
    recorder = ChannelRecorder()
    monkeypatch.setattr(sms_service, "send_sms", recorder)
    return recorder


@pytest.fixture(autouse=True)
def no_request_rate_limit(monkeypatch):
    """Redis is not available in tests; the request counters are no-ops."""
    monkeypatch.setattr("app.api.endpoints.verification.check_send_code_limit", lambda user_id: None)
    monkeypatch.setattr("app.api.endpoints.verification.check_verify_code_limit", lambda user_id: None)


@pytest.fixture
def job_registry():
    return build_job_registry()


@pytest.fixture
def client(db_session, job_registry):
    """
    FastAPI test client with overridden database dependency and an
    in-memory job registry.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    original_registry = app.state.job_registry
    app.state.job_registry = job_registry

    with TestClient(app) as test_client:
        yield test_client

    app.state.job_registry = original_registry
    app.dependency_overrides.clear()


def make_user(db, email="jane@example.com", full_name="Jane Doe", is_admin=False,
              is_verified=False, settings=None):
    """Create a user, optionally with a NotificationSetting built from the given overrides."""
    user = User(
        id=uuid.uuid4(),
        email=email,
        full_name=full_name,
        is_active=True,
        is_verified=is_verified,
        is_admin=is_admin
    )
    db.add(user)
    if settings is not None:
        db.add(NotificationSetting(user_id=user.id, **settings))
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def user(db_session):
    return make_user(db_session, settings={})


@pytest.fixture
def admin_user(db_session):
    return make_user(db_session, email="admin@example.com", full_name="Admin", is_admin=True)


def auth_headers_for(user):
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(user):
    return auth_headers_for(user)


@pytest.fixture
def admin_headers(admin_user):
    return auth_headers_for(admin_user)
