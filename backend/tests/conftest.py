"""Shared pytest fixtures for test suite"""
import json
import secrets
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator
from unittest.mock import Mock, patch

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from svix.webhooks import Webhook

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from app.main import app
from app.core.config import settings
from app.db.session import get_db
from app.db import redis as redis_module
from app.models import Base
from app.models.user import User
from app.services.auth_service import hash_password


# SQLite in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

# Create test engine with StaticPool for in-memory database
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session factory
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

TEST_PASSWORD = "TestPassword123!"

# whsec_ + base64 of a 24-byte key, the format the provider dashboard hands out
TEST_WEBHOOK_SECRET = "whsec_MfKQ9r8GKYqrTwjUPD8ILPZIo2LaLaSw"

# Resend test email addresses - use these in ALL tests to avoid fake addresses
# See: https://resend.com/docs/dashboard/emails/send-test-emails
RESEND_TEST_DELIVERED = "delivered@resend.dev"
RESEND_TEST_BOUNCED = "bounced@resend.dev"
RESEND_TEST_COMPLAINED = "complained@resend.dev"


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh SQLite in-memory database session for each test"""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def mock_redis():
    """Replace the lazily created Redis client with fakeredis"""
    fake_redis = fakeredis.FakeStrictRedis(decode_responses=True)
    with patch.object(redis_module, "_client", fake_redis):
        yield fake_redis


@pytest.fixture(scope="function")
def client(db_session: Session, mock_redis) -> Generator[TestClient, None, None]:
    """FastAPI test client with test database and mocked Redis"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close session here, handled by fixture

    app.dependency_overrides[get_db] = override_get_db

    try:
        # Tables come from the db_session fixture; OTEL stays off without an endpoint
        with patch("app.main.init_db"):
            with patch("app.main.initialize_otel", return_value=False):
                with TestClient(app) as test_client:
                    yield test_client
    finally:
        app.dependency_overrides.clear()


def create_test_user(db: Session, email: str, role: str = "user", name: str = "Test User",
                     password: str = TEST_PASSWORD) -> User:
    user = User(
        email=email,
        name=name,
        role=role,
        password_hash=hash_password(password) if password else None,
        email_verified=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def login_as(client: TestClient, user: User) -> TestClient:
    """Attach a session cookie and matching CSRF header for user"""
    session_id = secrets.token_urlsafe(32)
    redis_module.set_session(session_id, user.id)
    csrf_token = redis_module.get_or_create_csrf_token(session_id)
    client.cookies.set("session_id", session_id)
    client.headers.update({"X-CSRF-Token": csrf_token})
    return client


@pytest.fixture(scope="function")
def admin_user(db_session: Session) -> User:
    return create_test_user(db_session, "admin@edufenelon.org", role="admin", name="Admin")


@pytest.fixture(scope="function")
def staff_user(db_session: Session) -> User:
    return create_test_user(db_session, "staff@edufenelon.org", role="staff", name="Staff Member")


@pytest.fixture(scope="function")
def member_user(db_session: Session) -> User:
    return create_test_user(db_session, "member@edufenelon.org", role="user", name="Member")


@pytest.fixture(scope="function")
def staff_client(client: TestClient, staff_user: User) -> TestClient:
    """Client logged in as a staff member, CSRF header set"""
    return login_as(client, staff_user)


@pytest.fixture(scope="function")
def admin_client(client: TestClient, admin_user: User) -> TestClient:
    """Client logged in as an admin, CSRF header set"""
    return login_as(client, admin_user)


@pytest.fixture(scope="function")
def member_client(client: TestClient, member_user: User) -> TestClient:
    return login_as(client, member_user)


@pytest.fixture(scope="function")
def mock_email_service():
    """Mock email service (Resend) to avoid sending actual emails"""
    with patch("app.services.email_service.resend") as mock_resend:
        mock_resend.Emails.send = Mock(return_value={"id": "email_test123"})
        mock_resend.Contacts.create = Mock(return_value={"id": "contact_test123"})
        with patch.object(settings, "RESEND_API_KEY", "re_test_key"):
            yield mock_resend


@pytest.fixture(scope="function")
def webhook_secret():
    with patch.object(settings, "RESEND_WEBHOOK_SECRET", TEST_WEBHOOK_SECRET):
        yield TEST_WEBHOOK_SECRET


def signed_webhook_headers(payload: str, msg_id: str = None, secret: str = TEST_WEBHOOK_SECRET) -> dict:
    """svix headers for payload, signed like the provider does"""
    msg_id = msg_id or f"msg_{secrets.token_hex(8)}"
    timestamp = datetime.now(timezone.utc)
    signature = Webhook(secret).sign(msg_id, timestamp, payload)
    return {
        "svix-id": msg_id,
        "svix-timestamp": str(int(timestamp.timestamp())),
        "svix-signature": signature,
        "content-type": "application/json",
    }


def post_webhook(client: TestClient, event: dict, msg_id: str = None):
    """POST a signed webhook delivery"""
    payload = json.dumps(event)
    return client.post(
        "/api/webhooks/resend",
        content=payload,
        headers=signed_webhook_headers(payload, msg_id=msg_id),
    )


@pytest.fixture(scope="function")
def make_user(db_session: Session):
    """Factory: make_user(email, role="user", ...) -> User"""
    def _make(email: str, role: str = "user", **kwargs) -> User:
        return create_test_user(db_session, email, role=role, **kwargs)
    return _make


@pytest.fixture(scope="function")
def login():
    """login(client, user) switches the client's session to user"""
    return login_as


@pytest.fixture(scope="function")
def send_webhook(client: TestClient, webhook_secret):
    """send_webhook(event, msg_id=None) -> response of a correctly signed delivery"""
    def _send(event: dict, msg_id: str = None):
        return post_webhook(client, event, msg_id=msg_id)
    return _send


@pytest.fixture(scope="function")
def webhook_headers(webhook_secret):
    """webhook_headers(payload, msg_id=None) -> svix headers signed with the configured secret"""
    def _headers(payload: str, msg_id: str = None) -> dict:
        return signed_webhook_headers(payload, msg_id=msg_id, secret=webhook_secret)
    return _headers
