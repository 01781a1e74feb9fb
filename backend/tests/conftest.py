import os
import tempfile
from pathlib import Path

# Settings are read at import time, configure before importing the app
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_INIT_MODE"] = "create_all"
os.environ["ENVIRONMENT"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["EMAIL_HOST"] = ""
os.environ["LOGIN_NOTIFICATIONS_ENABLED"] = "false"
os.environ["ADMIN_EMAIL"] = "admin@example.com"
os.environ["LOG_FILE"] = str(Path(tempfile.gettempdir()) / "identity-provider-tests" / "app.log")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.core.exceptions import EmailDeliveryError
from app.core.security import get_password_hash
from app.models.user import User
from app.services.auth_service import AuthService
from app.services.mfa_service import MfaService
from app.services.rate_limiter import rate_limiter

PASSWORD = "Str0ng!Passw0rd"


class FakeEmailSender:
    """Records outgoing mail instead of talking to SMTP."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def _record(self, kind, email, *args):
        if self.fail:
            raise EmailDeliveryError("SMTP unavailable")
        self.sent.append((kind, email) + args)

    def send_verification_email(self, email, token):
        self._record("verification", email, token)

    def send_password_reset_email(self, email, token):
        self._record("reset", email, token)

    def send_login_notification(self, email, ip_address, user_agent):
        self._record("login", email, ip_address, user_agent)

    def last_token(self, kind):
        for entry in reversed(self.sent):
            if entry[0] == kind:
                return entry[2]
        return None


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    rate_limiter.reset()
    yield
    rate_limiter.reset()


@pytest.fixture
def mailer():
    return FakeEmailSender()


@pytest.fixture
def auth(mailer):
    return AuthService(email_dispatcher=mailer, mfa=MfaService(issuer_name="Test IdP", backup_code_count=4))


@pytest.fixture
def make_user(db):
    def _make_user(
        email="alice@example.com",
        password=PASSWORD,
        verified=True,
        active=True,
        roles=None,
    ):
        user = User(
            email=email,
            password_hash=get_password_hash(password),
            roles=roles or ["USER"],
            is_email_verified=verified,
            is_active=active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user
