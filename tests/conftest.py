"""
Shared pytest fixtures: in-memory SQLite, fake reCAPTCHA endpoint and fake mail relay.
"""
from contextlib import contextmanager

import httpx
import pytest
from fastapi.testclient import TestClient

from contact_backend.config import Settings, clear_settings_cache
from contact_backend.database import create_db_engine, create_session_factory, create_tables
from contact_backend.main import create_app

ALLOWED_ORIGIN = "http://localhost:5175"


class FakeRecaptcha:
    """Stands in for Google's siteverify endpoint through httpx.MockTransport."""

    def __init__(self):
        self.payload = {"success": True, "hostname": "localhost"}
        self.status_code = 200
        self.error = None
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json=self.payload)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeMailer:
    """Mail relay transport that can fail the first N calls."""

    def __init__(self):
        self.calls = 0
        self.fail_times = 0
        self.sent = []

    def __call__(self, params: dict) -> dict:
        self.calls += 1
        if self.calls <= self.fail_times:
            raise RuntimeError("relay unavailable")
        self.sent.append(params)
        return {"id": f"email-{self.calls}"}


@pytest.fixture
def env(monkeypatch):
    """Baseline environment for an isolated app instance."""
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("RECAPTCHA_SECRET_KEY", "test-secret")
    monkeypatch.setenv("CORS_ORIGIN", ALLOWED_ORIGIN)
    monkeypatch.setenv("EMAIL_RETRY_DELAY_MS", "0")
    monkeypatch.setenv("EMAIL_RATE_LIMIT", "0")
    for name in (
        "RECAPTCHA_MODE",
        "REQUIRE_AGREEMENT",
        "RESEND_API_KEY",
        "RESEND_REPLY_TO",
        "NOTIFICATION_EMAILS",
        "UNSUBSCRIBE_EMAIL",
        "SITE_URL",
        "EMAIL_MAX_ATTEMPTS",
        "RESEND_FROM_EMAIL",
        "RECAPTCHA_MIN_SCORE",
        "RECAPTCHA_ACTION",
        "RECAPTCHA_TIMEOUT",
        "RECAPTCHA_VERIFY_URL",
        "DB_HOST",
        "DB_PORT",
        "DB_USER",
        "DB_PASSWORD",
        "DB_NAME",
        "DB_DRIVER",
        "DB_POOL_SIZE",
        "PORT",
        "ENV",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    yield monkeypatch
    clear_settings_cache()


@pytest.fixture
def recaptcha():
    return FakeRecaptcha()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def make_client(env, recaptcha, mailer):
    """Builds a TestClient after the test has tuned the environment."""

    @contextmanager
    def _make():
        app = create_app(Settings(), http_transport=recaptcha.transport, email_transport=mailer)
        with TestClient(app) as client:
            yield client

    return _make


@pytest.fixture
def client(make_client):
    with make_client() as client:
        yield client


def drain_emails(client: TestClient) -> None:
    """Waits for background email deliveries scheduled by previous requests."""
    client.portal.call(client.app.state.notifier.aclose)


@pytest.fixture
def db_session(env):
    """Plain SQLAlchemy session over a fresh in-memory database."""
    engine = create_db_engine(Settings())
    create_tables(engine)
    session = create_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def valid_form():
    return {
        "name": "Ana Pérez",
        "email": "ana@example.com",
        "company": "Acme",
        "phone": "+54 11 5555-5555",
        "message": "We'd like a quote.",
        "recaptcha_response": "token-1234567890abcdef",
        "agreement": "true",
    }
