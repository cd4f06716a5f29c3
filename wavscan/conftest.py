# wavscan/conftest.py
import os

# Must be set before any wavscan module reads settings
os.environ["ENV"] = "test"
os.environ["SKIP_ENV_VALIDATION"] = "1"
os.environ["TEST_DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import insert

from wavscan.core.auth import COOKIE_NAME, issue_session_token
from wavscan.core.database import init_engine, create_all_tables, dispose_engine, get_db_session, users, user_preferences
from wavscan.core.passwords import hash_password
from wavscan.features.billing.reconciler import SubscriptionReconciler
from wavscan.features.billing.stripe_provider import StripeProvider
from wavscan.features.users.service import DEFAULT_PREFERENCES, get_user
from wavscan.tests.mocks import FakeMailer, WEBHOOK_SECRET

DEFAULT_PASSWORD = "longenough1"


@pytest.fixture(scope="function", autouse=True)
def db():
    """Fresh in-memory SQLite database per test."""
    engine = init_engine("sqlite://")
    create_all_tables()
    yield engine
    dispose_engine()


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    """Minimum bcrypt cost keeps the suite fast."""
    monkeypatch.setattr("wavscan.core.passwords.BCRYPT_ROUNDS", 4)


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def reconciler():
    return SubscriptionReconciler(StripeProvider(secret_key="sk_test_wavscan", webhook_secret=WEBHOOK_SECRET))


@pytest.fixture
def client(mailer, reconciler):
    from wavscan.main import app

    app.state.mailer = mailer
    app.state.reconciler = reconciler
    # Session cookies are Secure
    test_client = TestClient(app, base_url="https://testserver")
    yield test_client
    del app.state.mailer
    del app.state.reconciler


@pytest.fixture
def make_user():
    """Factory inserting a user row directly and returning the User."""
    counter = {"n": 0}

    def _make(
        email=None,
        username=None,
        password=DEFAULT_PASSWORD,
        plan="free",
        email_verified=True,
        **fields,
    ):
        counter["n"] += 1
        n = counter["n"]
        with get_db_session() as session:
            result = session.execute(
                insert(users).values(
                    email=email or f"user{n}@example.com",
                    username=username or f"user{n}",
                    password_hash=hash_password(password).digest,
                    plan=plan,
                    email_verified=email_verified,
                    **fields,
                )
            )
            user_id = result.inserted_primary_key[0]
            session.execute(insert(user_preferences).values(user_id=user_id, **DEFAULT_PREFERENCES))
        return get_user(user_id)

    return _make


@pytest.fixture
def login_as(client):
    """Attach a session cookie for `user` to the test client."""

    def _login(user):
        client.cookies.set(COOKIE_NAME, issue_session_token(user))
        return client

    return _login
