"""
Every error response shares one envelope and carries x-request-id.
"""
from fastapi.testclient import TestClient

from wavscan.core.errors import (
    BillingDisabledError,
    BillingProviderError,
    ConflictError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidCurrentPasswordError,
    MailDeliveryError,
    NotFoundError,
    NotFoundOrExpiredError,
    UnauthenticatedError,
    ValidationError,
    WebhookSignatureError,
)


def _assert_envelope(response, status, code):
    assert response.status_code == status
    body = response.json()
    assert body["error"]["code"] == code
    assert body["error"]["message"]
    assert body["detail"] == body["error"]["message"]
    assert body["error"]["request_id"] == response.headers["x-request-id"]


def test_error_codes_and_statuses():
    expected = {
        UnauthenticatedError: ("unauthenticated", 401),
        InvalidCredentialsError: ("invalid_credentials", 401),
        EmailNotVerifiedError: ("email_not_verified", 403),
        ValidationError: ("validation_error", 400),
        ConflictError: ("conflict", 400),
        NotFoundOrExpiredError: ("invalid_or_expired_token", 400),
        InvalidCurrentPasswordError: ("invalid_current_password", 400),
        NotFoundError: ("not_found", 404),
        WebhookSignatureError: ("invalid_signature", 400),
        BillingDisabledError: ("billing_disabled", 503),
        BillingProviderError: ("billing_provider_error", 502),
        MailDeliveryError: ("mail_delivery_failed", 502),
    }
    for cls, (code, status) in expected.items():
        assert (cls.code, cls.status_code) == (code, status), cls.__name__


def test_unauthenticated_envelope(client):
    _assert_envelope(client.get("/api/auth/me"), 401, "unauthenticated")


def test_request_id_is_propagated_into_error(client):
    response = client.get("/api/auth/me", headers={"x-request-id": "req-42"})
    assert response.json()["error"]["request_id"] == "req-42"


def test_body_validation_normalized_to_400(client):
    response = client.post("/api/auth/signup", json={"email": "a@b.com"})
    _assert_envelope(response, 400, "validation_error")
    assert response.json()["error"]["message"].startswith("username")


def test_unknown_route_is_404(client):
    _assert_envelope(client.get("/api/nope"), 404, "not_found")


def test_unhandled_exception_is_500(client, monkeypatch):
    def boom(email, password):
        raise RuntimeError("database exploded")

    monkeypatch.setattr("wavscan.features.accounts.service.login", boom)
    safe_client = TestClient(client.app, base_url="https://testserver", raise_server_exceptions=False)
    response = safe_client.post("/api/auth/login", json={"email": "a@b.com", "password": "longenough1"})
    assert response.status_code == 500
    body = response.json()
    assert body["error"]["code"] == "internal_error"
    assert "exploded" not in body["error"]["message"]


def test_health_endpoints(client):
    assert client.get("/healthz").json() == {"status": "ok"}
    assert client.get("/readyz").json() == {"status": "ok"}


def test_readyz_reports_unreachable_database(client, monkeypatch):
    monkeypatch.setattr("wavscan.core.database.check_connection", lambda: False)
    response = client.get("/readyz")
    assert response.status_code == 503
    assert response.json() == {"status": "error", "detail": "database unreachable"}


def test_readyz_reports_missing_tables(client):
    from wavscan.core.database import get_engine, user_feedback

    user_feedback.drop(get_engine())
    response = client.get("/readyz")
    assert response.status_code == 503
    assert response.json()["detail"] == "missing tables: user_feedback"
