"""
Tests for the SMTP mailer and contact form.
"""
import smtplib
import socket
from unittest.mock import MagicMock, patch

import pytest

from wavscan.features.mail.service import (
    MailError,
    MailErrorKind,
    Mailer,
    OutgoingMail,
    classify_smtp_error,
    send_reset_password_email,
)
from wavscan.tests.mocks import FakeMailer, token_from_mail


@pytest.mark.parametrize(
    "exc,kind",
    [
        (socket.timeout("timed out"), MailErrorKind.TIMEOUT),
        (smtplib.SMTPAuthenticationError(535, b"bad creds"), MailErrorKind.AUTHENTICATION),
        (smtplib.SMTPRecipientsRefused({"x@y.com": (550, b"no")}), MailErrorKind.RECIPIENT_REFUSED),
        (smtplib.SMTPServerDisconnected("gone"), MailErrorKind.CONNECTION),
        (ConnectionRefusedError(), MailErrorKind.CONNECTION),
        (smtplib.SMTPDataError(554, b"rejected"), MailErrorKind.UNKNOWN),
    ],
)
def test_classify_by_exception_class(exc, kind):
    assert classify_smtp_error(exc) is kind


def test_unconfigured_mailer_raises_not_configured():
    mailer = Mailer(host=None)
    with pytest.raises(MailError) as info:
        mailer.send(OutgoingMail(to="a@b.com", subject="s", body="b"))
    assert info.value.kind is MailErrorKind.NOT_CONFIGURED


def test_send_uses_starttls_login_and_timeout():
    mailer = Mailer(host="smtp.example.com", port=587, username="u", password="p", sender="noreply@example.com", timeout=10.0)
    with patch("wavscan.features.mail.service.smtplib.SMTP") as smtp_cls:
        smtp = MagicMock()
        smtp_cls.return_value.__enter__.return_value = smtp
        mailer.send(OutgoingMail(to="a@b.com", subject="Hello", body="Body", reply_to="c@d.com"))

    smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=10.0)
    smtp.starttls.assert_called_once()
    smtp.login.assert_called_once_with("u", "p")
    message = smtp.send_message.call_args.args[0]
    assert message["To"] == "a@b.com"
    assert message["Reply-To"] == "c@d.com"


def test_transport_failure_becomes_tagged_error():
    mailer = Mailer(host="smtp.example.com", sender="noreply@example.com")
    with patch("wavscan.features.mail.service.smtplib.SMTP", side_effect=socket.timeout("timed out")):
        with pytest.raises(MailError) as info:
            mailer.send(OutgoingMail(to="a@b.com", subject="s", body="b"))
    assert info.value.kind is MailErrorKind.TIMEOUT


def test_reset_mail_link_carries_token_and_email():
    mailer = FakeMailer()
    send_reset_password_email(mailer, "a@b.com", "alice", "abc123", frontend_url="https://app.example.com/")
    body = mailer.sent[0].body
    assert "https://app.example.com/reset-password?token=abc123&email=a%40b.com" in body
    assert token_from_mail(mailer.sent[0]) == "abc123"


def test_contact_route_sends_mail(client, mailer):
    response = client.post(
        "/api/contact",
        json={"name": "Ann", "email": "ann@example.com", "subject": "Hi", "message": "Hello there"},
    )
    assert response.status_code == 200
    sent = mailer.sent[0]
    assert sent.reply_to == "ann@example.com"
    assert "Hello there" in sent.body


def test_contact_route_mail_failure_is_502(client):
    client.app.state.mailer = FakeMailer(fail_with=MailErrorKind.AUTHENTICATION)
    response = client.post(
        "/api/contact",
        json={"name": "Ann", "email": "ann@example.com", "message": "Hello there"},
    )
    assert response.status_code == 502
    body = response.json()
    assert body["error"]["code"] == "mail_delivery_failed"
    assert "authentication" in body["error"]["message"]


def test_contact_route_validates_email(client, mailer):
    response = client.post("/api/contact", json={"name": "Ann", "email": "nope", "message": "Hello"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "validation_error"
    assert mailer.sent == []
