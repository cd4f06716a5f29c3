"""
Outbound mail over SMTP.

Mailer is constructed once from settings at startup and handed to request
handlers through `app.state`. Transport failures surface as MailError with a
MailErrorKind chosen from the exception class, so callers branch on the kind
instead of on message text.
"""
import logging
import smtplib
import socket
from dataclasses import dataclass
from email.message import EmailMessage
from enum import Enum
from typing import Optional
from urllib.parse import urlencode

from fastapi import Request

from wavscan.core.config import Settings, settings as default_settings

logger = logging.getLogger("wavscan")


class MailErrorKind(str, Enum):
    NOT_CONFIGURED = "not_configured"
    CONNECTION = "connection"
    AUTHENTICATION = "authentication"
    RECIPIENT_REFUSED = "recipient_refused"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class MailError(Exception):
    def __init__(self, kind: MailErrorKind, message: str = ""):
        super().__init__(message or kind.value)
        self.kind = kind


def classify_smtp_error(exc: BaseException) -> MailErrorKind:
    """Map a transport exception to a MailErrorKind."""
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return MailErrorKind.TIMEOUT
    if isinstance(exc, smtplib.SMTPAuthenticationError):
        return MailErrorKind.AUTHENTICATION
    if isinstance(exc, (smtplib.SMTPRecipientsRefused, smtplib.SMTPSenderRefused)):
        return MailErrorKind.RECIPIENT_REFUSED
    if isinstance(exc, (smtplib.SMTPConnectError, smtplib.SMTPServerDisconnected, ConnectionError, socket.gaierror)):
        return MailErrorKind.CONNECTION
    return MailErrorKind.UNKNOWN


@dataclass
class OutgoingMail:
    to: str
    subject: str
    body: str
    reply_to: Optional[str] = None


class Mailer:
    """SMTP transport with STARTTLS and a bounded timeout."""

    def __init__(
        self,
        host: Optional[str],
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username
        self.timeout = timeout

    @classmethod
    def from_settings(cls, cfg: Optional[Settings] = None) -> "Mailer":
        cfg = cfg or default_settings
        return cls(
            host=cfg.SMTP_HOST,
            port=cfg.SMTP_PORT,
            username=cfg.SMTP_USER,
            password=cfg.SMTP_PASS,
            sender=cfg.SMTP_FROM,
            timeout=cfg.SMTP_TIMEOUT_SECONDS,
        )

    @property
    def configured(self) -> bool:
        return bool(self.host and self.sender)

    def _build(self, mail: OutgoingMail) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = mail.to
        message["Subject"] = mail.subject
        if mail.reply_to:
            message["Reply-To"] = mail.reply_to
        message.set_content(mail.body)
        return message

    def send(self, mail: OutgoingMail) -> None:
        if not self.configured:
            raise MailError(MailErrorKind.NOT_CONFIGURED, "SMTP is not configured")

        message = self._build(mail)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                smtp.starttls()
                if self.username and self.password:
                    smtp.login(self.username, self.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            kind = classify_smtp_error(e)
            logger.warning("mail.send_failed", extra={"error_code": kind.value})
            raise MailError(kind, str(e)) from e


def get_mailer(request: Request) -> Mailer:
    """FastAPI dependency returning the process mailer."""
    mailer = getattr(request.app.state, "mailer", None)
    if mailer is None:
        mailer = Mailer.from_settings()
        request.app.state.mailer = mailer
    return mailer


def send_verification_email(mailer: Mailer, email: str, username: str, token: str, frontend_url: Optional[str] = None) -> None:
    base = (frontend_url or default_settings.FRONTEND_URL).rstrip("/")
    link = f"{base}/verify-email?token={token}"
    mailer.send(
        OutgoingMail(
            to=email,
            subject="[Wav Social Scan] Verify your email address",
            body=(
                f"Hello {username},\n\n"
                "Thanks for signing up to Wav Social Scan. Confirm your email address "
                f"by opening this link:\n\n{link}\n\n"
                "The link expires in 24 hours. If you did not create an account, ignore this email.\n"
            ),
        )
    )


def send_reset_password_email(mailer: Mailer, email: str, username: str, token: str, frontend_url: Optional[str] = None) -> None:
    base = (frontend_url or default_settings.FRONTEND_URL).rstrip("/")
    link = f"{base}/reset-password?{urlencode({'token': token, 'email': email})}"
    mailer.send(
        OutgoingMail(
            to=email,
            subject="[Wav Social Scan] Reset your password",
            body=(
                f"Hello {username},\n\n"
                f"Open this link to choose a new password:\n\n{link}\n\n"
                "The link expires in one hour. If you did not ask for a reset, ignore this email.\n"
            ),
        )
    )


def send_contact_message(mailer: Mailer, recipient: str, name: str, email: str, subject: Optional[str], message: str) -> None:
    mailer.send(
        OutgoingMail(
            to=recipient,
            subject=f"[Wav Social Scan] {subject or 'New contact'} - {name}",
            body=f"From: {name} <{email}>\nSubject: {subject or 'Not specified'}\n\n{message}\n",
            reply_to=email,
        )
    )
