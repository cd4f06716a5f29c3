"""
Credential flows: signup, login, email verification, password change and
password reset.

Policies:
- Signup never opens a session; the first session is issued when the email
  address is verified.
- Login reports unknown email and wrong password identically.
- Forgot-password and resend-verification answer the same way whether or not
  the account exists.
- Reset and verification tokens are random 256-bit values; only their
  SHA-256 digest is stored.
"""
import hashlib
import hmac
import re
import secrets
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Callable, Optional

from sqlalchemy import select, insert, update, delete, and_
from sqlalchemy.exc import IntegrityError

from wavscan.core.database import get_db_session, users, user_preferences, password_reset_tokens
from wavscan.core.errors import (
    ConflictError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidCurrentPasswordError,
    NotFoundOrExpiredError,
    ValidationError,
)
from wavscan.core.logging import log_event
from wavscan.core.passwords import MAX_PASSWORD_BYTES, hash_password, verify_password
from wavscan.features.mail.service import (
    MailError,
    Mailer,
    send_reset_password_email,
    send_verification_email,
)
from wavscan.features.users.service import DEFAULT_PREFERENCES, get_user, normalize_email
from wavscan.models.user import Plan, SubscriptionStatus, User

MIN_PASSWORD_LENGTH = 8
RESET_TOKEN_TTL = timedelta(hours=1)
VERIFICATION_TOKEN_TTL = timedelta(hours=24)

FORGOT_PASSWORD_MESSAGE = "If this email address exists, you will receive a reset link."
RESEND_VERIFICATION_MESSAGE = "If this account is awaiting verification, a new email has been sent."

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_USERNAME_RE = re.compile(r"^[a-z0-9_.-]{3,30}$")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def validate_email(email: str) -> str:
    normalized = normalize_email(email or "")
    if not _EMAIL_RE.match(normalized):
        raise ValidationError("email: invalid email address")
    return normalized


def validate_username(username: str) -> str:
    normalized = (username or "").strip().lower()
    if not _USERNAME_RE.match(normalized):
        raise ValidationError("username: 3 to 30 characters among letters, digits, '_', '.' and '-'")
    return normalized


def validate_new_password(password: str, field: str = "password") -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"{field}: must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"{field}: must be at most {MAX_PASSWORD_BYTES} bytes")
    return password


@lru_cache(maxsize=1)
def _unknown_account_digest() -> str:
    """bcrypt digest checked when the email is unknown, so every failed login pays the same cost."""
    return hash_password(secrets.token_hex(16)).digest


def _send_best_effort(action: str, send, *args, user_id: Optional[int] = None) -> bool:
    """Run a mail send; a failure is logged and reported as False."""
    try:
        send(*args)
        return True
    except MailError as e:
        log_event(
            "warning",
            f"{action}.mail_failed",
            user_id=user_id,
            event_type=action,
            error_code=e.kind.value,
        )
        return False


def _run_now(func: Callable, *args, **kwargs) -> None:
    func(*args, **kwargs)


def signup(email: str, username: str, password: str, mailer: Mailer) -> User:
    """Create an unverified free account and email a verification link."""
    email = validate_email(email)
    username = validate_username(username)
    validate_new_password(password)

    token = _new_token()
    with get_db_session() as session:
        if session.execute(select(users.c.id).where(users.c.email == email)).first():
            raise ConflictError("This email address is already in use")
        if session.execute(select(users.c.id).where(users.c.username == username)).first():
            raise ConflictError("This username is already taken")

        try:
            result = session.execute(
                insert(users).values(
                    email=email,
                    username=username,
                    password_hash=hash_password(password).digest,
                    plan=Plan.FREE.value,
                    subscription_status=SubscriptionStatus.NONE.value,
                    email_verified=False,
                    verification_token_hash=hash_token(token),
                    verification_expires_at=_now() + VERIFICATION_TOKEN_TTL,
                )
            )
            user_id = result.inserted_primary_key[0]
            session.execute(insert(user_preferences).values(user_id=user_id, **DEFAULT_PREFERENCES))
            session.flush()
        except IntegrityError as e:
            # Concurrent signup won the unique constraint
            raise ConflictError("This email address or username is already in use") from e

    user = get_user(user_id)
    log_event("info", "account.created", user_id=user_id, event_type="signup")
    _send_best_effort("signup", send_verification_email, mailer, email, username, token, user_id=user_id)
    return user


def login(email: str, password: str) -> User:
    """Check credentials; unknown email and wrong password are indistinguishable."""
    with get_db_session() as session:
        row = session.execute(
            select(users).where(users.c.email == normalize_email(email or ""))
        ).first()

    digest = row.password_hash if row is not None else _unknown_account_digest()
    if not verify_password(password or "", digest) or row is None:
        log_event("info", "login.failed", event_type="login")
        raise InvalidCredentialsError()

    if not row.email_verified:
        raise EmailNotVerifiedError("Please verify your email address before logging in")

    log_event("info", "login.succeeded", user_id=row.id, event_type="login")
    return User.from_row(row)


def verify_email(token: str) -> User:
    """Mark the account verified; the caller opens the first session."""
    if not token:
        raise NotFoundOrExpiredError()

    with get_db_session() as session:
        row = session.execute(
            select(users.c.id).where(
                and_(
                    users.c.verification_token_hash == hash_token(token),
                    users.c.verification_expires_at > _now(),
                    users.c.email_verified.is_(False),
                )
            )
        ).first()
        if row is None:
            raise NotFoundOrExpiredError()

        session.execute(
            update(users)
            .where(users.c.id == row.id)
            .values(
                email_verified=True,
                verification_token_hash=None,
                verification_expires_at=None,
                updated_at=_now(),
            )
        )

    log_event("info", "email.verified", user_id=row.id, event_type="verify_email")
    return get_user(row.id)


def resend_verification(email: str, mailer: Mailer, dispatch: Optional[Callable] = None) -> str:
    """`dispatch(func, *args)` schedules the mail; it runs inline when omitted."""
    with get_db_session() as session:
        row = session.execute(
            select(users.c.id, users.c.email, users.c.username).where(
                and_(users.c.email == normalize_email(email or ""), users.c.email_verified.is_(False))
            )
        ).first()
        if row is None:
            return RESEND_VERIFICATION_MESSAGE

        token = _new_token()
        session.execute(
            update(users)
            .where(users.c.id == row.id)
            .values(
                verification_token_hash=hash_token(token),
                verification_expires_at=_now() + VERIFICATION_TOKEN_TTL,
            )
        )

    (dispatch or _run_now)(_send_best_effort, "resend_verification", send_verification_email, mailer, row.email, row.username, token, user_id=row.id)
    return RESEND_VERIFICATION_MESSAGE


def change_password(user: User, current_password: str, new_password: str) -> None:
    if not current_password or not new_password:
        raise ValidationError("current_password and new_password are required")
    validate_new_password(new_password, field="new_password")

    with get_db_session() as session:
        row = session.execute(
            select(users.c.password_hash).where(users.c.id == user.id)
        ).first()
        if row is None or not verify_password(current_password, row.password_hash):
            raise InvalidCurrentPasswordError()

        session.execute(
            update(users)
            .where(users.c.id == user.id)
            .values(password_hash=hash_password(new_password).digest, updated_at=_now())
        )

    log_event("info", "password.changed", user_id=user.id, event_type="change_password")


def forgot_password(email: str, mailer: Mailer, dispatch: Optional[Callable] = None) -> str:
    """
    Issue a single-use reset token; the response never reveals whether the account exists.

    The reset mail goes through `dispatch(func, *args)` when given, so the
    route can answer before SMTP does.
    """
    with get_db_session() as session:
        row = session.execute(
            select(users.c.id, users.c.email, users.c.username).where(
                users.c.email == normalize_email(email or "")
            )
        ).first()
        if row is None:
            return FORGOT_PASSWORD_MESSAGE

        token = _new_token()
        session.execute(delete(password_reset_tokens).where(password_reset_tokens.c.user_id == row.id))
        session.execute(
            insert(password_reset_tokens).values(
                user_id=row.id,
                token_hash=hash_token(token),
                expires_at=_now() + RESET_TOKEN_TTL,
            )
        )

    (dispatch or _run_now)(_send_best_effort, "forgot_password", send_reset_password_email, mailer, row.email, row.username, token, user_id=row.id)
    return FORGOT_PASSWORD_MESSAGE


def reset_password(email: str, token: str, new_password: str) -> None:
    if not email or not token or not new_password:
        raise ValidationError("email, token and new_password are required")
    validate_new_password(new_password, field="new_password")

    with get_db_session() as session:
        row = session.execute(
            select(users.c.id, password_reset_tokens.c.token_hash)
            .select_from(users.join(password_reset_tokens, password_reset_tokens.c.user_id == users.c.id))
            .where(
                and_(
                    users.c.email == normalize_email(email),
                    password_reset_tokens.c.expires_at > _now(),
                )
            )
        ).first()

        if row is None or not hmac.compare_digest(row.token_hash, hash_token(token)):
            raise NotFoundOrExpiredError()

        session.execute(
            update(users)
            .where(users.c.id == row.id)
            .values(password_hash=hash_password(new_password).digest, updated_at=_now())
        )
        session.execute(delete(password_reset_tokens).where(password_reset_tokens.c.user_id == row.id))

    log_event("info", "password.reset", user_id=row.id, event_type="reset_password")
