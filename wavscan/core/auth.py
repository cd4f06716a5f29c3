"""
Session cookie management.

The session is a signed token (see wavscan.core.tokens) carried in the
`wav_auth` cookie. Nothing is stored server-side: a session ends when the
token expires, when the browser drops the cookie, or when the account it
points to no longer exists.
"""
import logging
from datetime import datetime, timedelta, timezone
from http.cookies import SimpleCookie
from email.utils import format_datetime
from typing import Optional

from fastapi import Request

from wavscan.core import tokens
from wavscan.core.config import settings
from wavscan.core.errors import UnauthenticatedError
from wavscan.features.users.service import get_user
from wavscan.models.user import User

logger = logging.getLogger("wavscan")

COOKIE_NAME = "wav_auth"
SESSION_TTL_SECONDS = tokens.DEFAULT_TTL_SECONDS
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _cookie_header(value: str, expires: datetime, max_age: int) -> str:
    cookie = SimpleCookie()
    cookie[COOKIE_NAME] = value
    morsel = cookie[COOKIE_NAME]
    morsel["expires"] = format_datetime(expires, usegmt=True)
    morsel["max-age"] = max_age
    morsel["path"] = "/"
    morsel["secure"] = True
    morsel["httponly"] = True
    morsel["samesite"] = "Lax"
    return morsel.OutputString()


def issue_session_token(user: User, secret: Optional[str] = None) -> str:
    claims = {"sub": str(user.id), "email": user.email, "plan": user.plan.value}
    return tokens.sign(claims, secret or settings.JWT_SECRET, SESSION_TTL_SECONDS)


def issue_session_cookie(user: User, secret: Optional[str] = None) -> str:
    """Return a Set-Cookie header value carrying a fresh session token."""
    token = issue_session_token(user, secret)
    expires = datetime.now(timezone.utc) + timedelta(seconds=SESSION_TTL_SECONDS)
    return _cookie_header(token, expires, SESSION_TTL_SECONDS)


def clear_session_cookie() -> str:
    """Return a Set-Cookie header value that expires the session cookie."""
    return _cookie_header("", _EPOCH, 0)


def read_session_token(request: Request) -> Optional[str]:
    return request.cookies.get(COOKIE_NAME) or None


def get_current_user(request: Request) -> User:
    """FastAPI dependency resolving the authenticated user from the session cookie."""
    token = read_session_token(request)
    if not token:
        raise UnauthenticatedError()

    try:
        claims = tokens.verify(token, settings.JWT_SECRET)
    except tokens.TokenError as e:
        logger.info("session.rejected", extra={"error_code": type(e).__name__})
        raise UnauthenticatedError() from e

    try:
        user_id = int(claims.get("sub"))
    except (TypeError, ValueError) as e:
        raise UnauthenticatedError() from e

    user = get_user(user_id)
    if user is None:
        # Account deleted after the token was issued
        raise UnauthenticatedError()
    return user
