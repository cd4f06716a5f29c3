"""
Session token codec.

Compact HS256 JWT: base64url(header).base64url(payload).base64url(signature).
The payload carries the caller's claims plus `iat` and `exp` (epoch seconds).
Tokens are stateless; validity depends only on the signature and `exp`.
"""
import binascii
import time
from typing import Any, Dict, Optional

import jwt
from jwt.algorithms import HMACAlgorithm
from jwt.utils import base64url_decode

ALGORITHM = "HS256"
DEFAULT_TTL_SECONDS = 15 * 24 * 60 * 60

_HMAC = HMACAlgorithm(HMACAlgorithm.SHA256)


class TokenError(Exception):
    """Base class for token verification failures."""


class MalformedTokenError(TokenError):
    pass


class BadSignatureError(TokenError):
    pass


class ExpiredTokenError(TokenError):
    pass


def sign(claims: Dict[str, Any], secret: str, ttl_seconds: int = DEFAULT_TTL_SECONDS, *, now: Optional[int] = None) -> str:
    """Sign `claims` with `secret`; the token expires `ttl_seconds` after issue."""
    issued_at = int(now if now is not None else time.time())
    payload = dict(claims)
    payload["iat"] = issued_at
    payload["exp"] = issued_at + ttl_seconds
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def verify(token: str, secret: str) -> Dict[str, Any]:
    """
    Verify `token` and return its decoded payload.

    The HMAC over "<header>.<payload>" is checked before either segment is
    decoded, so any alteration of those bytes surfaces as BadSignatureError.

    Raises:
        MalformedTokenError: a segment is missing or the signature is undecodable
        BadSignatureError: signature does not match
        ExpiredTokenError: `exp` is in the past
    """
    if not token:
        raise MalformedTokenError("Empty token")
    segments = token.split(".")
    if len(segments) < 3 or not all(segments):
        raise MalformedTokenError("Token must have three non-empty segments")

    signing_input, encoded_signature = token.rsplit(".", 1)
    try:
        signature = base64url_decode(encoded_signature)
    except (binascii.Error, ValueError) as e:
        raise MalformedTokenError("Undecodable signature") from e

    if not _HMAC.verify(signing_input.encode("utf-8"), _HMAC.prepare_key(secret), signature):
        raise BadSignatureError("Bad signature")

    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise ExpiredTokenError("Token expired") from e
    except jwt.InvalidSignatureError as e:
        raise BadSignatureError("Bad signature") from e
    except jwt.InvalidTokenError as e:
        raise MalformedTokenError(f"Invalid token: {e}") from e
