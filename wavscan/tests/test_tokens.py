"""
Tests for the session token codec.
"""
import base64
import json
import time

import pytest

from wavscan.core import tokens

SECRET = "test-secret-for-token-codec-0123456789"


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def test_round_trip_returns_claims_with_timestamps():
    token = tokens.sign({"sub": "42", "email": "a@b.com", "plan": "free"}, SECRET, ttl_seconds=60)
    claims = tokens.verify(token, SECRET)

    assert claims["sub"] == "42"
    assert claims["email"] == "a@b.com"
    assert claims["plan"] == "free"
    assert claims["exp"] - claims["iat"] == 60


def test_token_has_three_segments_and_hs256_header():
    token = tokens.sign({"sub": "1"}, SECRET)
    header, payload, signature = token.split(".")
    assert json.loads(_b64decode(header))["alg"] == "HS256"
    assert payload and signature


def test_default_ttl_is_fifteen_days():
    now = int(time.time())
    token = tokens.sign({"sub": "1"}, SECRET, now=now)
    claims = tokens.verify(token, SECRET)
    assert claims["exp"] == now + 15 * 24 * 3600


def test_tampered_payload_fails_with_bad_signature():
    token = tokens.sign({"sub": "1", "plan": "free"}, SECRET)
    header, payload, signature = token.split(".")

    claims = json.loads(_b64decode(payload))
    claims["plan"] = "pro"
    forged = ".".join([header, _b64(json.dumps(claims).encode()), signature])

    with pytest.raises(tokens.BadSignatureError):
        tokens.verify(forged, SECRET)


def test_wrong_secret_fails_with_bad_signature():
    token = tokens.sign({"sub": "1"}, SECRET)
    with pytest.raises(tokens.BadSignatureError):
        tokens.verify(token, "another-secret-for-token-codec-98765")


def test_negative_ttl_fails_with_expired():
    token = tokens.sign({"sub": "1"}, SECRET, ttl_seconds=-1)
    with pytest.raises(tokens.ExpiredTokenError):
        tokens.verify(token, SECRET)


@pytest.mark.parametrize("bad", ["", "abc", "a.b", "a..c", ".b.c", "a.b."])
def test_missing_segments_fail_as_malformed(bad):
    with pytest.raises(tokens.MalformedTokenError):
        tokens.verify(bad, SECRET)


def test_garbage_segments_fail_as_malformed():
    with pytest.raises(tokens.MalformedTokenError):
        tokens.verify("not.a.token", SECRET)


def test_all_failures_share_token_error_base():
    assert issubclass(tokens.MalformedTokenError, tokens.TokenError)
    assert issubclass(tokens.BadSignatureError, tokens.TokenError)
    assert issubclass(tokens.ExpiredTokenError, tokens.TokenError)


def _flipped_payloads():
    token = tokens.sign({"sub": "7", "email": "a@b.com", "plan": "free"}, SECRET, ttl_seconds=3600)
    header, payload, signature = token.split(".")
    for index, char in enumerate(payload):
        for bit in range(7):
            flipped = chr(ord(char) ^ (1 << bit))
            yield ".".join([header, payload[:index] + flipped + payload[index + 1:], signature])


def test_any_payload_bit_flip_fails_with_bad_signature():
    forged_tokens = list(_flipped_payloads())
    assert forged_tokens
    for forged in forged_tokens:
        with pytest.raises(tokens.BadSignatureError):
            tokens.verify(forged, SECRET)


def test_header_tampering_fails_with_bad_signature():
    token = tokens.sign({"sub": "1"}, SECRET)
    header, payload, signature = token.split(".")
    forged = ".".join([_b64(b'{"alg":"none","typ":"JWT"}'), payload, signature])
    with pytest.raises(tokens.BadSignatureError):
        tokens.verify(forged, SECRET)
