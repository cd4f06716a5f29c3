"""
Password hashing with bcrypt.

The cost factor is a fixed module constant. Raising it later needs a
rehash-on-login migration; existing digests keep verifying because bcrypt
records the cost inside each digest.
"""
from typing import NamedTuple, Optional

import bcrypt

BCRYPT_ROUNDS = 12
MAX_PASSWORD_BYTES = 72  # bcrypt ignores or rejects anything longer

# bcrypt digest layout: $2b$12$ + 22 chars of salt + 31 chars of hash
_SALT_PREFIX_LENGTH = 29


class PasswordHash(NamedTuple):
    digest: str
    salt: str


def hash_password(password: str) -> PasswordHash:
    """Hash `password` with a fresh random salt."""
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    digest = bcrypt.hashpw(encoded, salt).decode("utf-8")
    return PasswordHash(digest=digest, salt=salt.decode("utf-8"))


def verify_password(password: str, digest: str, salt: Optional[str] = None) -> bool:
    """Constant-time check of `password` against a stored bcrypt digest.

    `salt` is accepted for symmetry with `hash_password`; bcrypt reads it from
    the digest, and a mismatching salt fails verification.
    """
    if not digest:
        return False
    if salt is not None and not digest.startswith(salt[:_SALT_PREFIX_LENGTH]):
        return False
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, digest.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt digest
        return False
