"""
auth/credentials.py -- Password hashing and verification (Credential Manager).

Security design decisions:
  argon2id via argon2-cffi's PasswordHasher. Argon2 is memory-hard, which makes
      GPU/ASIC brute-force of a leaked credential table expensive. Every call
      to hash_password() draws a fresh random salt, so hashing the same
      password twice yields two different encodings.

  verify_password() returns False for any mismatch and never raises for a
      wrong password. argon2 compares the derived digest in constant time, so
      the comparison does not exit early on the first differing byte. A stored
      value that is not an argon2 encoding raises MalformedHash -- that is data
      corruption, not a failed login, and must not be reported as one.

  The _DUMMY_HASH constant enables timing equalization in the login path:
      verify_dummy() costs the same as a real verification, so the response
      time does not reveal whether a handle exists.

  Password policy: one deliberate minimum length (PASSWORD_MIN_LENGTH,
      default 8) applied at registration and password rotation. Login never
      applies the policy -- a short password simply fails verification.

Plaintext passwords are never logged.
"""

from __future__ import annotations

import logging

from argon2 import PasswordHasher
from argon2.exceptions import HashingError, InvalidHashError, VerificationError, VerifyMismatchError

from auth.errors import HashingFailure, InvalidRequest, MalformedHash

logger = logging.getLogger("neon.auth")

_hasher = PasswordHasher()


def hash_password(plain: str) -> str:
    """Return an argon2id encoding of the given plaintext password.

    Raises InvalidRequest for an empty password and HashingFailure if the
    hasher cannot allocate its working memory.
    """
    if not plain:
        raise InvalidRequest("password_too_short")
    try:
        return _hasher.hash(plain)
    except HashingError as exc:
        logger.error("Password hashing failed: %s", type(exc).__name__)
        raise HashingFailure() from exc


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the argon2 hash."""
    try:
        return _hasher.verify(hashed, plain)
    except VerifyMismatchError:
        return False
    except InvalidHashError as exc:
        logger.error("Stored credential hash is not a valid argon2 encoding")
        raise MalformedHash() from exc
    except VerificationError:
        return False


def needs_rehash(hashed: str) -> bool:
    """True when the stored hash was made with weaker parameters than current ones."""
    return _hasher.check_needs_rehash(hashed)


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("neon_timing_dummy")


def verify_dummy(plain: str) -> None:
    """Burn one verification's worth of time for an unknown handle."""
    verify_password(plain, _DUMMY_HASH)


def validate_password_policy(plain: str, min_length: int) -> None:
    """Raise InvalidRequest unless the password meets the minimum length."""
    if len(plain) < min_length:
        raise InvalidRequest("password_too_short")
