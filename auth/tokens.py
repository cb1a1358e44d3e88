"""
auth/tokens.py -- Random token generation, validator digests, and the cookie.

Security design decisions:
  Random strings: every character is drawn independently and uniformly from
       the 62-character alphabet [0-9A-Za-z] with secrets.choice(), which uses
       the OS CSPRNG. No modulo bias, no shared PRNG state. The same generator
       feeds session selectors (12 chars), validators (48 chars, ~285 bits),
       OAuth state values, and PKCE code verifiers -- the alphabet is a subset
       of RFC 7636's unreserved characters.

  Validator digest: SHA-256 hex. Validators are long random secrets, so a
       fast unsalted digest is sufficient; argon2's intentional slowness is
       only needed for low-entropy passwords. Comparison is constant-time via
       hmac.compare_digest().

  Token format: "<selector>:<validator>". Only the selector is ever looked up;
       the validator is verified against its stored digest afterwards, so the
       lookup itself leaks nothing about the secret.

  Cookie: http-only, SameSite=Strict, Secure and Domain from Settings.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import string
from typing import TYPE_CHECKING

from auth.errors import TokenMalformed

if TYPE_CHECKING:
    from core.config import Settings

ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase

_SEPARATOR = ":"


def generate_random_string(length: int) -> str:
    """Return `length` characters drawn uniformly from ALPHABET."""
    if length <= 0:
        raise ValueError("length must be positive")
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def digest_validator(validator: str) -> str:
    """Return the SHA-256 hex digest stored in place of the raw validator."""
    return hashlib.sha256(validator.encode("utf-8")).hexdigest()


def validator_matches(validator: str, stored_digest: str) -> bool:
    """Constant-time comparison of a presented validator against its stored digest."""
    return hmac.compare_digest(digest_validator(validator), stored_digest)


def format_token(selector: str, validator: str) -> str:
    return f"{selector}{_SEPARATOR}{validator}"


def split_token(token: str) -> tuple[str, str]:
    """Split a cookie value into (selector, validator).

    Raises TokenMalformed unless the value has exactly two non-empty parts.
    """
    parts = token.split(_SEPARATOR)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise TokenMalformed()
    return parts[0], parts[1]


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, settings: Settings, persistent: bool = False) -> None:
    """Write the session token as an http-only, SameSite=Strict cookie.

    Non-persistent sessions get max_age equal to the server-side TTL so both
    expire together. Persistent sessions get a one-year max_age; the server
    row has no expiry and is only removed by logout or password rotation.
    """
    max_age = 365 * 24 * 3600 if persistent else settings.session_ttl_seconds
    response.set_cookie(
        settings.cookie_name,
        value=token,
        httponly=True,
        samesite="strict",
        secure=settings.secure_cookies,
        domain=settings.cookie_domain or None,
        max_age=max_age,
    )


def clear_session_cookie(response, settings: Settings) -> None:
    response.delete_cookie(
        settings.cookie_name,
        httponly=True,
        samesite="strict",
        secure=settings.secure_cookies,
        domain=settings.cookie_domain or None,
    )
