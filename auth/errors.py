"""
auth/errors.py -- Error taxonomy for the authentication core.

Every failure the auth core can produce is one AuthError subclass. Each class
carries the HTTP status and the machine-readable kind string that
api/main.py puts in the {"success": false, "message": <kind>} envelope.

Security:
  500-class errors (HashingFailure, MalformedHash, ProviderUnavailable's
  upstream detail) never surface internals: the kind string is generic and
  the details go to the server log only.

  AuthenticationFailed is deliberately single-valued -- unknown handle and
  wrong password raise the same class with the same message so the response
  does not reveal which handles exist.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for auth-core failures mapped to HTTP responses."""

    status_code: int = 500
    message: str = "internal_server_error"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class AuthenticationFailed(AuthError):
    """Bad handle or password (401)."""

    status_code = 401
    message = "login_failed"


class TokenMissing(AuthError):
    """No session cookie on a request that requires one (401)."""

    status_code = 401
    message = "token_missing"


class TokenMalformed(AuthError):
    """Session token is not of the form selector:validator (401)."""

    status_code = 401
    message = "token_malformed"


class TokenInvalid(AuthError):
    """Unknown selector, wrong validator, or expired session (401)."""

    status_code = 401
    message = "token_invalid"


class NotAuthorized(AuthError):
    """Authenticated but lacking the required capability (403)."""

    status_code = 403
    message = "not_authorized"


class HashingFailure(AuthError):
    """The password hasher ran out of resources."""


class MalformedHash(AuthError):
    """A stored credential hash is not a valid argon2 encoding."""


class InvalidRequest(AuthError):
    """Client sent something unusable, e.g. an unknown OAuth state (400)."""

    status_code = 400
    message = "invalid_request"


class Conflict(AuthError):
    status_code = 409
    message = "handle_exists"


class NotFound(AuthError):
    status_code = 404
    message = "not_found"


class ProviderUnavailable(AuthError):
    """The OAuth provider failed or answered with something unparseable.

    Never retried inline: the authorization code and PKCE verifier are
    single-use, so the caller must restart the linking flow.
    """

    message = "provider_unavailable"
