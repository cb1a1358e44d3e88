"""
auth/sessions.py -- Session Manager: login, token validation, revocation.

Lifecycle of a session row: Issued -> Active -> {Expired | Revoked}. There is
no transition back to Active -- an expired row is deleted the moment a
validation attempt notices it, and a revoked row no longer exists.

Selector / validator split:
  A single secret token column would have to be looked up by its secret value,
  inviting timing and enumeration side-channels on the lookup. Instead the
  token carries a public selector (the lookup key) and a secret validator that
  is only compared -- in constant time -- against its stored SHA-256 digest
  after the row has been found. The raw validator is never persisted.

Login timing:
  Unknown handle and wrong password both raise AuthenticationFailed, and both
  run exactly one argon2 verification (verify_dummy() for unknown handles), so
  neither the response body nor its latency reveals which handles exist.

No background timer: expiry is detected lazily by validate(); purge_expired()
exists for an external periodic job (see main.py purge-sessions).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError

from auth.credentials import hash_password, needs_rehash, validate_password_policy, verify_dummy, verify_password
from auth.errors import AuthenticationFailed, TokenInvalid, TokenMissing
from auth.models import Identity, SessionRecord, SessionToken
from auth.store import UserStore, to_iso
from auth.tokens import digest_validator, generate_random_string, split_token, validator_matches
from core.config import Settings

logger = logging.getLogger("neon.auth")

# A 12-char selector has ~71 bits; a collision is already unlikely, and the
# UNIQUE index turns one into an IntegrityError we can retry.
_MAX_SELECTOR_ATTEMPTS = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """Issues, validates, and revokes selector/validator sessions.

    Usage:
        manager = SessionManager(store, settings)
        token = manager.login("alice", "correct-horse", persist=False)
        identity = manager.validate(str(token))
        manager.revoke_all(identity.id)
    """

    def __init__(self, store: UserStore, settings: Settings, clock: Callable[[], datetime] = _utcnow) -> None:
        self.store = store
        self.settings = settings
        self._clock = clock

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def login(self, handle: str, password: str, persist: bool) -> SessionToken:
        """Verify a handle/password pair and issue a new session token."""
        credential = self.store.get_credential(handle)
        if credential is None:
            verify_dummy(password)
            logger.info("Login failed for unknown handle")
            raise AuthenticationFailed()
        if not verify_password(password, credential.password_hash):
            logger.info("Login failed for user_id=%d", credential.user_id)
            raise AuthenticationFailed()
        if needs_rehash(credential.password_hash):
            self.store.update_user(credential.user_id, hashed_password=hash_password(password))
            logger.info("Credential re-hashed with current parameters for user_id=%d", credential.user_id)
        token = self.issue(credential.user_id, persist)
        logger.info("Session issued for user_id=%d (persistent=%s)", credential.user_id, persist)
        return token

    def issue(self, user_id: int, persist: bool) -> SessionToken:
        """Persist a fresh session for user_id and return its token.

        The stored row holds only digest(validator). Selector collisions are
        retried with a new selector; anything else propagates.
        """
        expires = None if persist else to_iso(self._clock() + timedelta(seconds=self.settings.session_ttl_seconds))
        validator = generate_random_string(self.settings.validator_length)
        for attempt in range(1, _MAX_SELECTOR_ATTEMPTS + 1):
            selector = generate_random_string(self.settings.selector_length)
            record = SessionRecord(
                selector=selector,
                hashed_validator=digest_validator(validator),
                user_id=user_id,
                expires=expires,
            )
            try:
                self.store.create_session(record)
            except IntegrityError:
                if attempt == _MAX_SELECTOR_ATTEMPTS:
                    raise
                logger.warning("Selector collision on attempt %d, regenerating", attempt)
                continue
            return SessionToken(selector=selector, validator=validator, persistent=persist)
        raise RuntimeError("unreachable")  # pragma: no cover

    # ------------------------------------------------------------------
    # Validate
    # ------------------------------------------------------------------

    def validate(self, token: str | None) -> Identity:
        """Resolve a cookie value to the Identity that owns the session.

        Raises TokenMissing, TokenMalformed, or TokenInvalid. Ownership edges
        are read fresh on every call.
        """
        if not token:
            raise TokenMissing()
        selector, validator = split_token(token)

        record = self.store.get_session(selector)
        if record is None:
            raise TokenInvalid()
        if not validator_matches(validator, record.hashed_validator):
            raise TokenInvalid()
        if record.expires is not None and record.expires < to_iso(self._clock()):
            self.store.delete_session(selector)
            logger.debug("Expired session removed (selector=%s)", selector)
            raise TokenInvalid()

        identity = self.store.get_identity(record.user_id)
        if identity is None:
            # Owning user vanished without the cascade; treat the row as dead.
            self.store.delete_session(selector)
            raise TokenInvalid()
        return identity

    # ------------------------------------------------------------------
    # Revoke
    # ------------------------------------------------------------------

    def revoke_all(self, user_id: int) -> int:
        """Delete every session for user_id. Returns the number removed."""
        removed = self.store.delete_sessions_for_user(user_id)
        logger.info("Revoked %d session(s) for user_id=%d", removed, user_id)
        return removed

    def rotate_password(self, user_id: int, new_password: str) -> int:
        """Store a new credential and revoke every existing session.

        Returns the number of sessions revoked.
        """
        validate_password_policy(new_password, self.settings.password_min_length)
        self.store.update_user(user_id, hashed_password=hash_password(new_password))
        return self.revoke_all(user_id)

    def purge_expired(self) -> int:
        """Sweep sessions whose expiry has passed. Safe to run concurrently."""
        removed = self.store.delete_expired_sessions(to_iso(self._clock()))
        if removed:
            logger.info("Purged %d expired session(s)", removed)
        return removed
