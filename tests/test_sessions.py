"""Unit tests for auth/sessions.py -- SessionManager.

Covers:
- login(): unknown handle and wrong password fail identically
- login() upgrades a hash made with outdated argon2 parameters
- issued token shape: 12-char selector, 48-char validator, only the digest stored
- validate(): missing, malformed, unknown selector, tampered validator
- expiry: a non-persistent session dies after the TTL and its row is deleted
- persistent sessions never expire
- revoke_all() / rotate_password() kill every session of the user
- purge_expired() sweeps only expired rows

A controllable clock is injected so expiry tests never sleep.
"""

from datetime import datetime, timedelta, timezone

import pytest
from argon2 import PasswordHasher

from auth.credentials import needs_rehash
from auth.errors import AuthenticationFailed, InvalidRequest, TokenInvalid, TokenMalformed, TokenMissing
from auth.sessions import SessionManager
from auth.tokens import digest_validator


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def manager(store, settings, clock) -> SessionManager:
    return SessionManager(store, settings, clock=clock)


@pytest.fixture
def alice_id(store, make_user) -> int:
    return make_user(store, "alice", "correct-horse")


class TestLogin:
    def test_login_then_validate(self, manager, alice_id) -> None:
        token = manager.login("alice", "correct-horse", persist=False)
        identity = manager.validate(str(token))
        assert identity.id == alice_id
        assert identity.handle == "alice"
        assert identity.role == "user"

    def test_token_shape(self, manager, alice_id) -> None:
        token = manager.login("alice", "correct-horse", persist=False)
        selector, validator = str(token).split(":")
        assert len(selector) == 12
        assert len(validator) == 48
        assert validator not in repr(token)

    def test_only_digest_is_stored(self, manager, store, alice_id) -> None:
        token = manager.login("alice", "correct-horse", persist=False)
        record = store.get_session(token.selector)
        assert record.hashed_validator == digest_validator(token.validator)
        assert record.hashed_validator != token.validator

    def test_wrong_password_and_unknown_handle_look_the_same(self, manager, alice_id) -> None:
        with pytest.raises(AuthenticationFailed) as wrong:
            manager.login("alice", "battery-staple", persist=False)
        with pytest.raises(AuthenticationFailed) as unknown:
            manager.login("mallory", "correct-horse", persist=False)
        assert wrong.value.message == unknown.value.message == "login_failed"
        assert wrong.value.status_code == unknown.value.status_code == 401

    def test_outdated_hash_is_upgraded_on_login(self, manager, store, make_user) -> None:
        weak = PasswordHasher(time_cost=1, memory_cost=8192, parallelism=1).hash("correct-horse")
        uid = make_user(store, "bob")
        store.update_user(uid, hashed_password=weak)

        manager.login("bob", "correct-horse", persist=False)

        upgraded = store.get_by_id(uid).hashed_password
        assert upgraded != weak
        assert not needs_rehash(upgraded)
        assert manager.login("bob", "correct-horse", persist=False) is not None

    def test_current_hash_is_left_alone(self, manager, store, alice_id) -> None:
        before = store.get_by_id(alice_id).hashed_password
        manager.login("alice", "correct-horse", persist=False)
        assert store.get_by_id(alice_id).hashed_password == before

    def test_each_login_is_a_new_session(self, manager, alice_id) -> None:
        first = manager.login("alice", "correct-horse", persist=False)
        second = manager.login("alice", "correct-horse", persist=False)
        assert first.selector != second.selector
        assert manager.validate(str(first)).id == manager.validate(str(second)).id == alice_id


class TestValidate:
    def test_missing(self, manager) -> None:
        with pytest.raises(TokenMissing):
            manager.validate(None)
        with pytest.raises(TokenMissing):
            manager.validate("")

    def test_malformed(self, manager) -> None:
        with pytest.raises(TokenMalformed):
            manager.validate("no-separator")

    def test_unknown_selector(self, manager) -> None:
        with pytest.raises(TokenInvalid):
            manager.validate("AAAAAAAAAAAA:" + "B" * 48)

    def test_tampered_validator(self, manager, alice_id) -> None:
        token = manager.login("alice", "correct-horse", persist=False)
        last = token.validator[-1]
        tampered = token.validator[:-1] + ("A" if last != "A" else "B")
        with pytest.raises(TokenInvalid):
            manager.validate(f"{token.selector}:{tampered}")
        # The genuine token still works; a wrong guess does not burn the session.
        assert manager.validate(str(token)).id == alice_id

    def test_circles_are_read_fresh(self, manager, store, alice_id) -> None:
        token = manager.login("alice", "correct-horse", persist=False)
        assert manager.validate(str(token)).circles == frozenset()
        store.grant_circle(alice_id, 42)
        assert manager.validate(str(token)).circles == frozenset({42})


class TestExpiry:
    def test_session_expires_after_ttl(self, manager, store, clock, settings, alice_id) -> None:
        token = manager.login("alice", "correct-horse", persist=False)
        clock.advance(settings.session_ttl_seconds - 1)
        assert manager.validate(str(token)).id == alice_id

        clock.advance(2)
        with pytest.raises(TokenInvalid):
            manager.validate(str(token))
        assert store.get_session(token.selector) is None

    def test_persistent_session_has_no_expiry(self, manager, store, clock, alice_id) -> None:
        token = manager.login("alice", "correct-horse", persist=True)
        assert token.persistent is True
        assert store.get_session(token.selector).expires is None
        clock.advance(10 * 365 * 24 * 3600)
        assert manager.validate(str(token)).id == alice_id

    def test_purge_expired(self, manager, store, clock, settings, alice_id) -> None:
        short = manager.login("alice", "correct-horse", persist=False)
        forever = manager.login("alice", "correct-horse", persist=True)
        clock.advance(settings.session_ttl_seconds + 1)
        assert manager.purge_expired() == 1
        assert store.get_session(short.selector) is None
        assert store.get_session(forever.selector) is not None


class TestRevocation:
    def test_revoke_all(self, manager, alice_id) -> None:
        tokens = [manager.login("alice", "correct-horse", persist=p) for p in (False, True)]
        assert manager.revoke_all(alice_id) == 2
        for token in tokens:
            with pytest.raises(TokenInvalid):
                manager.validate(str(token))

    def test_revoke_all_leaves_other_users(self, manager, store, make_user, alice_id) -> None:
        make_user(store, "bob", "hunter2hunter2")
        bob_token = manager.login("bob", "hunter2hunter2", persist=False)
        manager.login("alice", "correct-horse", persist=False)
        manager.revoke_all(alice_id)
        assert manager.validate(str(bob_token)).handle == "bob"

    def test_rotate_password(self, manager, alice_id) -> None:
        token = manager.login("alice", "correct-horse", persist=True)
        assert manager.rotate_password(alice_id, "battery-staple") == 1
        with pytest.raises(TokenInvalid):
            manager.validate(str(token))
        with pytest.raises(AuthenticationFailed):
            manager.login("alice", "correct-horse", persist=False)
        assert manager.validate(str(manager.login("alice", "battery-staple", persist=False))).id == alice_id

    def test_rotate_password_enforces_policy(self, manager, alice_id) -> None:
        token = manager.login("alice", "correct-horse", persist=False)
        with pytest.raises(InvalidRequest):
            manager.rotate_password(alice_id, "short")
        # Nothing changed: old session and old password still valid.
        assert manager.validate(str(token)).id == alice_id

    def test_deleted_user_invalidates_session(self, manager, store, alice_id) -> None:
        token = manager.login("alice", "correct-horse", persist=False)
        store.delete_user(alice_id)
        with pytest.raises(TokenInvalid):
            manager.validate(str(token))
