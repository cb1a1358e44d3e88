"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own the
domain shape; the store and the managers do the work.

Two views of a user exist on purpose:
  User     -- the persisted row, including the credential hash. Only the
              store and the session manager ever hold one.
  Identity -- what a validated request resolves to. It has no hash, and it
              carries the ownership set the Authorization Evaluator needs.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    admin = "admin"
    moderator = "moderator"
    user = "user"


@dataclass
class User:
    """Persisted account row. hashed_password is an argon2id encoding."""

    handle: str
    nickname: str
    email: str
    role: str = Role.user.value
    id: int | None = None
    hashed_password: str | None = None
    external_handle: str | None = None  # linked Twitter/X username
    created_at: str | None = None


@dataclass
class Credential:
    user_id: int
    password_hash: str


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, resolved fresh on every request.

    circles is the set of circle ids the identity owns (ownership edges).
    It is never cached across requests because moderators and the OAuth
    linking flow can change it at any time.
    """

    id: int
    handle: str
    nickname: str
    email: str
    role: str
    circles: frozenset[int] = field(default_factory=frozenset)
    external_handle: str | None = None


@dataclass
class SessionRecord:
    """A row in the sessions table.

    Security design:
    - selector is the public lookup key, stored in plaintext (UNIQUE index).
    - hashed_validator is SHA-256 of the secret half of the token. The raw
      validator is handed to the client once, inside the cookie, and never
      persisted, so a leaked database cannot be used to forge sessions.
    - expires is an ISO 8601 UTC timestamp; None marks a persistent session.
    """

    selector: str
    hashed_validator: str
    user_id: int
    expires: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class SessionToken:
    """Client-facing session token. str(token) is the cookie value."""

    selector: str
    validator: str
    persistent: bool = False

    def __str__(self) -> str:
        return f"{self.selector}:{self.validator}"

    def __repr__(self) -> str:
        # Keep the secret half out of logs and tracebacks.
        return f"SessionToken(selector={self.selector!r}, persistent={self.persistent})"


@dataclass
class LinkingAttempt:
    """A pending OAuth linking attempt. Consumed exactly once by the callback."""

    user_id: int
    state: str
    code_verifier: str
    created_at: str | None = None


@dataclass
class LinkResult:
    user_id: int
    external_handle: str
    linked_circles: list[int] = field(default_factory=list)
