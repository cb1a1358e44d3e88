"""
auth/permissions.py -- Authorization Evaluator.

Pure functions over a resolved Identity. Three capability tiers:

  admin, moderator -- authorized for every action.
  user             -- authorized for a circle only through an ownership edge.

Each check either returns None or raises NotAuthorized; there is no partial
result. Callers run the check on every state-changing request against the
Identity that SessionManager.validate() just produced -- ownership edges
change between requests, so a decision is never cached.
"""

from __future__ import annotations

from enum import Enum

from auth.errors import NotAuthorized
from auth.models import Identity, Role

_PRIVILEGED = frozenset({Role.admin.value, Role.moderator.value})


class Action(str, Enum):
    edit_circle = "edit_circle"  # goods, bundles, links of one circle
    upload_asset = "upload_asset"  # images, characters: artist-gated, not circle-specific
    moderate = "moderate"  # references, categories, roles, ownership edges


def is_privileged(identity: Identity) -> bool:
    return identity.role in _PRIVILEGED


def check_permission(identity: Identity, circle_id: int) -> None:
    """Allow privileged roles, or a user who owns circle_id."""
    if is_privileged(identity):
        return
    if circle_id not in identity.circles:
        raise NotAuthorized()


def check_moderator(identity: Identity) -> None:
    """Allow admins and moderators only, regardless of ownership."""
    if not is_privileged(identity):
        raise NotAuthorized()


def check_artist(identity: Identity) -> None:
    """Allow privileged roles, or a user who owns at least one circle."""
    if is_privileged(identity):
        return
    if not identity.circles:
        raise NotAuthorized()


def check_admin(identity: Identity) -> None:
    if identity.role != Role.admin.value:
        raise NotAuthorized()


def authorize(identity: Identity, action: Action, circle_id: int | None = None) -> None:
    """Gate `action` for `identity`; circle_id is required for edit_circle."""
    if action is Action.edit_circle:
        if circle_id is None:
            raise ValueError("edit_circle requires a circle_id")
        check_permission(identity, circle_id)
    elif action is Action.upload_asset:
        check_artist(identity)
    elif action is Action.moderate:
        check_moderator(identity)
    else:
        raise ValueError(f"Unknown action: {action!r}")
