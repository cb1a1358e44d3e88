"""
api/routes/v1/users.py -- Moderation endpoints: roles and manual ownership edges.

Routes (mounted under /api):
  PATCH  /users/{handle}/role                  -- change a user's role (moderator)
  GET    /users/{handle}/circles               -- list owned circles (moderator)
  POST   /users/{handle}/circles/{circle_id}   -- grant ownership (moderator)
  DELETE /users/{handle}/circles/{circle_id}   -- revoke ownership (moderator)

Auth policy:
  Every route requires check_moderator(). Promoting someone to admin, or
  changing the role of an existing admin, additionally requires the caller to
  be an admin -- a moderator cannot escalate past its own tier.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from api.models import CirclesResponse, RoleUpdate, UserResponse
from auth.dependencies import get_store, require_moderator
from auth.errors import NotFound
from auth.models import Identity, Role, User
from auth.permissions import check_admin
from auth.store import UserStore

logger = logging.getLogger("neon.api")

router = APIRouter()


@router.patch("/users/{handle}/role", response_model=UserResponse)
def set_role(
    handle: str,
    body: RoleUpdate,
    moderator: Identity = Depends(require_moderator),
    store: UserStore = Depends(get_store),
) -> UserResponse:
    target = _user_by_handle(store, handle)
    if body.role is Role.admin or target.role == Role.admin.value:
        check_admin(moderator)
    store.update_user(target.id, role=body.role.value)
    logger.info("user_id=%d set role of user_id=%d to %s", moderator.id, target.id, body.role.value)
    return UserResponse.from_user(_user_by_handle(store, handle))


@router.get("/users/{handle}/circles", response_model=CirclesResponse)
def list_circles(
    handle: str,
    moderator: Identity = Depends(require_moderator),
    store: UserStore = Depends(get_store),
) -> CirclesResponse:
    return _circles_response(store, _user_by_handle(store, handle))


@router.post("/users/{handle}/circles/{circle_id}", response_model=CirclesResponse, status_code=201)
def grant_circle(
    handle: str,
    circle_id: int,
    moderator: Identity = Depends(require_moderator),
    store: UserStore = Depends(get_store),
) -> CirclesResponse:
    """Add an ownership edge. Granting an existing edge is a no-op."""
    target = _user_by_handle(store, handle)
    if store.grant_circle(target.id, circle_id):
        logger.info("user_id=%d granted circle %d to user_id=%d", moderator.id, circle_id, target.id)
    return _circles_response(store, target)


@router.delete("/users/{handle}/circles/{circle_id}", response_model=CirclesResponse)
def revoke_circle(
    handle: str,
    circle_id: int,
    moderator: Identity = Depends(require_moderator),
    store: UserStore = Depends(get_store),
) -> CirclesResponse:
    target = _user_by_handle(store, handle)
    if not store.revoke_circle(target.id, circle_id):
        raise NotFound()
    logger.info("user_id=%d revoked circle %d from user_id=%d", moderator.id, circle_id, target.id)
    return _circles_response(store, target)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _user_by_handle(store: UserStore, handle: str) -> User:
    user = store.get_by_handle(handle)
    if user is None:
        raise NotFound()
    return user


def _circles_response(store: UserStore, user: User) -> CirclesResponse:
    identity = store.get_identity(user.id)
    circles = sorted(identity.circles) if identity is not None else []
    return CirclesResponse(handle=user.handle, circles=circles)
