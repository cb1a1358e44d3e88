"""
api/routes/v1/auth.py -- Account and session REST endpoints.

Routes (mounted under /api):
  GET    /user/check_handle?handle=   -- {"exists": bool} (public)
  POST   /user/register               -- create account (public)
  POST   /user/login                  -- password login; sets the session cookie (public)
  POST   /user/logout                 -- revoke every session of the caller
  GET    /users/me                    -- current identity with owned circles
  PATCH  /users/me                    -- profile update / password rotation
  DELETE /users/me                    -- delete account (sessions cascade)

Security:
  POST /user/login is rate-limited per IP (LOGIN_RATE_LIMIT).
  SessionManager.login() provides timing equalization -- use it, never inline
       a handle lookup plus verify_password().
  Auth error responses carry Cache-Control: no-store (set by the handler
       in api/main.py); the success response sets it here.
  PATCH /users/me demands the current password even with a valid session, and
  a new password revokes every session of the account, including this one.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter, login_rate_limit
from api.models import (
    HandleCheckResponse,
    LoginRequest,
    MeResponse,
    ProfileUpdate,
    RegisterRequest,
    SuccessResponse,
    UserResponse,
)
from auth.credentials import hash_password, validate_password_policy, verify_password
from auth.dependencies import get_current_identity, get_session_manager, get_settings_state, get_store
from auth.errors import AuthenticationFailed, Conflict, InvalidRequest, NotFound
from auth.models import Identity, User
from auth.sessions import SessionManager
from auth.store import UserStore
from auth.tokens import clear_session_cookie, set_session_cookie
from core.config import Settings

logger = logging.getLogger("neon.api")

router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.get("/user/check_handle", response_model=HandleCheckResponse)
def check_handle(handle: str = Query(max_length=255), store: UserStore = Depends(get_store)) -> HandleCheckResponse:
    """Report whether a handle is taken. Used by the registration form."""
    return HandleCheckResponse(exists=store.handle_exists(handle))


@router.post("/user/register", response_model=UserResponse, status_code=201)
def register(
    body: RegisterRequest,
    store: UserStore = Depends(get_store),
    settings: Settings = Depends(get_settings_state),
) -> UserResponse:
    """Create a local account with role "user".

    The pre-check gives a clean 409 in the common case; the IntegrityError
    branch covers two concurrent registrations of the same handle.
    """
    if not body.handle:
        raise InvalidRequest("handle_too_short")
    validate_password_policy(body.password, settings.password_min_length)
    if not body.nickname:
        raise InvalidRequest("nickname_too_short")
    if store.handle_exists(body.handle):
        raise Conflict()

    new_user = User(
        handle=body.handle,
        nickname=body.nickname,
        email=body.email,
        hashed_password=hash_password(body.password),
    )
    try:
        user_id = store.create_user(new_user)
    except IntegrityError as exc:
        raise Conflict() from exc

    logger.info("Registered user_id=%d", user_id)
    return UserResponse.from_user(_fetch_user(store, user_id))


@limiter.limit(login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/user/login", response_model=SuccessResponse)
def login(
    request: Request,
    body: LoginRequest,
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_settings_state),
) -> JSONResponse:
    """Authenticate with handle and password; set the session cookie.

    Wrong handle and wrong password produce the same 401 "login_failed".
    """
    token = manager.login(body.handle, body.password, body.persist)
    resp = JSONResponse(status_code=200, content=SuccessResponse().model_dump())
    set_session_cookie(resp, str(token), settings, persistent=token.persistent)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/user/logout", response_model=SuccessResponse)
def logout(
    identity: Identity = Depends(get_current_identity),
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_settings_state),
) -> JSONResponse:
    """Revoke every session of the caller and clear the cookie."""
    manager.revoke_all(identity.id)
    resp = JSONResponse(content=SuccessResponse().model_dump())
    clear_session_cookie(resp, settings)
    return resp


@router.get("/users/me", response_model=MeResponse)
def get_me(identity: Identity = Depends(get_current_identity)) -> MeResponse:
    return MeResponse.from_identity(identity)


@router.patch("/users/me", response_model=UserResponse)
def patch_me(
    body: ProfileUpdate,
    identity: Identity = Depends(get_current_identity),
    store: UserStore = Depends(get_store),
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_settings_state),
) -> JSONResponse:
    """Update nickname/email and optionally rotate the password.

    All input is validated before anything is written. Rotation revokes every
    session (the caller included) and clears the cookie.
    """
    user = _fetch_user(store, identity.id)
    if not verify_password(body.password, user.hashed_password):
        raise AuthenticationFailed()
    if body.nickname is not None and not body.nickname.strip():
        raise InvalidRequest("nickname_too_short")
    if body.new_password is not None:
        validate_password_policy(body.new_password, settings.password_min_length)

    updates: dict = {}
    if body.nickname is not None:
        updates["nickname"] = body.nickname.strip()
    if body.email is not None:
        updates["email"] = body.email.strip()
    if updates:
        store.update_user(identity.id, **updates)

    if body.new_password is not None:
        revoked = manager.rotate_password(identity.id, body.new_password)
        logger.info("Password rotated for user_id=%d, %d session(s) revoked", identity.id, revoked)

    content = UserResponse.from_user(_fetch_user(store, identity.id)).model_dump()
    resp = JSONResponse(content=content)
    if body.new_password is not None:
        clear_session_cookie(resp, settings)
    return resp


@router.delete("/users/me", response_model=SuccessResponse)
def delete_me(
    identity: Identity = Depends(get_current_identity),
    store: UserStore = Depends(get_store),
    settings: Settings = Depends(get_settings_state),
) -> JSONResponse:
    """Delete the caller's account. Sessions, ownership edges and pending
    linking attempts go with it."""
    store.delete_user(identity.id)
    logger.info("Deleted user_id=%d", identity.id)
    resp = JSONResponse(content=SuccessResponse().model_dump())
    clear_session_cookie(resp, settings)
    return resp


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fetch_user(store: UserStore, user_id: int) -> User:
    user = store.get_by_id(user_id)
    if user is None:
        raise NotFound()
    return user
