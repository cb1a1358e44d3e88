"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The authenticated identity is never looked up implicitly. Every protected
route states the chain in its signature:

    cookie "token"  ->  SessionManager.validate()  ->  Identity  ->  permission check

get_current_identity() performs the first three steps and raises the auth
core's own errors (TokenMissing / TokenMalformed / TokenInvalid); api/main.py
turns them into the {"success": false, "message": ...} envelope.

require_moderator / require_artist / require_circle_permission wrap it with
the Authorization Evaluator. They run on every request -- nothing is cached.

Layer rule: auth/dependencies.py may import from fastapi because this module
is part of the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.models import Identity
from auth.oauth import LinkingFlow
from auth.permissions import check_admin, check_artist, check_moderator, check_permission
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import Settings


def get_settings_state(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> UserStore:
    return request.app.state.user_store


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.sessions


def get_linking_flow(request: Request) -> LinkingFlow:
    return request.app.state.linking


def get_current_identity(request: Request) -> Identity:
    """Require a valid session cookie and return its Identity.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(identity: Identity = Depends(get_current_identity)): ...
    """
    settings: Settings = request.app.state.settings
    manager: SessionManager = request.app.state.sessions
    return manager.validate(request.cookies.get(settings.cookie_name))


def require_moderator(identity: Identity = Depends(get_current_identity)) -> Identity:
    check_moderator(identity)
    return identity


def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    check_admin(identity)
    return identity


def require_artist(identity: Identity = Depends(get_current_identity)) -> Identity:
    check_artist(identity)
    return identity


def require_circle_permission(circle_id: int, identity: Identity = Depends(get_current_identity)) -> Identity:
    """Gate routes with a {circle_id} path parameter on circle ownership."""
    check_permission(identity, circle_id)
    return identity
