"""
tests/test_dependencies.py -- The Depends() guards other routers use to gate catalog writes.

No catalog route ships in this service, so a throwaway FastAPI app mounts one
route per guard and reuses the production AuthError handler. Its state is
wired from the same api_client harness, so sessions are real.

Coverage:
  - require_circle_permission: owner of {circle_id} allowed, other circles 403
  - require_artist: any ownership edge (or a privileged role) allowed
  - require_admin: moderators are not enough
"""

from __future__ import annotations

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from api.main import auth_error_handler
from auth.dependencies import require_admin, require_artist, require_circle_permission
from auth.errors import AuthError
from auth.models import Identity
from auth.oauth import LinkingFlow
from auth.sessions import SessionManager


@pytest.fixture
def guarded(api_client, make_user):
    """Return (client, login) for a mini app sharing the harness's store."""
    store = api_client.store
    settings = api_client.settings
    make_user(store, "alice")
    store.grant_circle(store.get_by_handle("alice").id, 42)
    make_user(store, "bob")
    make_user(store, "mod", role="moderator")

    mini = FastAPI()
    mini.add_exception_handler(AuthError, auth_error_handler)
    mini.state.settings = settings
    mini.state.user_store = store
    mini.state.sessions = SessionManager(store, settings)
    mini.state.linking = LinkingFlow(store, settings, provider=api_client.provider)

    @mini.put("/circles/{circle_id}")
    def edit_circle(circle_id: int, identity: Identity = Depends(require_circle_permission)) -> dict:
        return {"circle_id": circle_id, "by": identity.handle}

    @mini.post("/images")
    def upload(identity: Identity = Depends(require_artist)) -> dict:
        return {"by": identity.handle}

    @mini.post("/admin")
    def admin_only(identity: Identity = Depends(require_admin)) -> dict:
        return {"by": identity.handle}

    client = TestClient(mini)

    def login(handle: str) -> None:
        token = mini.state.sessions.login(handle, "correct-horse", persist=False)
        client.cookies.clear()
        client.cookies.set(settings.cookie_name, str(token))

    return client, login


class TestCirclePermission:
    def test_owner(self, guarded) -> None:
        client, login = guarded
        login("alice")
        assert client.put("/circles/42").json() == {"circle_id": 42, "by": "alice"}

    def test_other_circle(self, guarded) -> None:
        client, login = guarded
        login("alice")
        resp = client.put("/circles/99")
        assert resp.status_code == 403
        assert resp.json() == {"success": False, "message": "not_authorized"}

    def test_moderator_any_circle(self, guarded) -> None:
        client, login = guarded
        login("mod")
        assert client.put("/circles/99").status_code == 200

    def test_anonymous(self, guarded) -> None:
        client, _ = guarded
        assert client.put("/circles/42").json()["message"] == "token_missing"


class TestArtistAndAdmin:
    def test_artist(self, guarded) -> None:
        client, login = guarded
        login("alice")
        assert client.post("/images").status_code == 200
        login("bob")
        assert client.post("/images").status_code == 403

    def test_admin(self, guarded) -> None:
        client, login = guarded
        login("mod")
        assert client.post("/admin").status_code == 403
