"""
api/routes/v1/oauth.py -- Twitter/X account linking endpoints.

Routes (mounted under /api):
  GET /oauth/twitter/new            -- authenticated; 307 to the provider's authorize URL
  GET /oauth/twitter?code=&state=   -- provider callback; 307 to OAUTH_LANDING_PATH

The callback is not authenticated by cookie: the single-use state value is
what ties it to the identity that started the flow. Failures surface as the
standard error envelope (400 invalid_request, 500 provider_unavailable).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from auth.dependencies import get_current_identity, get_linking_flow, get_settings_state
from auth.errors import InvalidRequest
from auth.models import Identity
from auth.oauth import LinkingFlow
from core.config import Settings

router = APIRouter()


@router.get("/oauth/twitter/new")
def new_twitter_oauth(
    identity: Identity = Depends(get_current_identity),
    flow: LinkingFlow = Depends(get_linking_flow),
    settings: Settings = Depends(get_settings_state),
) -> RedirectResponse:
    if not settings.oauth_client_id:
        raise InvalidRequest("oauth_not_configured")
    return RedirectResponse(flow.initiate(identity), status_code=307)


@router.get("/oauth/twitter")
async def check_twitter_oauth(
    code: str = Query(default=""),
    state: str = Query(default=""),
    flow: LinkingFlow = Depends(get_linking_flow),
    settings: Settings = Depends(get_settings_state),
) -> RedirectResponse:
    await flow.complete(state, code)
    return RedirectResponse(settings.oauth_landing_path, status_code=307)
