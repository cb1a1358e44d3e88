"""
auth/oauth.py -- PKCE OAuth linking of an external (Twitter/X) account.

Linking does not log anyone in. An already-authenticated identity proves it
controls an external account; every circle whose artist declares that
account's profile URL then gets an ownership edge to the identity.

Two phases, replay-guarded:
  1. initiate(): fresh state + PKCE code_verifier, stored as the identity's
     only pending attempt; the caller is redirected to the provider with
     code_challenge = base64url(sha256(verifier)) and method S256.
  2. complete(): the attempt for `state` is consumed (selected and deleted in
     one transaction) BEFORE the provider exchange. Whether the exchange then
     succeeds or fails, the state cannot be presented again. Unknown, already
     consumed, and expired states all raise InvalidRequest.

Provider failures (network, HTTP status, OAuth error body, malformed JSON)
raise ProviderUnavailable and are not retried: the authorization code and
verifier are single-use, so the user restarts the flow.

Account matching:
  The external username is compared case-sensitively against a fixed set of
  profile URL forms (ACCOUNT_URL_TEMPLATES). If the provider changes its
  canonical profile URL format, matches silently stop -- extend the
  templates when that happens.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Protocol

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.common.urls import add_params_to_uri
from authlib.integrations.httpx_client import AsyncOAuth2Client
from authlib.oauth2.rfc7636 import create_s256_code_challenge

from auth.errors import InvalidRequest, ProviderUnavailable
from auth.models import Identity, LinkingAttempt, LinkResult
from auth.store import UserStore, to_iso
from auth.tokens import generate_random_string
from core.config import Settings

logger = logging.getLogger("neon.auth.oauth")

ACCOUNT_URL_TEMPLATES = (
    "https://twitter.com/{}",
    "https://twitter.com/{}/",
    "https://x.com/{}",
    "https://x.com/{}/",
)


def account_urls(external_handle: str) -> list[str]:
    """Every accepted profile URL form for an external username."""
    return [template.format(external_handle) for template in ACCOUNT_URL_TEMPLATES]


def create_pkce_pair(length: int) -> tuple[str, str]:
    """Return (code_verifier, code_challenge) for the S256 method."""
    verifier = generate_random_string(length)
    return verifier, create_s256_code_challenge(verifier)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Provider client
# ---------------------------------------------------------------------------


class ExternalAccountProvider(Protocol):
    async def fetch_external_handle(self, code: str, code_verifier: str) -> str: ...


class TwitterProvider:
    """Token exchange + profile lookup against the Twitter/X OAuth 2.0 API.

    Uses authlib's AsyncOAuth2Client (httpx underneath). The client secret is
    sent with HTTP Basic auth, which is what Twitter's confidential clients
    require. `transport` lets tests substitute an httpx.MockTransport.
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self._transport = transport

    def _client(self) -> AsyncOAuth2Client:
        client_kwargs: dict = {"timeout": self.settings.oauth_timeout_seconds}
        if self._transport is not None:
            client_kwargs["transport"] = self._transport
        return AsyncOAuth2Client(
            client_id=self.settings.oauth_client_id,
            client_secret=self.settings.oauth_client_secret,
            token_endpoint_auth_method="client_secret_basic",  # noqa: S106 -- auth method name, not a password
            redirect_uri=self.settings.oauth_redirect_uri,
            **client_kwargs,
        )

    async def fetch_external_handle(self, code: str, code_verifier: str) -> str:
        """Exchange the code and return the account's username.

        Raises ProviderUnavailable on any upstream failure.
        """
        # authlib does not type-check the token body: a JSON array or string
        # surfaces as TypeError/AttributeError rather than an OAuth error.
        try:
            async with self._client() as client:
                await client.fetch_token(
                    self.settings.oauth_token_url,
                    grant_type="authorization_code",
                    code=code,
                    code_verifier=code_verifier,
                )
                resp = await client.get(self.settings.oauth_userinfo_url)
                resp.raise_for_status()
                profile = resp.json()
        except (AuthlibBaseError, httpx.HTTPError, ValueError, TypeError, AttributeError) as exc:
            logger.warning("OAuth provider exchange failed: %s", type(exc).__name__)
            raise ProviderUnavailable() from exc

        data = profile.get("data") if isinstance(profile, dict) else None
        username = data.get("username") if isinstance(data, dict) else None
        if not isinstance(username, str) or not username:
            logger.warning("OAuth provider returned a profile without a username")
            raise ProviderUnavailable()
        return username


# ---------------------------------------------------------------------------
# Linking flow
# ---------------------------------------------------------------------------


class LinkingFlow:
    """Drives initiate/complete for one configured provider.

    Usage:
        flow = LinkingFlow(store, settings)
        url = flow.initiate(identity)            # redirect the browser here
        result = await flow.complete(state, code)
    """

    def __init__(
        self,
        store: UserStore,
        settings: Settings,
        provider: ExternalAccountProvider | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.settings = settings
        self.provider = provider if provider is not None else TwitterProvider(settings)
        self._clock = clock

    def _cutoff_iso(self) -> str:
        return to_iso(self._clock() - timedelta(seconds=self.settings.oauth_attempt_ttl_seconds))

    def initiate(self, identity: Identity) -> str:
        """Store a pending attempt for identity and return the authorization URL."""
        state = generate_random_string(self.settings.oauth_state_length)
        verifier, challenge = create_pkce_pair(self.settings.code_verifier_length)

        self.store.delete_expired_attempts(self._cutoff_iso())
        self.store.save_attempt(
            LinkingAttempt(
                user_id=identity.id,
                state=state,
                code_verifier=verifier,
                created_at=to_iso(self._clock()),
            )
        )
        logger.info("OAuth linking initiated for user_id=%d", identity.id)

        return add_params_to_uri(
            self.settings.oauth_authorize_url,
            [
                ("response_type", "code"),
                ("client_id", self.settings.oauth_client_id),
                ("redirect_uri", self.settings.oauth_redirect_uri),
                ("scope", self.settings.oauth_scope),
                ("state", state),
                ("code_challenge", challenge),
                ("code_challenge_method", "S256"),
            ],
        )

    async def complete(self, state: str, code: str) -> LinkResult:
        """Consume the attempt for `state`, exchange `code`, and link circles."""
        if not state or not code:
            raise InvalidRequest()

        attempt = self.store.consume_attempt(state)
        if attempt is None:
            logger.warning("OAuth callback with unknown or consumed state")
            raise InvalidRequest()
        if attempt.created_at is not None and attempt.created_at < self._cutoff_iso():
            logger.warning("OAuth callback with expired state for user_id=%d", attempt.user_id)
            raise InvalidRequest()

        external_handle = await self.provider.fetch_external_handle(code, attempt.code_verifier)

        # No awaits past this point: once the exchange returns, the store
        # mutations run to completion even if the client has disconnected.
        circles = self.store.find_circles_by_account_urls(account_urls(external_handle))
        new_edges = sum(1 for circle_id in circles if self.store.grant_circle(attempt.user_id, circle_id))
        self.store.update_user(attempt.user_id, external_handle=external_handle)
        logger.info(
            "OAuth account linked for user_id=%d: %d matching circle(s), %d new edge(s)",
            attempt.user_id,
            len(circles),
            new_edges,
        )
        return LinkResult(user_id=attempt.user_id, external_handle=external_handle, linked_circles=circles)
