"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Neon happen here. No module should call
os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. The app
      lifespan reads it once and hands it to UserStore, SessionManager and
      LinkingFlow explicitly; nothing re-reads the environment per request.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. cookie_domain -> COOKIE_DOMAIN). Type coercion and validation are
      built in.

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Production mode refuses to start with insecure cookies, and an
      OAuth client id without its secret or base URL is a startup failure.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("neon.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'neon_auth.db'}"

# RFC 7636 section 4.1: code_verifier is 43..128 unreserved characters.
_PKCE_MIN_LENGTH = 43
_PKCE_MAX_LENGTH = 128

# Width of sessions.selector in auth/store.py; a longer selector would not fit.
_SELECTOR_MAX_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (with DEBUG=true). The
    model_validator enforces production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    database_url: str = _DEFAULT_DB_URL
    allowed_hosts: list[str] = ["*"]
    cors_origins: list[str] = ["http://localhost:3000"]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    cookie_name: str = "token"
    # Empty string means host-only cookie (no Domain attribute).
    cookie_domain: str = ""
    secure_cookies: bool = False
    # Non-persistent sessions expire 3 hours after login.
    session_ttl_seconds: int = 10800
    selector_length: int = 12
    validator_length: int = 48
    password_min_length: int = 8

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # OAuth account linking (Twitter/X by default)
    # ------------------------------------------------------------------

    base_url: str = ""
    oauth_client_id: str = ""
    oauth_client_secret: str = ""
    oauth_authorize_url: str = "https://twitter.com/i/oauth2/authorize"
    oauth_token_url: str = "https://api.twitter.com/2/oauth2/token"
    oauth_userinfo_url: str = "https://api.twitter.com/2/users/me"
    oauth_scope: str = "tweet.read users.read"
    oauth_state_length: int = 16
    code_verifier_length: int = 128
    oauth_attempt_ttl_seconds: int = 600
    oauth_landing_path: str = "/profile"
    oauth_timeout_seconds: float = 10.0

    @property
    def oauth_redirect_uri(self) -> str:
        """Callback URL registered with the provider."""
        return f"{self.base_url.rstrip('/')}/api/oauth/twitter"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_security_settings(self) -> "Settings":
        """Refuse to start with a configuration that weakens the auth core.

        Production mode (DEBUG=false or not set): session cookies must carry
            the Secure flag. Dev mode only logs a warning.

        Both modes: the PKCE verifier length must be legal, and an OAuth
            client id is useless without its secret and the public base URL
            used to build redirect_uri.
        """
        if not self.secure_cookies:
            if self.debug:
                logger.warning("WARNING: SECURE_COOKIES is off. Session cookies will be sent over plain HTTP.")
            else:
                raise ValueError(
                    "SECURE_COOKIES=true is required in production mode. "
                    "To run in development mode, set DEBUG=true."
                )
        if not _PKCE_MIN_LENGTH <= self.code_verifier_length <= _PKCE_MAX_LENGTH:
            raise ValueError(
                f"CODE_VERIFIER_LENGTH must be between {_PKCE_MIN_LENGTH} and {_PKCE_MAX_LENGTH}."
            )
        if not 8 <= self.selector_length <= _SELECTOR_MAX_LENGTH or self.validator_length < 32:
            raise ValueError(
                f"SELECTOR_LENGTH must be between 8 and {_SELECTOR_MAX_LENGTH} and VALIDATOR_LENGTH must be >= 32."
            )
        if self.oauth_client_id and not (self.oauth_client_secret and self.base_url):
            raise ValueError("OAUTH_CLIENT_ID requires OAUTH_CLIENT_SECRET and BASE_URL.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
