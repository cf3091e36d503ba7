"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the Satsang API happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved. Dev mode (DEBUG=true) generates missing signing secrets with
      a warning; production mode refuses to start without them.

Security notes:
  [M6] Signing secrets shorter than 32 chars are rejected outright. HS256 relies
       on key entropy -- a short key weakens every token issued with it.

  [M7] Access and refresh tokens are signed with distinct secrets. Rotating one
       invalidates all outstanding tokens of that kind and nothing else, which
       is the only revocation mechanism the platform has. The validator refuses
       identical secrets so a refresh token can never pass as an access token.

  [M8] The OAuth session cookie is signed with SESSION_SECRET, never a JWT
       secret, so token rotation does not break a sign-in in progress.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("satsang.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'satsang_auth.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
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
    frontend_url: str = "http://localhost:5173"
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://localhost:5174",
    ]
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev secret or raises, so callers never see "".
    jwt_secret: str = ""
    jwt_refresh_secret: str = ""
    access_token_expire_seconds: int = 3600
    refresh_token_expire_seconds: int = 7 * 24 * 3600
    password_reset_expire_seconds: int = 600

    # ------------------------------------------------------------------
    # Password hashing
    # ------------------------------------------------------------------

    # Cost 12 is roughly 100-250ms per hash on commodity hardware. Tests lower
    # this through BCRYPT_ROUNDS so the suite stays fast.
    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # Rate limiting (slowapi limit strings)
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    auth_rate_limit: str = "5/15minutes"
    api_rate_limit: str = "100/15minutes"

    # ------------------------------------------------------------------
    # Google OAuth (optional -- empty string means provider is disabled)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""

    # Signs the session cookie that carries the OAuth state between the
    # redirect and the callback. Independent of the JWT secrets.
    session_secret: str = ""

    # ------------------------------------------------------------------
    # Bootstrap admin (optional -- created at startup if both are set)
    # ------------------------------------------------------------------

    admin_email: str = ""
    admin_password: str = ""
    admin_full_name: str = "Administrator"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the signing secret policy [M6][M7].

        Dev mode (DEBUG=true): auto-generate missing secrets with a warning.
            Tokens will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if either secret is missing.
        """
        for field in ("jwt_secret", "jwt_refresh_secret"):
            value = getattr(self, field)
            if not value:
                if self.debug:
                    setattr(self, field, secrets.token_hex(32))
                    logger.warning(
                        "Using auto-generated %s. Tokens will not persist across restarts.", field.upper()
                    )
                else:
                    raise ValueError(
                        f"{field.upper()} is required in production mode. "
                        "Set it in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
            elif len(value) < 32:
                raise ValueError(f"{field.upper()} must be at least 32 characters.")
        if self.jwt_secret == self.jwt_refresh_secret:
            raise ValueError("JWT_SECRET and JWT_REFRESH_SECRET must be different.")

        # The session cookie only lives across one Google round trip, so a
        # per-process secret is enough unless Google sign-in is on in production.
        if not self.session_secret:
            if self.google_client_id and not self.debug:
                raise ValueError("SESSION_SECRET is required when Google sign-in is configured.")
            self.session_secret = secrets.token_hex(32)
        elif len(self.session_secret) < 32:
            raise ValueError("SESSION_SECRET must be at least 32 characters.")
        if self.session_secret in (self.jwt_secret, self.jwt_refresh_secret):
            raise ValueError("SESSION_SECRET must differ from the JWT secrets.")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
