"""
tests/test_config.py -- Unit tests for core/config.py (Settings validation).

Settings is instantiated directly with keyword overrides so the cached
get_settings() singleton used by the app is never disturbed.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings

GOOD = {"jwt_secret": "a" * 32, "jwt_refresh_secret": "b" * 32}


def test_defaults() -> None:
    settings = Settings(debug=False, bcrypt_rounds=12, rate_limit_enabled=True, **GOOD)
    assert settings.access_token_expire_seconds == 3600
    assert settings.refresh_token_expire_seconds == 7 * 24 * 3600
    assert settings.password_reset_expire_seconds == 600
    assert settings.auth_rate_limit == "5/15minutes"
    assert settings.api_rate_limit == "100/15minutes"


def test_debug_generates_distinct_secrets() -> None:
    settings = Settings(debug=True, jwt_secret="", jwt_refresh_secret="")
    assert len(settings.jwt_secret) >= 32
    assert settings.jwt_secret != settings.jwt_refresh_secret


def test_production_requires_secrets() -> None:
    with pytest.raises(ValidationError, match="JWT_SECRET is required"):
        Settings(debug=False, jwt_secret="", jwt_refresh_secret="b" * 32)


def test_short_secret_rejected() -> None:
    with pytest.raises(ValidationError, match="at least 32"):
        Settings(debug=True, jwt_secret="short", jwt_refresh_secret="b" * 32)


def test_identical_secrets_rejected() -> None:
    with pytest.raises(ValidationError, match="must be different"):
        Settings(debug=True, jwt_secret="a" * 32, jwt_refresh_secret="a" * 32)


@pytest.mark.parametrize("rounds", [3, 32])
def test_bcrypt_rounds_bounds(rounds: int) -> None:
    with pytest.raises(ValidationError, match="BCRYPT_ROUNDS"):
        Settings(debug=True, bcrypt_rounds=rounds, **GOOD)


def test_session_secret_generated_and_independent() -> None:
    settings = Settings(debug=False, **GOOD)
    assert len(settings.session_secret) >= 32
    assert settings.session_secret not in (settings.jwt_secret, settings.jwt_refresh_secret)


def test_session_secret_required_for_google_in_production() -> None:
    with pytest.raises(ValidationError, match="SESSION_SECRET is required"):
        Settings(debug=False, google_client_id="client-id", session_secret="", **GOOD)


def test_session_secret_must_not_reuse_jwt_secret() -> None:
    with pytest.raises(ValidationError, match="SESSION_SECRET must differ"):
        Settings(debug=True, session_secret="a" * 32, **GOOD)
