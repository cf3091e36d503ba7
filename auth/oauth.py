"""
auth/oauth.py -- Authlib Google OIDC client configuration.

Google is registered only when both client ID and secret are configured. The
redirect/callback routes in api/routes/v1/auth.py drive the authorization code
flow and hand the verified profile to AuthService.oauth_login().

Security notes:
  [H1] Email verification is mandatory. get_google_user_info() raises ValueError
       if Google does not confirm the email is verified. An unverified address
       could belong to someone else, and oauth_login() links accounts by email.

  OAuth state parameter (CSRF protection) is handled by authlib automatically
  via Starlette SessionMiddleware. The session stores the state between the
  authorization redirect and the callback.

Layer rule: no imports from api/. Import from core/ is allowed -- core/ is the
kernel layer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from authlib.integrations.starlette_client import OAuth

from core.config import get_settings

logger = logging.getLogger("satsang.auth.oauth")

GOOGLE_DISCOVERY_URL = "https://accounts.google.com/.well-known/openid-configuration"


@dataclass(frozen=True)
class GoogleProfile:
    subject: str
    email: str
    full_name: str | None = None
    avatar: str | None = None


def build_oauth() -> OAuth:
    """Return an OAuth registry with Google registered if it is configured."""
    cfg = get_settings()
    oauth = OAuth()
    if cfg.google_client_id and cfg.google_client_secret:
        oauth.register(
            name="google",
            client_id=cfg.google_client_id,
            client_secret=cfg.google_client_secret,
            server_metadata_url=GOOGLE_DISCOVERY_URL,
            client_kwargs={"scope": "openid email profile"},
        )
        logger.info("Google OAuth provider registered")
    return oauth


def get_google_user_info(token: dict) -> GoogleProfile:
    """Extract a GoogleProfile from the token authlib returns after code exchange.

    Google returns an id_token whose parsed claims authlib places under
    token["userinfo"]: sub, email, email_verified, name, picture.

    Raises:
        ValueError: no userinfo, unverified email, or missing email/sub.
    """
    userinfo = token.get("userinfo")
    if not userinfo:
        raise ValueError("google OAuth: no userinfo in token response")

    if not userinfo.get("email_verified", False):
        raise ValueError(
            "google OAuth: email is not verified. "
            "The provider must confirm email ownership before login is allowed."
        )

    email = userinfo.get("email")
    subject = userinfo.get("sub")
    if not email or not subject:
        raise ValueError("google OAuth: missing email or sub claim in userinfo")

    return GoogleProfile(
        subject=str(subject),
        email=email,
        full_name=userinfo.get("name"),
        avatar=userinfo.get("picture"),
    )
