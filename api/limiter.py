"""
api/limiter.py -- Shared slowapi rate limiter instance.

Two ceilings, both per client IP and each counted once across every route it
decorates:
  AUTH_LIMIT -- stricter; @AUTH_LIMIT on every /auth/* route to slow credential
                stuffing (default 5 per 15 min for all auth routes together).
  API_LIMIT  -- the general API ceiling; @API_LIMIT on every other route
                (default 100 per 15 min for all of them together).

Both are shared_limit decorators with a fixed scope, so a login and a
forgot-password call draw on the same counter. A plain limiter.limit() would
key each endpoint separately.

The limits are applied by decorator rather than SlowAPIMiddleware default
limits: the middleware resolves routes from app.routes, which does not expose
the endpoints of included routers on every FastAPI release.

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

RATE_LIMIT_ENABLED=false turns both off (the test suite does this).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

_settings = get_settings()

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=_settings.rate_limit_enabled,
)

AUTH_LIMIT = limiter.shared_limit(_settings.auth_rate_limit, scope="auth")
API_LIMIT = limiter.shared_limit(_settings.api_rate_limit, scope="api")
