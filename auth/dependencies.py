"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication (Session Validator).

Bearer tokens arrive in the Authorization header only:
    Authorization: Bearer <access token>
Refresh tokens never travel in headers; they are posted to /auth/refresh-token.

try_get_current_user() is the soft variant ("optional auth"): returns None on
any failure and never fails the request.
get_current_user() raises Unauthorized if no active identity can be resolved.
require_approval() raises Forbidden while the account is pending approval.
authorize(*roles) and require_permission(permission) are capability gates.

Both resolvers schedule a last_active refresh as a background task. It runs
after the response is sent and a failure there is logged, never surfaced.

Layer rule: no imports from api/ or core/.
  auth/dependencies.py may import from fastapi (for Depends/BackgroundTasks/
  Request) because this module is part of the FastAPI dependency injection
  system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import BackgroundTasks, Depends, Request

from auth.errors import Forbidden, Unauthorized
from auth.models import Role, User
from auth.permissions import Permission, allowed
from auth.service import AuthService

logger = logging.getLogger("satsang.auth")


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def bearer_token(request: Request) -> str | None:
    """Return the token from an 'Authorization: Bearer <token>' header, if any."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _touch_last_active(service: AuthService, user_id: int) -> None:
    try:
        service.touch_last_active(user_id)
    except Exception:
        logger.warning("Could not update last_active for user_id=%s", user_id, exc_info=True)


def try_get_current_user(request: Request, background_tasks: BackgroundTasks) -> User | None:
    """Resolve the bearer token to an active User, or None.

    Never raises -- callers that need a hard 401 should use get_current_user().
    """
    token = bearer_token(request)
    if token is None:
        return None
    service = get_auth_service(request)
    try:
        user = service.authenticate(token)
    except Unauthorized as exc:
        logger.debug("Optional auth ignored token: %s", exc.code)
        return None
    background_tasks.add_task(_touch_last_active, service, user.id)
    return user


def get_current_user(request: Request, background_tasks: BackgroundTasks) -> User:
    """Require authentication. Raises Unauthorized (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    service = get_auth_service(request)
    user = service.authenticate(bearer_token(request))
    background_tasks.add_task(_touch_last_active, service, user.id)
    return user


def require_approval(user: User = Depends(get_current_user)) -> User:
    """Require an approved account. Raises Forbidden (403) while pending."""
    if not user.is_approved:
        raise Forbidden("Your account is pending approval", code="USER_NOT_APPROVED")
    return user


def authorize(*roles: Role) -> Callable[..., User]:
    """Build a dependency admitting only the given roles.

        @router.get("/teachers-only")
        def route(user: User = Depends(authorize(Role.TEACHER, Role.ADMIN))): ...
    """
    allowed_roles = frozenset(roles)

    def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed_roles:
            raise Forbidden(
                f"Role {user.role.value} is not authorized to access this route",
                code="INSUFFICIENT_PERMISSIONS",
            )
        return user

    return dependency


def require_permission(permission: Permission) -> Callable[..., User]:
    """Build a dependency admitting users whose role grants permission."""

    def dependency(user: User = Depends(get_current_user)) -> User:
        if not allowed(user.role, permission):
            raise Forbidden(
                f"Role {user.role.value} is not authorized to access this route",
                code="INSUFFICIENT_PERMISSIONS",
            )
        return user

    return dependency
