"""
api/routes/v1/users.py -- Admin user management endpoints.

Routes:
  GET   /api/v1/users                -- list users, ?approved=true|false (manage_users)
  GET   /api/v1/users/stats          -- headline counts (manage_users)
  PATCH /api/v1/users/{id}/approve   -- pending -> approved (approve_users)
  PATCH /api/v1/users/{id}           -- change role and/or isActive (manage_users)

Route registration order matters: /users/stats must be registered before any
/users/{user_id} route or FastAPI tries to parse "stats" as an integer id.

Every route draws on the general API_LIMIT. Gates use require_permission()
rather than role comparisons, so granting a capability to another role is a
one-line change in auth/permissions.py.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from api.limiter import API_LIMIT
from api.models import ProfileResponse, StatsResponse, UserListResponse, UserPatch, UserResponse, UserStats
from auth.dependencies import get_auth_service, require_permission
from auth.models import User
from auth.permissions import Permission
from auth.service import AuthService

router = APIRouter()


@router.get("/users", response_model=UserListResponse)
@API_LIMIT
def list_users(
    request: Request,
    approved: Optional[bool] = None,
    current_user: User = Depends(require_permission(Permission.MANAGE_USERS)),
    service: AuthService = Depends(get_auth_service),
) -> UserListResponse:
    """List all accounts, newest first. ?approved=false lists the approval queue."""
    users = service.list_users(approved=approved)
    return UserListResponse(count=len(users), users=[UserResponse.from_user(u) for u in users])


@router.get("/users/stats", response_model=StatsResponse)
@API_LIMIT
def user_stats(
    request: Request,
    current_user: User = Depends(require_permission(Permission.MANAGE_USERS)),
    service: AuthService = Depends(get_auth_service),
) -> StatsResponse:
    return StatsResponse(stats=UserStats(**service.get_stats()))


@router.patch("/users/{user_id}/approve", response_model=ProfileResponse)
@API_LIMIT
def approve_user(
    request: Request,
    user_id: int,
    current_user: User = Depends(require_permission(Permission.APPROVE_USERS)),
    service: AuthService = Depends(get_auth_service),
) -> ProfileResponse:
    """Approve a pending account. Approving an approved account is a no-op."""
    return ProfileResponse(user=UserResponse.from_user(service.approve_user(user_id)))


@router.patch("/users/{user_id}", response_model=ProfileResponse)
@API_LIMIT
def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    current_user: User = Depends(require_permission(Permission.MANAGE_USERS)),
    service: AuthService = Depends(get_auth_service),
) -> ProfileResponse:
    """Change a user's role or active status.

    400 on self-deactivation or when the change would leave no active admin.
    """
    updated = service.update_user(current_user, user_id, role=body.role, is_active=body.is_active)
    return ProfileResponse(user=UserResponse.from_user(updated))
