"""
api/routes/v1/community.py -- Community feature routes (placeholders).

Discussions, satsangs and learning content are not built yet. The routes exist
so clients can integrate against the identity contract they will enforce:

  GET /api/v1/discussions         -- approved members only
  GET /api/v1/satsangs            -- approved members only
  GET /api/v1/satsangs/hosting    -- teachers and admins only
  GET /api/v1/learning            -- public; personalised when signed in

All of them draw on the general API_LIMIT.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from api.limiter import API_LIMIT
from api.models import PlaceholderResponse
from auth.dependencies import authorize, require_approval, try_get_current_user
from auth.models import Role, User

router = APIRouter()


@router.get("/discussions", response_model=PlaceholderResponse)
@API_LIMIT
def list_discussions(request: Request, user: User = Depends(require_approval)) -> PlaceholderResponse:
    return PlaceholderResponse(message="Discussions routes - Coming soon", viewer_id=user.id)


@router.get("/satsangs", response_model=PlaceholderResponse)
@API_LIMIT
def list_satsangs(request: Request, user: User = Depends(require_approval)) -> PlaceholderResponse:
    return PlaceholderResponse(message="Satsang routes - Coming soon", viewer_id=user.id)


@router.get("/satsangs/hosting", response_model=PlaceholderResponse)
@API_LIMIT
def hosting_dashboard(
    request: Request, user: User = Depends(authorize(Role.TEACHER, Role.ADMIN))
) -> PlaceholderResponse:
    return PlaceholderResponse(message="Satsang hosting - Coming soon", viewer_id=user.id)


@router.get("/learning", response_model=PlaceholderResponse)
@API_LIMIT
def list_learning(request: Request, user: Optional[User] = Depends(try_get_current_user)) -> PlaceholderResponse:
    return PlaceholderResponse(
        message="Learning routes - Coming soon",
        viewer_id=user.id if user is not None else None,
    )
