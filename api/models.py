"""
API request and response models for the Satsang REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire format is camelCase (fullName, refreshToken, isApproved) to match the
web client; snake_case field names are accepted on input too.

Request models only check shape (types, generous length caps). The business
rules -- email format, password complexity -- live in auth/validation.py so the
service enforces them for every caller and reports them field by field.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import Role, User


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(_WireModel):
    """Request body for POST /api/v1/auth/register."""

    email: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=255)
    full_name: str = Field(default="", max_length=255)
    spiritual_name: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=40)
    introduction: Optional[str] = Field(default=None, max_length=5000)


class LoginRequest(_WireModel):
    email: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=255)


class GoogleUserData(_WireModel):
    google_id: str = Field(default="", max_length=255)
    email: str = Field(default="", max_length=255)
    full_name: Optional[str] = Field(default=None, max_length=255)
    avatar: Optional[str] = Field(default=None, max_length=2048)


class GoogleLoginRequest(_WireModel):
    """Request body for POST /api/v1/auth/google.

    google_token is accepted for client compatibility; the caller is trusted
    to have verified it (server-side verification uses the /google/authorize
    redirect flow instead).
    """

    google_token: Optional[str] = None
    user_data: GoogleUserData


class RefreshRequest(_WireModel):
    refresh_token: Optional[str] = None


class ForgotPasswordRequest(_WireModel):
    email: str = Field(default="", max_length=255)


class ResetPasswordRequest(_WireModel):
    password: str = Field(default="", max_length=255)


class ChangePasswordRequest(_WireModel):
    current_password: str = Field(default="", max_length=255)
    new_password: str = Field(default="", max_length=255)


class UserPatch(_WireModel):
    """Request body for PATCH /api/v1/users/{id}. At least one field required."""

    role: Optional[Role] = None
    is_active: Optional[bool] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(_WireModel):
    """Public view of an identity. Never includes the password hash or reset fields."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: int
    email: str
    full_name: str
    spiritual_name: Optional[str]
    display_name: str
    phone: Optional[str]
    role: Role
    is_approved: bool
    is_active: bool
    is_email_verified: bool
    avatar: Optional[str]
    bio: Optional[str]
    introduction: Optional[str]
    joined_at: Optional[str]
    last_active: Optional[str]

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Factory Method -- the mapping lives here, colocated with the output model."""
        return cls(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            spiritual_name=user.spiritual_name,
            display_name=user.display_name,
            phone=user.phone,
            role=user.role,
            is_approved=user.is_approved,
            is_active=user.is_active,
            is_email_verified=user.is_email_verified,
            avatar=user.avatar,
            bio=user.bio,
            introduction=user.introduction,
            joined_at=user.created_at,
            last_active=user.last_active,
        )


class MessageResponse(_WireModel):
    success: bool = True
    message: str


class RegisterResponse(_WireModel):
    success: bool = True
    message: str
    user_id: int


class TokenPairResponse(_WireModel):
    success: bool = True
    token: str
    refresh_token: str
    expires_in: int


class AuthResponse(TokenPairResponse):
    user: UserResponse


class ResetPasswordResponse(TokenPairResponse):
    message: str


class ProfileResponse(_WireModel):
    success: bool = True
    user: UserResponse


class UserListResponse(_WireModel):
    success: bool = True
    count: int
    users: list[UserResponse]


class UserStats(_WireModel):
    total_users: int
    approved_users: int
    pending_users: int
    admins: int
    teachers: int
    learners: int


class StatsResponse(_WireModel):
    success: bool = True
    stats: UserStats


class PlaceholderResponse(_WireModel):
    success: bool = True
    message: str
    viewer_id: Optional[int] = None


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    details: Optional[dict] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    status: str = "healthy"
    version: str
    components: dict[str, str]
