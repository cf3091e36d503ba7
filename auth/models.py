"""
auth/models.py -- Domain dataclasses for identity entities.

Pattern: Data class (pure data container, minimal logic). Dataclasses own the
domain shape; the store, service and routes do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    LEARNER = "learner"


@dataclass
class User:
    """A registered identity on the platform.

    password_hash is None for Google-only users; google_id is None until the
    user signs in with Google at least once. At least one of the two is always
    present (enforced by UserStore.create).

    is_approved gates the community features, is_active gates everything.
    reset_password_token holds the SHA-256 of the cleartext reset token --
    the cleartext is only ever handed to the notifier.
    """

    email: str
    full_name: str
    role: Role = Role.LEARNER
    id: int | None = None
    password_hash: str | None = None  # None = Google-only user
    google_id: str | None = None
    spiritual_name: str | None = None
    phone: str | None = None
    introduction: str | None = None
    bio: str | None = None
    avatar: str | None = None
    is_approved: bool = False
    is_active: bool = True
    is_email_verified: bool = False
    reset_password_token: str | None = None
    reset_password_expire: str | None = None  # ISO 8601, UTC
    last_active: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def display_name(self) -> str:
        return self.spiritual_name or self.full_name


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class AuthResult:
    """Outcome of every flow that counts as a login: identity plus fresh tokens."""

    user: User
    tokens: TokenPair
