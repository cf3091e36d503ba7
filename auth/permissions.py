"""
auth/permissions.py -- Closed permission set and role mapping.

Route gates ask "may this role perform this action?" through allowed() rather
than comparing role strings inline. Adding a capability means adding a
Permission member and granting it here; nothing else changes.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from enum import Enum

from auth.models import Role


class Permission(str, Enum):
    PARTICIPATE = "community:participate"  # discussions, spaces
    HOST_SATSANG = "satsang:host"
    PUBLISH_CONTENT = "learning:publish"
    APPROVE_USERS = "users:approve"
    MANAGE_USERS = "users:manage"


ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.LEARNER: frozenset({Permission.PARTICIPATE}),
    Role.TEACHER: frozenset(
        {
            Permission.PARTICIPATE,
            Permission.HOST_SATSANG,
            Permission.PUBLISH_CONTENT,
        }
    ),
    Role.ADMIN: frozenset(Permission),
}


def allowed(role: Role, action: Permission) -> bool:
    """Return True if the role is granted the action."""
    return action in ROLE_PERMISSIONS.get(role, frozenset())
