"""
Role model. Every raw role string (including legacy aliases) goes through normalize_role;
nothing else in the app branches on raw role strings.

Two orderings live here and they are not interchangeable:
- access level: what a user may do (student_admin and admin are peers)
- announcement priority: who wins when announcements/authors are arbitrated (admin > student_admin)
"""
import enum
from typing import Any


class Role(str, enum.Enum):
    STUDENT = "student"
    STUDENT_ADMIN = "student_admin"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


# Legacy values still present in older user rows
_ROLE_ALIASES: dict[str, Role] = {
    "user": Role.STUDENT,
    "superadmin": Role.SUPER_ADMIN,
    "student": Role.STUDENT,
    "student_admin": Role.STUDENT_ADMIN,
    "admin": Role.ADMIN,
    "super_admin": Role.SUPER_ADMIN,
}

_ACCESS_LEVEL: dict[Role, int] = {
    Role.STUDENT: 1,
    Role.STUDENT_ADMIN: 2,
    Role.ADMIN: 2,
    Role.SUPER_ADMIN: 3,
}

_ANNOUNCEMENT_PRIORITY: dict[Role, int] = {
    Role.STUDENT: 1,
    Role.STUDENT_ADMIN: 2,
    Role.ADMIN: 3,
    Role.SUPER_ADMIN: 4,
}

_ROLE_DISPLAY: dict[Role, str] = {
    Role.STUDENT: "Student",
    Role.STUDENT_ADMIN: "Student Admin",
    Role.ADMIN: "Admin",
    Role.SUPER_ADMIN: "Super Admin",
}

ADMIN_ROLES = frozenset({Role.STUDENT_ADMIN, Role.ADMIN, Role.SUPER_ADMIN})

# Values an admin may write to users.role (aliases are read-only)
ASSIGNABLE_ROLES = tuple(Role)


def normalize_role(raw_role: Any, is_admin: bool | None = False) -> Role:
    """
    Map a stored/claimed role to a canonical Role. Case-sensitive.
    Missing or unknown role falls back to the legacy is_admin flag: admin if set, else student.
    """
    if isinstance(raw_role, Role):
        return raw_role
    if isinstance(raw_role, str) and raw_role in _ROLE_ALIASES:
        return _ROLE_ALIASES[raw_role]
    return Role.ADMIN if is_admin else Role.STUDENT


def has_admin_access(role: Role) -> bool:
    return role in ADMIN_ROLES


def can_manage_users(role: Role) -> bool:
    return role == Role.SUPER_ADMIN


def access_level(role: Role) -> int:
    return _ACCESS_LEVEL.get(role, 1)


def announcement_priority(role: Role) -> int:
    return _ANNOUNCEMENT_PRIORITY.get(role, 1)


def meets_access_level(role: Role, required: Role) -> bool:
    return access_level(role) >= access_level(required)


def outranks_for_announcements(actor: Role, target: Role) -> bool:
    """True if actor's announcement priority is strictly above target's (e.g. reviewer vs author)."""
    return announcement_priority(actor) > announcement_priority(target)


def role_display(role: Role) -> str:
    return _ROLE_DISPLAY.get(role, "Student")
