from datetime import datetime
from pydantic import BaseModel
from app.core.roles import Role, has_admin_access, normalize_role, role_display


class UserResponse(BaseModel):
    id: str
    email: str
    username: str | None
    role: Role  # normalized
    is_admin: bool
    role_display: str
    created_at: datetime | None
    last_login: datetime | None


class ProfileResponse(UserResponse):
    clerk_id: str
    can_manage_users: bool


class RoleUpdate(BaseModel):
    role: str


class AdminStatusUpdate(BaseModel):
    is_admin: bool


class IdentityClaims(BaseModel):
    """Verified identity-provider session token claims we rely on."""
    sub: str
    email: str | None = None
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class RoleBreakdown(BaseModel):
    student: int = 0
    student_admin: int = 0
    admin: int = 0
    super_admin: int = 0


class DashboardResponse(BaseModel):
    total_users: int
    role_breakdown: RoleBreakdown
    recent_users: list[UserResponse]


class PostLimitsResponse(BaseModel):
    limit_per_day: int | None  # None = unlimited
    posted_today: int
    can_post: bool


class ConfigInfoResponse(BaseModel):
    environment: str
    frontend_url: str
    backend_url: str
    auth_provider: str = "clerk"


def to_user_response(user) -> UserResponse:
    role = normalize_role(user.role, user.is_admin)
    return UserResponse(
        id=user.id,
        email=user.email,
        username=user.username,
        role=role,
        is_admin=has_admin_access(role),
        role_display=role_display(role),
        created_at=user.created_at,
        last_login=user.last_login,
    )
