from fastapi import APIRouter, Depends
from app.auth import get_current_user, viewer_role
from app.core.roles import can_manage_users, has_admin_access, role_display
from app.models.user import User
from app.schemas.user import ProfileResponse
from app.services.rate_limiter import rate_limit

router = APIRouter(prefix="/api/profile", tags=["profile"])


@router.get("", response_model=ProfileResponse, dependencies=[Depends(rate_limit("auth"))])
def get_profile(user: User = Depends(get_current_user)):
    """Current user with normalized role and the capabilities the UI gates on."""
    role = viewer_role(user)
    return ProfileResponse(
        id=user.id,
        clerk_id=user.clerk_id,
        email=user.email,
        username=user.username,
        role=role,
        is_admin=bool(user.is_admin) or has_admin_access(role),
        role_display=role_display(role),
        can_manage_users=can_manage_users(role),
        created_at=user.created_at,
        last_login=user.last_login,
    )
