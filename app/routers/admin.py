from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session
from app.auth import get_current_user_admin, get_current_user_super_admin, viewer_role
from app.config import get_settings
from app.core.roles import ASSIGNABLE_ROLES, Role
from app.database import get_db
from app.models.user import User
from app.schemas.user import (
    AdminStatusUpdate,
    ConfigInfoResponse,
    DashboardResponse,
    PostLimitsResponse,
    RoleBreakdown,
    RoleUpdate,
    UserResponse,
    to_user_response,
)
from app.services.announcement_service import count_posted_today, post_limit_for
from app.services.rate_limiter import rate_limit

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(rate_limit("admin"))])

RECENT_USERS = 5


def _get_user_or_404(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


# ---------- Users ----------


@router.get("/users", response_model=list[UserResponse])
def list_users(
    email: str | None = None,
    _admin: User = Depends(get_current_user_admin),
    db: Session = Depends(get_db),
):
    """List users (admin only). Optional ?email= substring search, case-insensitive."""
    q = db.query(User).order_by(User.created_at.desc())
    if email and email.strip():
        q = q.filter(func.lower(User.email).contains(email.strip().lower()))
    return [to_user_response(u) for u in q.all()]


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    user_id: str,
    _admin: User = Depends(get_current_user_admin),
    db: Session = Depends(get_db),
):
    return to_user_response(_get_user_or_404(db, user_id))


@router.patch("/users/{user_id}/role", response_model=UserResponse)
def update_user_role(
    user_id: str,
    body: RoleUpdate,
    _admin: User = Depends(get_current_user_super_admin),
    db: Session = Depends(get_db),
):
    """Set a user's role (super admin only). Only canonical role names are accepted."""
    allowed = [r.value for r in ASSIGNABLE_ROLES]
    if body.role not in allowed:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid role. Must be one of: {', '.join(allowed)}",
        )
    user = _get_user_or_404(db, user_id)
    user.role = body.role
    # Keep the legacy flag in step so nothing reading it disagrees with the role
    user.is_admin = body.role != Role.STUDENT.value
    db.commit()
    db.refresh(user)
    return to_user_response(user)


@router.patch("/users/{user_id}/admin-status", response_model=UserResponse)
def update_admin_status(
    user_id: str,
    body: AdminStatusUpdate,
    admin: User = Depends(get_current_user_super_admin),
    db: Session = Depends(get_db),
):
    """Legacy toggle: is_admin=true grants admin, false demotes to student."""
    user = _get_user_or_404(db, user_id)
    if user.id == admin.id and not body.is_admin:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot remove your own admin access",
        )
    user.role = Role.ADMIN.value if body.is_admin else Role.STUDENT.value
    user.is_admin = body.is_admin
    db.commit()
    db.refresh(user)
    return to_user_response(user)


# ---------- Dashboard ----------


@router.get("/dashboard", response_model=DashboardResponse)
def dashboard(
    _admin: User = Depends(get_current_user_admin),
    db: Session = Depends(get_db),
):
    """User counts per normalized role and the most recent sign-ups."""
    users = db.query(User).order_by(User.created_at.desc()).all()
    counts = {r.value: 0 for r in Role}
    for u in users:
        counts[viewer_role(u).value] += 1
    return DashboardResponse(
        total_users=len(users),
        role_breakdown=RoleBreakdown(**counts),
        recent_users=[to_user_response(u) for u in users[:RECENT_USERS]],
    )


@router.get("/limits", response_model=PostLimitsResponse)
def post_limits(
    admin: User = Depends(get_current_user_admin),
    db: Session = Depends(get_db),
):
    limit = post_limit_for(viewer_role(admin))
    posted = count_posted_today(db, admin.id)
    return PostLimitsResponse(
        limit_per_day=limit,
        posted_today=posted,
        can_post=limit is None or posted < limit,
    )


@router.get("/config", response_model=ConfigInfoResponse)
def config_info(_admin: User = Depends(get_current_user_admin)):
    settings = get_settings()
    return ConfigInfoResponse(
        environment=settings.deployment,
        frontend_url=settings.resolved_frontend_url,
        backend_url=settings.resolved_backend_url,
    )
