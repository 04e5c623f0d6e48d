import logging
from datetime import datetime, timedelta, timezone

import httpx
from jose import jwt
from jose.exceptions import JOSEError
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import func
from sqlalchemy.orm import Session
from app.config import get_settings
from app.core.roles import Role, can_manage_users, has_admin_access, normalize_role
from app.database import get_db
from app.models.user import User
from app.schemas.user import IdentityClaims

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)

SESSION_COOKIE = "__session"
# Don't rewrite last_login on every request
LAST_LOGIN_REFRESH = timedelta(hours=1)


def decode_session_token(token: str) -> IdentityClaims | None:
    """Verify an identity-provider session JWT. None if invalid, expired, or not configured."""
    settings = get_settings()
    if not settings.clerk_jwt_key:
        logger.warning("clerk_jwt_key is not configured; rejecting session token")
        return None
    try:
        payload = jwt.decode(
            token,
            settings.clerk_jwt_key,
            algorithms=["RS256"],
            issuer=settings.clerk_issuer or None,
            options={"verify_aud": False},
        )
        return IdentityClaims(**payload)
    except (JOSEError, ValueError) as e:
        logger.info("Session token rejected: %s", e)
        return None


def fetch_identity_profile(user_ref: str) -> dict | None:
    """Look up email/display name from the identity provider when the token carries no email."""
    settings = get_settings()
    if not settings.clerk_secret_key:
        return None
    try:
        res = httpx.get(
            f"{settings.clerk_api_url}/users/{user_ref}",
            headers={"Authorization": f"Bearer {settings.clerk_secret_key}"},
            timeout=settings.http_timeout_seconds,
        )
    except httpx.HTTPError as e:
        logger.warning("Identity provider lookup failed for %s: %s", user_ref, e)
        return None
    if res.status_code != 200:
        logger.warning("Identity provider lookup for %s returned %s", user_ref, res.status_code)
        return None
    data = res.json()
    primary_id = data.get("primary_email_address_id")
    email = next(
        (e.get("email_address") for e in data.get("email_addresses", []) if e.get("id") == primary_id),
        None,
    )
    if not email:
        return None
    name = data.get("username") or data.get("first_name") or data.get("last_name")
    return {"email": email, "username": name}


def sync_user(db: Session, claims: IdentityClaims) -> User | None:
    """Find the local user for these claims (by external id, then email) or create one."""
    email = claims.email
    display_name = claims.username or claims.first_name or claims.last_name
    if not email:
        profile = fetch_identity_profile(claims.sub)
        if not profile:
            return None
        email, display_name = profile["email"], profile["username"]

    now = datetime.now(timezone.utc)
    user = db.query(User).filter(User.clerk_id == claims.sub).first()
    if user:
        last_login = user.last_login
        if last_login is not None and last_login.tzinfo is None:
            last_login = last_login.replace(tzinfo=timezone.utc)
        stale = last_login is None or now - last_login > LAST_LOGIN_REFRESH
        if user.email != email or (display_name and user.username != display_name) or stale:
            user.email = email
            user.username = display_name or user.username
            user.last_login = now
            db.commit()
            db.refresh(user)
        return user

    user = db.query(User).filter(func.lower(User.email) == email.lower()).first()
    if user:
        user.clerk_id = claims.sub
        user.username = display_name or user.username
        user.last_login = now
        db.commit()
        db.refresh(user)
        return user

    user = User(
        clerk_id=claims.sub,
        email=email,
        username=(display_name or "")[:100] or None,
        role=Role.STUDENT.value,
        last_login=now,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created user %s for %s", user.id, email)
    return user


def viewer_role(user: User | None) -> Role:
    """Canonical role for a (possibly anonymous) viewer."""
    if user is None:
        return Role.STUDENT
    return normalize_role(user.role, user.is_admin)


def email_domain(email: str | None) -> str | None:
    if not email or not isinstance(email, str):
        return None
    parts = email.split("@")
    if len(parts) != 2:
        return None
    return parts[1].lower()


def is_allowed_domain(email: str | None) -> bool:
    allowed = [d.lower() for d in get_settings().allowed_email_domains]
    if not allowed:
        return True
    domain = email_domain(email)
    return domain is not None and domain in allowed


def get_optional_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User | None:
    """Bearer header first, then the session cookie. None when anonymous or token invalid."""
    token = credentials.credentials if credentials else request.cookies.get(SESSION_COOKIE)
    if not token:
        return None
    claims = decode_session_token(token)
    if not claims:
        return None
    return sync_user(db, claims)


def get_current_user(user: User | None = Depends(get_optional_user)) -> User:
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_allowed_domain(user: User = Depends(get_current_user)) -> User:
    """Write/admin endpoints are limited to campus email domains."""
    if not user.email:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid user")
    if not is_allowed_domain(user.email):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Domain access restricted")
    return user


def get_current_user_admin(user: User = Depends(require_allowed_domain)) -> User:
    """User must have admin-level access (student_admin, admin, super_admin)."""
    if not has_admin_access(viewer_role(user)):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This resource requires admin access",
        )
    return user


def get_current_user_super_admin(user: User = Depends(require_allowed_domain)) -> User:
    """Only super admins manage users and roles."""
    if not can_manage_users(viewer_role(user)):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This resource requires super_admin role or higher",
        )
    return user
