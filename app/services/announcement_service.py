"""
Announcement write workflow: validation, initial status derivation, daily post limit,
link shortening and email notification on create, partial updates, and review transitions.
Read-side visibility/ranking lives in app.core.visibility.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.core.roles import Role, normalize_role, outranks_for_announcements
from app.core.visibility import has_active_priority_window, is_expired
from app.models.announcement import Announcement
from app.models.enums import AnnouncementStatus
from app.models.user import User
from app.schemas.announcement import (
    AnnouncementCreate,
    AnnouncementResponse,
    AnnouncementUpdate,
    EmergencyAlertCreate,
)
from app.services.email_service import EmailService
from app.services.link_shortener import LinkShortener
from app.utils.dates import is_valid_datetime, parse_datetime, utcnow

logger = logging.getLogger(__name__)

TITLE_MAX = 200
DESCRIPTION_MAX = 5000
DATE_FIELDS = ("expiry_date", "scheduled_at", "reminder_time", "priority_until", "emergency_expires_at")
CREATABLE_STATUSES = (
    AnnouncementStatus.DRAFT.value,
    AnnouncementStatus.UNDER_REVIEW.value,
    AnnouncementStatus.SCHEDULED.value,
    AnnouncementStatus.ACTIVE.value,
    AnnouncementStatus.URGENT.value,
)
ALL_STATUSES = tuple(s.value for s in AnnouncementStatus)


class WorkflowError(Exception):
    """Review/submit transition not allowed from the current status."""


def validate_announcement(
    data: dict[str, Any],
    settings: Settings | None = None,
    *,
    partial: bool = False,
) -> list[dict[str, str]]:
    """
    Field errors as [{"field", "message"}]. Empty list = valid.
    partial=True (PATCH) only checks fields that are present.
    """
    settings = settings or get_settings()
    errors: list[dict[str, str]] = []

    def present(name: str) -> bool:
        return not partial or data.get(name) is not None

    title = data.get("title")
    if present("title"):
        if not isinstance(title, str) or not title.strip():
            errors.append({"field": "title", "message": "Title is required and must be a non-empty string"})
        elif len(title) > TITLE_MAX:
            errors.append({"field": "title", "message": f"Title must be less than {TITLE_MAX} characters"})

    description = data.get("description")
    if present("description"):
        if not isinstance(description, str) or not description.strip():
            errors.append({
                "field": "description",
                "message": "Description is required and must be a non-empty string",
            })
        elif len(description) > DESCRIPTION_MAX:
            errors.append({
                "field": "description",
                "message": f"Description must be less than {DESCRIPTION_MAX} characters",
            })

    category = data.get("category")
    if present("category"):
        valid_categories = [c.lower() for c in settings.categories]
        if not isinstance(category, str) or not category.strip():
            errors.append({"field": "category", "message": "Category is required"})
        elif category.lower() not in valid_categories:
            errors.append({
                "field": "category",
                "message": f"Category must be one of: {', '.join(valid_categories)}",
            })

    for name in DATE_FIELDS:
        value = data.get(name)
        if value and not is_valid_datetime(value):
            label = name.replace("_", " ").capitalize()
            errors.append({"field": name, "message": f"{label} must be a valid date"})

    status_value = data.get("status")
    if status_value is not None:
        allowed = ALL_STATUSES if partial else CREATABLE_STATUSES
        if not isinstance(status_value, str) or status_value.lower() not in allowed:
            errors.append({"field": "status", "message": f"Status must be one of: {', '.join(allowed)}"})

    return errors


def derive_initial_state(
    requested_status: str,
    requested_is_active: bool,
    scheduled_at: Any,
    priority_until: Any,
    now: datetime,
) -> tuple[str, bool]:
    """
    (status, is_active) for a new announcement.
    A future priority_until makes it urgent and active; otherwise a future scheduled_at makes it
    scheduled and inactive; otherwise the requested values stand.
    """
    now = parse_datetime(now) or utcnow()
    scheduled = parse_datetime(scheduled_at)
    priority = parse_datetime(priority_until)
    if priority is not None and priority > now:
        return AnnouncementStatus.URGENT.value, True
    if scheduled is not None and scheduled > now:
        return AnnouncementStatus.SCHEDULED.value, False
    return (requested_status or AnnouncementStatus.ACTIVE.value).lower(), requested_is_active


def _start_of_day_utc(now: datetime) -> datetime:
    return now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


def count_posted_today(db: Session, author_id: str, now: datetime | None = None) -> int:
    today = _start_of_day_utc(now or utcnow())
    return db.query(func.count(Announcement.id)).filter(
        Announcement.author_id == author_id,
        Announcement.created_at >= today,
    ).scalar() or 0


def post_limit_for(role: Role, settings: Settings | None = None) -> int | None:
    """None = unlimited."""
    settings = settings or get_settings()
    if role == Role.SUPER_ADMIN or settings.admin_daily_post_limit <= 0:
        return None
    return settings.admin_daily_post_limit


def check_post_limit(db: Session, user: User, now: datetime | None = None) -> tuple[bool, str]:
    """
    Returns (allowed, error_message).
    If allowed, error_message is empty.
    """
    limit = post_limit_for(normalize_role(user.role, user.is_admin))
    if limit is None:
        return True, ""
    if count_posted_today(db, user.id, now) >= limit:
        return False, f"Daily limit reached ({limit} announcements per day). Try again tomorrow."
    return True, ""


def email_recipients(db: Session, settings: Settings | None = None) -> list[str]:
    settings = settings or get_settings()
    if settings.announcement_email_recipients:
        return list(settings.announcement_email_recipients)
    return [email for (email,) in db.query(User.email).order_by(User.created_at).all() if email]


def to_response(item: Announcement, now: datetime | None = None) -> AnnouncementResponse:
    now = now or utcnow()
    return AnnouncementResponse(
        id=item.id,
        title=item.title,
        description=item.description,
        category=item.category,
        author_id=item.author_id,
        status=item.status,
        is_active=bool(item.is_active) if item.is_active is not None else True,
        is_emergency=bool(item.is_emergency),
        is_expired=is_expired(item.expiry_date, now),
        has_priority_window=has_active_priority_window(item, now),
        created_at=item.created_at,
        updated_at=item.updated_at,
        expiry_date=item.expiry_date,
        scheduled_at=item.scheduled_at,
        reminder_time=item.reminder_time,
        priority_until=item.priority_until,
        emergency_expires_at=item.emergency_expires_at,
        views_count=item.views_count or 0,
        clicks_count=item.clicks_count or 0,
        send_email=bool(item.send_email),
        email_sent=bool(item.email_sent),
        link=item.link,
        short_code=item.short_code,
    )


async def _shorten_link(shortener: LinkShortener, link: str | None) -> str | None:
    if not link or not link.strip():
        return None
    result = await shortener.shorten(link.strip())
    if result.success:
        logger.info("Shortened %s -> %s", link.strip(), result.short_code)
        return result.short_code
    logger.warning("Failed to shorten URL %s: %s", link.strip(), result.error)
    return None


async def _notify(
    db: Session,
    item: Announcement,
    email_service: EmailService,
) -> tuple[bool, str | None]:
    result = await email_service.send_announcement_email(
        title=item.title,
        description=item.description,
        category=item.category,
        recipients=email_recipients(db),
        expiry_date=item.expiry_date,
        scheduled_at=item.scheduled_at,
        is_emergency=bool(item.is_emergency),
    )
    if result.success:
        item.email_sent = True
        db.commit()
    return result.success, result.message or result.error


async def create_announcement(
    db: Session,
    author: User,
    body: AnnouncementCreate,
    *,
    shortener: LinkShortener,
    email_service: EmailService,
    now: datetime | None = None,
) -> tuple[Announcement, bool, str | None]:
    """Insert, then best-effort email. Returns (announcement, email_sent, email_message)."""
    now = now or utcnow()
    status_value, is_active = derive_initial_state(
        body.status, body.is_active, body.scheduled_at, body.priority_until, now
    )
    item = Announcement(
        title=body.title.strip(),
        description=body.description.strip(),
        category=body.category.strip().lower(),
        author_id=author.id,
        created_at=now,
        expiry_date=parse_datetime(body.expiry_date),
        scheduled_at=parse_datetime(body.scheduled_at),
        reminder_time=parse_datetime(body.reminder_time),
        priority_until=parse_datetime(body.priority_until),
        is_active=is_active,
        status=status_value,
        is_emergency=body.is_emergency,
        emergency_expires_at=parse_datetime(body.emergency_expires_at),
        send_email=body.send_email,
        email_sent=False,
        link=(body.link or "").strip() or None,
        short_code=await _shorten_link(shortener, body.link),
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    logger.info("Announcement %s created by %s with status %s", item.id, author.id, item.status)

    email_sent, email_message = False, None
    if body.send_email and status_value != AnnouncementStatus.SCHEDULED.value:
        email_sent, email_message = await _notify(db, item, email_service)
    return item, email_sent, email_message


async def create_emergency_alert(
    db: Session,
    author: User,
    body: EmergencyAlertCreate,
    *,
    shortener: LinkShortener,
    email_service: EmailService,
    now: datetime | None = None,
) -> tuple[Announcement, bool, str | None]:
    """Immediate, pinned, emailed. No schedule, no expiry; emergency_expires_at = now + duration."""
    now = now or utcnow()
    item = Announcement(
        title=body.title.strip(),
        description=body.description.strip(),
        category=(body.category or "emergency").strip().lower(),
        author_id=author.id,
        created_at=now,
        is_active=True,
        status=AnnouncementStatus.ACTIVE.value,
        is_emergency=True,
        emergency_expires_at=now + timedelta(hours=body.duration_hours),
        send_email=True,
        email_sent=False,
        link=(body.link or "").strip() or None,
        short_code=await _shorten_link(shortener, body.link),
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    logger.warning("Emergency announcement %s broadcast by %s", item.id, author.id)
    email_sent, email_message = await _notify(db, item, email_service)
    return item, email_sent, email_message


async def update_announcement(
    db: Session,
    item: Announcement,
    body: AnnouncementUpdate,
    *,
    shortener: LinkShortener,
) -> Announcement:
    """Apply only the fields sent. Raises ValueError when nothing was sent."""
    fields = body.model_dump(exclude_unset=True)
    if not fields:
        raise ValueError("No fields to update")
    for name, value in fields.items():
        if name in DATE_FIELDS:
            setattr(item, name, parse_datetime(value) if value else None)
        elif name == "link":
            link = (value or "").strip() or None
            if link != item.link:
                item.link = link
                item.short_code = await _shorten_link(shortener, link)
        elif name == "category" and value is not None:
            item.category = value.strip().lower()
        elif name == "status" and value is not None:
            item.status = value.lower()
        elif name in ("title", "description") and value is not None:
            setattr(item, name, value.strip())
        elif value is not None:
            setattr(item, name, value)
    item.updated_at = utcnow()
    db.commit()
    db.refresh(item)
    return item


def can_review(reviewer_role: Role, author_role: Role | None) -> bool:
    """Super admins review anything; others only announcements by authors they outrank."""
    if reviewer_role == Role.SUPER_ADMIN:
        return True
    if author_role is None:
        return True
    return outranks_for_announcements(reviewer_role, author_role)


def apply_review(
    item: Announcement,
    action: str,
    scheduled_at: Any = None,
    now: datetime | None = None,
) -> Announcement:
    """
    under_review -> approved | scheduled | rejected | draft.
    accept with a future schedule (given or stored) becomes scheduled; otherwise approved.
    """
    now = parse_datetime(now) or utcnow()
    if item.status != AnnouncementStatus.UNDER_REVIEW.value:
        raise WorkflowError(f"Only announcements under review can be reviewed (status: {item.status})")
    if action == "accept":
        schedule = parse_datetime(scheduled_at) or parse_datetime(item.scheduled_at)
        if schedule is not None and schedule > now:
            item.scheduled_at = schedule
            item.status = AnnouncementStatus.SCHEDULED.value
        else:
            item.status = AnnouncementStatus.APPROVED.value
    elif action == "reject":
        item.status = AnnouncementStatus.REJECTED.value
    elif action == "send_back":
        item.status = AnnouncementStatus.DRAFT.value
    else:
        raise WorkflowError(f"Unknown review action: {action}")
    item.updated_at = now
    return item


def submit_for_review(item: Announcement, now: datetime | None = None) -> Announcement:
    if item.status != AnnouncementStatus.DRAFT.value:
        raise WorkflowError(f"Only drafts can be submitted for review (status: {item.status})")
    item.status = AnnouncementStatus.UNDER_REVIEW.value
    item.updated_at = now or utcnow()
    return item
