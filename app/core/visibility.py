"""
Announcement visibility and ranking.

Pure functions over announcement rows (ORM objects, pydantic models, or dicts). Nothing here
touches the DB or raises: malformed dates read as absent, missing fields read as None.
Pipeline used by the list endpoint: is_visible -> filter_by_category/search_by_text -> rank_by_priority.
"""
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from typing import Any, TypeVar

from app.core.roles import Role, has_admin_access
from app.utils.dates import parse_datetime, utcnow

T = TypeVar("T")

# Statuses a regular viewer never sees (in addition to 'scheduled', checked first)
HIDDEN_STATUSES = ("draft", "under_review", "rejected")
SCHEDULED = "scheduled"
URGENT = "urgent"


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _text(item: Any, name: str) -> str:
    value = _field(item, name)
    return value if isinstance(value, str) else ""


def is_expired(expiry_date: Any, now: datetime) -> bool:
    """Expired iff expiry_date is set, readable, and strictly before now."""
    expiry = parse_datetime(expiry_date)
    current = parse_datetime(now)
    if expiry is None or current is None:
        return False
    return expiry < current


def _is_in_future(value: Any, now: datetime) -> bool:
    moment = parse_datetime(value)
    return moment is not None and moment > now


def is_visible(
    announcement: Any,
    viewer_role: Role,
    viewer_is_admin: bool | None = False,
    viewer_id: Any = None,
    viewer_is_super_admin: bool | None = False,
    *,
    now: datetime | None = None,
) -> bool:
    """
    Can this viewer see the announcement?
    Admin-tier roles see everything. Regular viewers never see scheduled items (by status,
    by the 'scheduled' category tag, or by a future scheduled_at), nor draft/under_review/rejected,
    inactive, or expired ones.
    viewer_is_admin and viewer_id are accepted for callers holding the legacy user shape; the
    role already carries the admin flag after normalization.
    """
    now = parse_datetime(now) or utcnow()
    has_admin_level = has_admin_access(viewer_role)
    status = _field(announcement, "status")

    if not has_admin_level and not viewer_is_super_admin:
        if status == SCHEDULED:
            return False
        if _text(announcement, "category").lower() == SCHEDULED:
            return False
        if _is_in_future(_field(announcement, "scheduled_at"), now):
            return False

    if has_admin_level:
        return True

    if status in HIDDEN_STATUSES:
        return False
    if _field(announcement, "is_active") is False:
        return False
    if is_expired(_field(announcement, "expiry_date"), now):
        return False
    return True


def has_active_priority_window(announcement: Any, now: datetime) -> bool:
    """priority_until in the future AND status 'urgent'; both are required."""
    return (
        _is_in_future(_field(announcement, "priority_until"), now)
        and _field(announcement, "status") == URGENT
    )


def rank_by_priority(
    announcements: Iterable[T],
    viewer_role: Role | None = None,
    *,
    now: datetime | None = None,
) -> list[T]:
    """
    Emergency first, then active priority window, then newest created_at.
    Stable: ties keep input order. Missing created_at sorts as the oldest.
    viewer_role does not change the order today; kept so callers rank per viewer.
    """
    now = parse_datetime(now) or utcnow()

    def sort_key(item: Any) -> tuple[bool, bool, float]:
        created = parse_datetime(_field(item, "created_at"))
        newest_first = -created.timestamp() if created else float("inf")
        return (
            not bool(_field(item, "is_emergency")),
            not has_active_priority_window(item, now),
            newest_first,
        )

    return sorted(announcements, key=sort_key)


def filter_by_category(announcements: Sequence[T], category: str) -> Sequence[T]:
    if category == "all":
        return announcements
    wanted = (category or "").lower()
    return [a for a in announcements if _text(a, "category").lower() == wanted]


def search_by_text(announcements: Sequence[T], query: str) -> Sequence[T]:
    if not query or not query.strip():
        return announcements
    needle = query.lower()
    return [
        a for a in announcements
        if needle in _text(a, "title").lower() or needle in _text(a, "description").lower()
    ]


def build_feed(
    announcements: Iterable[T],
    viewer_role: Role,
    *,
    category: str = "all",
    query: str = "",
    viewer_is_admin: bool | None = False,
    viewer_id: Any = None,
    viewer_is_super_admin: bool | None = False,
    now: datetime | None = None,
) -> list[T]:
    """Visible -> category -> search -> ranked. The list view the dashboard renders."""
    now = parse_datetime(now) or utcnow()
    visible = [
        a for a in announcements
        if is_visible(a, viewer_role, viewer_is_admin, viewer_id, viewer_is_super_admin, now=now)
    ]
    narrowed = search_by_text(filter_by_category(visible, category), query)
    return rank_by_priority(narrowed, viewer_role, now=now)


def unique_categories(
    announcements: Iterable[Any],
    viewer_role: Role,
    *,
    now: datetime | None = None,
) -> list[str]:
    now = parse_datetime(now) or utcnow()
    categories = {
        _text(a, "category")
        for a in announcements
        if is_visible(a, viewer_role, now=now) and _text(a, "category")
    }
    return sorted(categories)
