import logging
from datetime import timedelta
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import RedirectResponse
from sqlalchemy import func
from sqlalchemy.orm import Session
from app.auth import get_current_user_admin, get_optional_user
from app.database import get_db
from app.models.announcement import Announcement
from app.models.engagement import AnnouncementEngagement
from app.models.enums import EngagementEvent
from app.models.user import User
from app.schemas.analytics import (
    AnalyticsStatsResponse,
    ShortenerStatsResponse,
    TopAnnouncement,
    TrackEventBody,
)
from app.services.link_shortener import LinkShortener, get_link_shortener
from app.services.rate_limiter import rate_limit
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analytics", tags=["analytics"])
redirect_router = APIRouter(tags=["analytics"])

TOP_ANNOUNCEMENTS = 5
ACTIVE_USER_WINDOW = timedelta(days=30)


def _get_announcement_or_404(db: Session, announcement_id: str) -> Announcement:
    item = db.query(Announcement).filter(Announcement.id == announcement_id).first()
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Announcement not found")
    return item


def record_event(db: Session, item: Announcement, event: EngagementEvent, user: User | None) -> None:
    """Store the engagement row and bump the denormalized counter (dismiss has none)."""
    db.add(AnnouncementEngagement(
        announcement_id=item.id,
        user_id=user.id if user else None,
        event_type=event.value,
    ))
    if event == EngagementEvent.VIEW:
        item.views_count = (item.views_count or 0) + 1
    elif event == EngagementEvent.CLICK:
        item.clicks_count = (item.clicks_count or 0) + 1
    db.commit()


@router.post("/track", dependencies=[Depends(rate_limit("general"))])
def track(
    body: TrackEventBody,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    item = _get_announcement_or_404(db, body.announcement_id)
    record_event(db, item, body.event_type, user)
    return {"success": True}


@router.get("/stats", response_model=AnalyticsStatsResponse, dependencies=[Depends(rate_limit("admin"))])
def stats(
    _admin: User = Depends(get_current_user_admin),
    db: Session = Depends(get_db),
):
    """Totals across all announcements, plus the most viewed ones."""
    total_announcements, total_views, total_clicks = db.query(
        func.count(Announcement.id),
        func.coalesce(func.sum(Announcement.views_count), 0),
        func.coalesce(func.sum(Announcement.clicks_count), 0),
    ).one()
    total_users = db.query(func.count(User.id)).scalar() or 0
    active_users = (
        db.query(func.count(User.id))
        .filter(User.last_login >= utcnow() - ACTIVE_USER_WINDOW)
        .scalar()
        or 0
    )
    top = (
        db.query(Announcement)
        .order_by(Announcement.views_count.desc(), Announcement.created_at.desc())
        .limit(TOP_ANNOUNCEMENTS)
        .all()
    )
    return AnalyticsStatsResponse(
        total_announcements=total_announcements,
        total_views=total_views,
        total_clicks=total_clicks,
        total_users=total_users,
        active_users=active_users,
        top_announcements=[
            TopAnnouncement(id=a.id, title=a.title, views=a.views_count or 0, clicks=a.clicks_count or 0)
            for a in top
        ],
    )


@router.get("/shortener-stats", response_model=ShortenerStatsResponse, dependencies=[Depends(rate_limit("admin"))])
async def shortener_stats(
    announcement_id: str,
    _admin: User = Depends(get_current_user_admin),
    db: Session = Depends(get_db),
    shortener: LinkShortener = Depends(get_link_shortener),
):
    """Click count from the link shortener. Falls back to our own counter when its stats API is down."""
    item = _get_announcement_or_404(db, announcement_id)
    if not item.short_code:
        return ShortenerStatsResponse(
            announcement_id=item.id,
            title=item.title,
            total_clicks=0,
            message="No short link for this announcement",
        )
    result = await shortener.click_stats(item.short_code)
    if result.success:
        return ShortenerStatsResponse(
            announcement_id=item.id,
            title=item.title,
            total_clicks=result.total_clicks or 0,
        )
    return ShortenerStatsResponse(
        announcement_id=item.id,
        title=item.title,
        total_clicks=item.clicks_count or 0,
        message=result.error,
    )


@redirect_router.get("/api/redirect-announcement", dependencies=[Depends(rate_limit("general"))])
def redirect_announcement(
    announcement_id: str,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
    shortener: LinkShortener = Depends(get_link_shortener),
):
    """Count the click, then send the browser to the short link (or the raw link)."""
    item = _get_announcement_or_404(db, announcement_id)
    if item.short_code:
        target = shortener.short_url(item.short_code)
    elif item.link:
        target = item.link
    else:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Announcement has no link")
    record_event(db, item, EngagementEvent.CLICK, user)
    logger.info("Redirecting click on %s to %s", item.id, target)
    return RedirectResponse(url=target, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
