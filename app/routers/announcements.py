from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from app.auth import get_current_user_admin, get_optional_user, viewer_role
from app.core.roles import Role
from app.core.visibility import build_feed, is_visible, rank_by_priority, unique_categories
from app.database import get_db
from app.models.announcement import Announcement
from app.models.comment import AnnouncementComment
from app.models.user import User
from app.schemas.announcement import (
    AnnouncementCreate,
    AnnouncementCreateResult,
    AnnouncementResponse,
    AnnouncementUpdate,
    CommentCreate,
    CommentResponse,
    EmergencyAlertCreate,
    ReviewRequest,
)
from app.services.announcement_service import (
    WorkflowError,
    apply_review,
    can_review,
    check_post_limit,
    create_announcement,
    create_emergency_alert,
    submit_for_review,
    to_response,
    update_announcement,
    validate_announcement,
)
from app.services.email_service import EmailService, get_email_service
from app.services.link_shortener import LinkShortener, get_link_shortener
from app.services.rate_limiter import rate_limit
from app.utils.dates import is_valid_datetime, utcnow

router = APIRouter(prefix="/api/announcements", tags=["announcements"])

MAX_PAGE_SIZE = 100


def _get_or_404(db: Session, announcement_id: str) -> Announcement:
    item = db.query(Announcement).filter(Announcement.id == announcement_id).first()
    if not item:
        raise HTTPException(status_code=404, detail=f"Announcement with id {announcement_id} not found")
    return item


def _validation_error(errors: list[dict]) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"message": "Validation failed", "errors": errors},
    )


@router.get("", response_model=list[AnnouncementResponse], dependencies=[Depends(rate_limit("general"))])
def list_announcements(
    category: str = "all",
    q: str = "",
    status_filter: str | None = Query(None, alias="status"),
    limit: int | None = None,
    offset: int | None = None,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    """
    Dashboard feed for the viewer: visible items, narrowed by category/search, ranked.
    Anonymous viewers get the student view. Out-of-range limit/offset are ignored.
    """
    now = utcnow()
    role = viewer_role(user)
    items = db.query(Announcement).order_by(Announcement.created_at.desc()).all()
    feed = build_feed(
        items,
        role,
        category=category,
        query=q,
        viewer_is_admin=bool(user and user.is_admin),
        viewer_id=user.id if user else None,
        viewer_is_super_admin=role == Role.SUPER_ADMIN,
        now=now,
    )
    if status_filter:
        feed = [x for x in feed if x.status == status_filter.lower()]
    start = offset if offset and offset >= 0 else 0
    end = start + limit if limit and 0 < limit <= MAX_PAGE_SIZE else None
    return [to_response(x, now) for x in feed[start:end]]


@router.get("/categories", response_model=list[str], dependencies=[Depends(rate_limit("general"))])
def list_categories(
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    """Distinct categories among announcements this viewer can see."""
    items = db.query(Announcement).all()
    return unique_categories(items, viewer_role(user), now=utcnow())


@router.get("/admin", response_model=list[AnnouncementResponse], dependencies=[Depends(rate_limit("admin"))])
def admin_list_announcements(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user_admin),
):
    """Admin: every announcement (drafts, scheduled, expired included), ranked."""
    now = utcnow()
    items = db.query(Announcement).order_by(Announcement.created_at.desc()).all()
    return [to_response(x, now) for x in rank_by_priority(items, viewer_role(user), now=now)]


@router.get("/{announcement_id}", response_model=AnnouncementResponse, dependencies=[Depends(rate_limit("general"))])
def get_announcement(
    announcement_id: str,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    """Hidden announcements answer 404, same as missing ones."""
    now = utcnow()
    item = _get_or_404(db, announcement_id)
    role = viewer_role(user)
    if not is_visible(item, role, bool(user and user.is_admin), user.id if user else None,
                      role == Role.SUPER_ADMIN, now=now):
        raise HTTPException(status_code=404, detail=f"Announcement with id {announcement_id} not found")
    return to_response(item, now)


@router.post(
    "",
    response_model=AnnouncementCreateResult,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("admin"))],
)
async def create(
    body: AnnouncementCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user_admin),
    shortener: LinkShortener = Depends(get_link_shortener),
    email_service: EmailService = Depends(get_email_service),
):
    errors = validate_announcement(body.model_dump())
    if errors:
        raise _validation_error(errors)
    allowed, message = check_post_limit(db, user)
    if not allowed:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=message)
    item, email_sent, email_message = await create_announcement(
        db, user, body, shortener=shortener, email_service=email_service
    )
    return AnnouncementCreateResult(
        announcement=to_response(item),
        email_sent=email_sent,
        email_message=email_message,
    )


@router.post(
    "/emergency",
    response_model=AnnouncementCreateResult,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("strict"))],
)
async def create_emergency(
    body: EmergencyAlertCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user_admin),
    shortener: LinkShortener = Depends(get_link_shortener),
    email_service: EmailService = Depends(get_email_service),
):
    """Broadcast an emergency alert: pinned above everything, emailed immediately."""
    errors = validate_announcement(
        {"title": body.title, "description": body.description, "category": body.category}
    )
    if errors:
        raise _validation_error(errors)
    item, email_sent, email_message = await create_emergency_alert(
        db, user, body, shortener=shortener, email_service=email_service
    )
    return AnnouncementCreateResult(
        announcement=to_response(item),
        email_sent=email_sent,
        email_message=email_message,
    )


@router.patch("/{announcement_id}", response_model=AnnouncementResponse, dependencies=[Depends(rate_limit("admin"))])
async def update(
    announcement_id: str,
    body: AnnouncementUpdate,
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user_admin),
    shortener: LinkShortener = Depends(get_link_shortener),
):
    errors = validate_announcement(body.model_dump(exclude_unset=True), partial=True)
    if errors:
        raise _validation_error(errors)
    item = _get_or_404(db, announcement_id)
    try:
        item = await update_announcement(db, item, body, shortener=shortener)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return to_response(item)


@router.delete("/{announcement_id}", dependencies=[Depends(rate_limit("admin"))])
def delete_announcement(
    announcement_id: str,
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user_admin),
):
    item = _get_or_404(db, announcement_id)
    db.delete(item)
    db.commit()
    return {"message": f"Announcement with id {announcement_id} deleted"}


@router.post("/{announcement_id}/submit", response_model=AnnouncementResponse, dependencies=[Depends(rate_limit("admin"))])
def submit(
    announcement_id: str,
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user_admin),
):
    """Draft -> under_review."""
    item = _get_or_404(db, announcement_id)
    try:
        submit_for_review(item)
    except WorkflowError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    db.commit()
    db.refresh(item)
    return to_response(item)


@router.post("/{announcement_id}/review", response_model=AnnouncementResponse, dependencies=[Depends(rate_limit("admin"))])
def review(
    announcement_id: str,
    body: ReviewRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user_admin),
):
    """Accept, reject or send back an announcement under review. Reviewer must outrank the author."""
    item = _get_or_404(db, announcement_id)
    author = db.query(User).filter(User.id == item.author_id).first() if item.author_id else None
    author_role = viewer_role(author) if author else None
    if not can_review(viewer_role(user), author_role):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only a higher-ranking admin can review this announcement",
        )
    if body.scheduled_at and not is_valid_datetime(body.scheduled_at):
        raise _validation_error([{"field": "scheduled_at", "message": "Scheduled at must be a valid date"}])
    try:
        apply_review(item, body.action, body.scheduled_at)
    except WorkflowError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    db.commit()
    db.refresh(item)
    return to_response(item)


@router.get("/{announcement_id}/comments", response_model=list[CommentResponse], dependencies=[Depends(rate_limit("admin"))])
def list_comments(
    announcement_id: str,
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user_admin),
):
    _get_or_404(db, announcement_id)
    return (
        db.query(AnnouncementComment)
        .filter(AnnouncementComment.announcement_id == announcement_id)
        .order_by(AnnouncementComment.created_at.asc())
        .all()
    )


@router.post(
    "/{announcement_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("admin"))],
)
def add_comment(
    announcement_id: str,
    body: CommentCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user_admin),
):
    """Reviewer note addressed to the author (or an explicit target admin)."""
    item = _get_or_404(db, announcement_id)
    target_id = body.target_admin_id or item.author_id
    if not target_id or not db.query(User).filter(User.id == target_id).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Comment target admin not found")
    comment = AnnouncementComment(
        announcement_id=item.id,
        author_id=user.id,
        target_admin_id=target_id,
        content=body.content.strip(),
    )
    db.add(comment)
    db.commit()
    db.refresh(comment)
    return comment
