from datetime import datetime
from typing import Literal
from pydantic import BaseModel, Field


class AnnouncementCreate(BaseModel):
    """Dates are ISO strings; unparseable values are reported by validate_announcement, not pydantic."""
    title: str
    description: str
    category: str
    expiry_date: str | None = None
    scheduled_at: str | None = None
    reminder_time: str | None = None
    priority_until: str | None = None
    is_active: bool = True
    status: str = "active"
    send_email: bool = False
    is_emergency: bool = False
    emergency_expires_at: str | None = None
    link: str | None = None


class AnnouncementUpdate(BaseModel):
    """Partial update. Empty string on a date field clears it."""
    title: str | None = None
    description: str | None = None
    category: str | None = None
    expiry_date: str | None = None
    scheduled_at: str | None = None
    reminder_time: str | None = None
    priority_until: str | None = None
    is_active: bool | None = None
    status: str | None = None
    is_emergency: bool | None = None
    emergency_expires_at: str | None = None
    link: str | None = None


class EmergencyAlertCreate(BaseModel):
    title: str
    description: str
    category: str = "emergency"
    duration_hours: float = Field(default=4, gt=0, le=72)
    link: str | None = None


class ReviewRequest(BaseModel):
    action: Literal["accept", "reject", "send_back"]
    scheduled_at: str | None = None


class AnnouncementResponse(BaseModel):
    id: str
    title: str
    description: str
    category: str
    author_id: str | None
    status: str
    is_active: bool
    is_emergency: bool
    # Computed at read time, never stored
    is_expired: bool
    has_priority_window: bool
    created_at: datetime | None
    updated_at: datetime | None
    expiry_date: datetime | None
    scheduled_at: datetime | None
    reminder_time: datetime | None
    priority_until: datetime | None
    emergency_expires_at: datetime | None
    views_count: int
    clicks_count: int
    send_email: bool
    email_sent: bool
    link: str | None
    short_code: str | None

    class Config:
        from_attributes = True


class AnnouncementCreateResult(BaseModel):
    announcement: AnnouncementResponse
    email_sent: bool = False
    email_message: str | None = None


class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=2000)
    target_admin_id: str | None = None  # default: the announcement's author


class CommentResponse(BaseModel):
    id: str
    announcement_id: str
    author_id: str
    target_admin_id: str
    content: str
    created_at: datetime

    class Config:
        from_attributes = True
