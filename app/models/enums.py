import enum


class AnnouncementStatus(str, enum.Enum):
    DRAFT = "draft"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    URGENT = "urgent"
    EXPIRED = "expired"


class EngagementEvent(str, enum.Enum):
    VIEW = "view"
    CLICK = "click"
    DISMISS = "dismiss"
