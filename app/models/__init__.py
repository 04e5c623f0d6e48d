from app.models.enums import AnnouncementStatus, EngagementEvent
from app.models.user import User
from app.models.announcement import Announcement
from app.models.engagement import AnnouncementEngagement
from app.models.comment import AnnouncementComment

__all__ = [
    "AnnouncementStatus", "EngagementEvent", "User", "Announcement",
    "AnnouncementEngagement", "AnnouncementComment",
]
