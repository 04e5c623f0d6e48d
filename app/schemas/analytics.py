from pydantic import BaseModel
from app.models.enums import EngagementEvent


class TrackEventBody(BaseModel):
    announcement_id: str
    event_type: EngagementEvent


class TopAnnouncement(BaseModel):
    id: str
    title: str
    views: int
    clicks: int


class AnalyticsStatsResponse(BaseModel):
    total_announcements: int
    total_views: int
    total_clicks: int
    total_users: int
    active_users: int  # users seen in the last 30 days
    top_announcements: list[TopAnnouncement]


class ShortenerStatsResponse(BaseModel):
    announcement_id: str
    title: str
    total_clicks: int
    message: str | None = None
