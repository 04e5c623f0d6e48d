"""Shared fixtures: in-memory database, API client with auth and external services faked."""
import uuid
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401 - register tables
from app.auth import get_optional_user
from app.database import Base, get_db
from app.main import app as fastapi_app
from app.models.announcement import Announcement
from app.models.user import User
from app.services.email_service import EmailResult, get_email_service
from app.services.link_shortener import ClickStatsResult, ShortenResult, get_link_shortener


class FakeShortener:
    def __init__(self, succeed: bool = True, clicks: int | None = 7):
        self.succeed = succeed
        self.clicks = clicks
        self.shortened: list[str] = []

    def short_url(self, short_code: str) -> str:
        return f"https://spoo.me/{short_code}"

    async def shorten(self, url: str) -> ShortenResult:
        self.shortened.append(url)
        if not self.succeed:
            return ShortenResult(success=False, error="Shortener API error: 500 Internal Server Error")
        return ShortenResult(success=True, short_code=f"s{len(self.shortened)}")

    async def click_stats(self, short_code: str) -> ClickStatsResult:
        if self.clicks is None:
            return ClickStatsResult(success=False, error="Link stats API is currently unavailable.")
        return ClickStatsResult(success=True, total_clicks=self.clicks)


class FakeEmailService:
    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.sent: list[dict] = []

    async def send_announcement_email(self, **kwargs) -> EmailResult:
        self.sent.append(kwargs)
        if not self.succeed:
            return EmailResult(success=False, error="Email service is not configured. Please set RESEND_API_KEY.")
        return EmailResult(success=True, message=f"Email sent successfully to {len(kwargs['recipients'])} recipient(s)")


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def shortener():
    return FakeShortener()


@pytest.fixture
def email_service():
    return FakeEmailService()


@pytest.fixture
def auth_state():
    """Set auth_state.user to act as that user; None = anonymous."""
    return SimpleNamespace(user=None)


@pytest.fixture
def client(db_session, shortener, email_service, auth_state):
    def override_get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_optional_user] = lambda: auth_state.user
    fastapi_app.dependency_overrides[get_link_shortener] = lambda: shortener
    fastapi_app.dependency_overrides[get_email_service] = lambda: email_service
    # No lifespan here: app.state has no rate limiter, so requests are not limited
    yield TestClient(fastapi_app)
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    def _make(role: str | None = "student", email: str | None = None, is_admin: bool | None = None, **kwargs):
        ref = uuid.uuid4().hex[:8]
        user = User(
            clerk_id=f"user_{ref}",
            email=email or f"{ref}@scaler.com",
            username=kwargs.pop("username", ref),
            role=role,
            is_admin=is_admin,
            **kwargs,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_announcement(db_session):
    def _make(**fields):
        values = {
            "title": "Library hours",
            "description": "Extended hours during exam week",
            "category": "academic",
            "status": "active",
            "is_active": True,
        }
        values.update(fields)
        item = Announcement(**values)
        db_session.add(item)
        db_session.commit()
        db_session.refresh(item)
        return item

    return _make
