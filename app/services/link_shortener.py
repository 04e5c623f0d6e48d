"""
Spoo.me client: shorten an announcement link and read its click count.
Failures are returned, not raised; an announcement is created even if shortening fails.
"""
import logging

import httpx
from pydantic import BaseModel

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)

STATS_UNAVAILABLE = "Link stats API is currently unavailable. Click tracking is handled internally."


class ShortenResult(BaseModel):
    success: bool
    short_code: str | None = None
    error: str | None = None


class ClickStatsResult(BaseModel):
    success: bool
    total_clicks: int | None = None
    error: str | None = None


class LinkShortener:
    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None):
        self._settings = settings or get_settings()
        self._client = client

    def short_url(self, short_code: str) -> str:
        return f"{self._settings.spoo_base_url.rstrip('/')}/{short_code}"

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._settings.spoo_api_key:
            headers["Authorization"] = f"Bearer {self._settings.spoo_api_key}"
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self._settings.spoo_base_url.rstrip('/')}{path}"
        if self._client is not None:
            return await self._client.request(method, url, headers=self._headers(), **kwargs)
        async with httpx.AsyncClient(timeout=self._settings.http_timeout_seconds) as client:
            return await client.request(method, url, headers=self._headers(), **kwargs)

    async def shorten(self, url: str) -> ShortenResult:
        try:
            res = await self._request("POST", "/api/v1/shorten", json={"url": url})
        except httpx.HTTPError as e:
            logger.warning("Error shortening URL %s: %s", url, e)
            return ShortenResult(success=False, error=str(e) or "Failed to shorten URL")
        if res.status_code >= 400:
            logger.warning("Shortener API error: %s %s", res.status_code, res.reason_phrase)
            return ShortenResult(success=False, error=f"Shortener API error: {res.status_code} {res.reason_phrase}")
        try:
            data = res.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            return ShortenResult(success=False, error="Invalid response from shortener API")
        if data.get("success") is not False and data.get("alias"):
            return ShortenResult(success=True, short_code=data["alias"])
        return ShortenResult(success=False, error=data.get("error") or "Unknown error from shortener API")

    async def click_stats(self, short_code: str) -> ClickStatsResult:
        try:
            res = await self._request(
                "GET", "/api/v1/stats", params={"scope": "anon", "short_code": short_code}
            )
        except httpx.HTTPError as e:
            logger.warning("Error fetching link stats for %s: %s", short_code, e)
            return ClickStatsResult(success=False, error=str(e) or "Failed to fetch stats")
        if res.status_code == 200 and "application/json" in res.headers.get("content-type", ""):
            try:
                data = res.json()
            except ValueError:
                data = None
            summary = data.get("summary") if isinstance(data, dict) else None
            total = summary.get("total_clicks") if isinstance(summary, dict) else None
            if isinstance(total, int) and not isinstance(total, bool):
                return ClickStatsResult(success=True, total_clicks=total)
        return ClickStatsResult(success=False, error=STATS_UNAVAILABLE)


def get_link_shortener() -> LinkShortener:
    """FastAPI dependency (overridden in tests)."""
    return LinkShortener()
