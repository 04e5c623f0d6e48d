"""
Announcement email notifications through the Resend HTTP API.
Never raises to the caller: every failure comes back as EmailResult(success=False, error=...).
"""
import html
import logging
from datetime import datetime
from typing import Any

import httpx
from pydantic import BaseModel

from app.config import Settings, get_settings
from app.utils.dates import parse_datetime

logger = logging.getLogger(__name__)

FOOTER = "This is an automated notification from the SST Announcement System."


class EmailResult(BaseModel):
    success: bool
    message: str | None = None
    error: str | None = None


def format_date(value: Any) -> str:
    moment = parse_datetime(value)
    if moment is None:
        return "Not specified"
    return moment.strftime("%B %d, %Y %I:%M %p UTC")


def _detail_row(label: str, value: str) -> str:
    return (
        "<tr>"
        f'<td style="padding: 8px 0; font-weight: bold; color: #667eea;">{label}:</td>'
        f'<td style="padding: 8px 0; color: #555;">{html.escape(value)}</td>'
        "</tr>"
    )


def render_announcement_html(
    title: str,
    description: str,
    category: str,
    frontend_url: str,
    expiry_date: datetime | str | None = None,
    scheduled_at: datetime | str | None = None,
    is_emergency: bool = False,
) -> str:
    heading = "Emergency Alert" if is_emergency else "New Announcement"
    rows = [_detail_row("Category", category)]
    if parse_datetime(expiry_date):
        rows.append(_detail_row("Expiry Date", format_date(expiry_date)))
    if parse_datetime(scheduled_at):
        rows.append(_detail_row("Scheduled For", format_date(scheduled_at)))
    return f"""<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8" />
    <title>{heading}: {html.escape(title)}</title>
  </head>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: {'#c0392b' if is_emergency else '#667eea'}; padding: 30px; text-align: center; border-radius: 10px 10px 0 0;">
      <h1 style="color: white; margin: 0; font-size: 24px;">{heading}</h1>
    </div>
    <div style="background: #f9f9f9; padding: 30px; border: 1px solid #e0e0e0; border-top: none; border-radius: 0 0 10px 10px;">
      <h2 style="color: #667eea; margin-top: 0;">{html.escape(title)}</h2>
      <p style="white-space: pre-wrap;">{html.escape(description)}</p>
      <table style="width: 100%; border-collapse: collapse;">{''.join(rows)}</table>
      <p style="text-align: center; margin-top: 30px;"><a href="{html.escape(frontend_url)}">View All Announcements</a></p>
    </div>
    <p style="text-align: center; color: #999; font-size: 12px;">{FOOTER}</p>
  </body>
</html>"""


def render_announcement_text(
    title: str,
    description: str,
    category: str,
    frontend_url: str,
    expiry_date: datetime | str | None = None,
    scheduled_at: datetime | str | None = None,
    is_emergency: bool = False,
) -> str:
    heading = "Emergency Alert" if is_emergency else "New Announcement"
    lines = [f"{heading}: {title}", "", description, "", f"Category: {category}"]
    if parse_datetime(expiry_date):
        lines.append(f"Expiry Date: {format_date(expiry_date)}")
    if parse_datetime(scheduled_at):
        lines.append(f"Scheduled For: {format_date(scheduled_at)}")
    lines += ["", f"View all announcements: {frontend_url}", "", FOOTER]
    return "\n".join(lines)


class EmailService:
    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None):
        self._settings = settings or get_settings()
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self._settings.resend_api_key)

    async def send_announcement_email(
        self,
        *,
        title: str,
        description: str,
        category: str,
        recipients: list[str],
        expiry_date: datetime | str | None = None,
        scheduled_at: datetime | str | None = None,
        is_emergency: bool = False,
    ) -> EmailResult:
        if not self.enabled:
            logger.warning("Resend API key is not configured - email notifications disabled")
            return EmailResult(success=False, error="Email service is not configured. Please set RESEND_API_KEY.")
        recipients = [r for r in recipients if r]
        if not recipients:
            return EmailResult(success=False, error="No recipients specified")

        frontend_url = self._settings.resolved_frontend_url
        prefix = "Emergency Alert" if is_emergency else "New Announcement"
        payload = {
            "from": self._settings.resend_from_email,
            "to": recipients,
            "subject": f"{prefix}: {title}",
            "html": render_announcement_html(
                title, description, category, frontend_url, expiry_date, scheduled_at, is_emergency
            ),
            "text": render_announcement_text(
                title, description, category, frontend_url, expiry_date, scheduled_at, is_emergency
            ),
        }
        headers = {"Authorization": f"Bearer {self._settings.resend_api_key}"}
        try:
            if self._client is not None:
                res = await self._client.post(self._settings.resend_api_url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._settings.http_timeout_seconds) as client:
                    res = await client.post(self._settings.resend_api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("Email send failed: %s", e)
            return EmailResult(success=False, error=str(e) or "Failed to send email")

        if res.status_code >= 400:
            try:
                data = res.json()
            except ValueError:
                data = None
            error = data.get("message") if isinstance(data, dict) else None
            logger.warning("Resend returned %s: %s", res.status_code, error)
            return EmailResult(success=False, error=error or f"Email provider error: {res.status_code}")

        return EmailResult(
            success=True,
            message=f"Email sent successfully to {len(recipients)} recipient(s)",
        )


def get_email_service() -> EmailService:
    """FastAPI dependency (overridden in tests)."""
    return EmailService()
