"""Email and link-shortener clients against httpx.MockTransport."""
import asyncio
import json

import httpx

from app.config import Settings
from app.services.email_service import EmailService, format_date, render_announcement_html
from app.services.link_shortener import STATS_UNAVAILABLE, LinkShortener


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _send(service: EmailService, **overrides):
    kwargs = {
        "title": "Water outage",
        "description": "Block C, 2-4pm",
        "category": "college",
        "recipients": ["a@scaler.com", "b@scaler.com"],
    }
    kwargs.update(overrides)
    return asyncio.run(service.send_announcement_email(**kwargs))


# ---------- email ----------


def test_email_posts_to_resend():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "em_1"})

    service = EmailService(Settings(resend_api_key="re_test"), client=_client(handler))
    result = _send(service)
    assert result.success
    assert result.message == "Email sent successfully to 2 recipient(s)"
    assert seen["auth"] == "Bearer re_test"
    assert seen["body"]["to"] == ["a@scaler.com", "b@scaler.com"]
    assert seen["body"]["subject"] == "New Announcement: Water outage"


def test_email_disabled_without_api_key():
    def handler(request):
        raise AssertionError("no request expected")

    result = _send(EmailService(Settings(resend_api_key=""), client=_client(handler)))
    assert not result.success
    assert "RESEND_API_KEY" in result.error


def test_email_requires_recipients():
    result = _send(EmailService(Settings(resend_api_key="re_test"), client=_client(lambda r: httpx.Response(200))), recipients=[])
    assert result.error == "No recipients specified"


def test_email_provider_error_is_returned_not_raised():
    def handler(request):
        return httpx.Response(422, json={"message": "Invalid `to` field"})

    result = _send(EmailService(Settings(resend_api_key="re_test"), client=_client(handler)))
    assert not result.success
    assert result.error == "Invalid `to` field"


def test_email_transport_error_is_returned_not_raised():
    def handler(request):
        raise httpx.ConnectError("refused")

    result = _send(EmailService(Settings(resend_api_key="re_test"), client=_client(handler)))
    assert not result.success


def test_emergency_email_subject_and_escaping():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "em_2"})

    _send(
        EmailService(Settings(resend_api_key="re_test"), client=_client(handler)),
        title="<Evacuate>",
        is_emergency=True,
    )
    assert seen["body"]["subject"] == "Emergency Alert: <Evacuate>"
    assert "&lt;Evacuate&gt;" in seen["body"]["html"]


def test_html_lists_dates_only_when_valid():
    body = render_announcement_html("t", "d", "tech", "http://x", expiry_date="2026-03-02T10:00:00Z", scheduled_at="bad")
    assert "Expiry Date" in body
    assert "Scheduled For" not in body
    assert format_date(None) == "Not specified"


# ---------- link shortener ----------


def test_shorten_returns_alias():
    def handler(request):
        assert request.url.path == "/api/v1/shorten"
        assert json.loads(request.content) == {"url": "https://forms.example/signup"}
        return httpx.Response(200, json={"alias": "abc123", "short_url": "https://spoo.me/abc123"})

    shortener = LinkShortener(Settings(spoo_base_url="https://spoo.me"), client=_client(handler))
    result = asyncio.run(shortener.shorten("https://forms.example/signup"))
    assert result.success and result.short_code == "abc123"
    assert shortener.short_url("abc123") == "https://spoo.me/abc123"


def test_shorten_failure_is_result():
    shortener = LinkShortener(Settings(), client=_client(lambda r: httpx.Response(500)))
    result = asyncio.run(shortener.shorten("https://x.example"))
    assert not result.success
    assert result.error.startswith("Shortener API error: 500")


def test_shorten_without_alias_is_failure():
    shortener = LinkShortener(Settings(), client=_client(lambda r: httpx.Response(200, json={"success": False, "error": "bad url"})))
    assert asyncio.run(shortener.shorten("nope")).error == "bad url"


def test_click_stats_reads_summary():
    def handler(request):
        assert request.url.params["short_code"] == "abc123"
        return httpx.Response(200, json={"summary": {"total_clicks": 42}})

    result = asyncio.run(LinkShortener(Settings(), client=_client(handler)).click_stats("abc123"))
    assert result.success and result.total_clicks == 42


def test_click_stats_unavailable():
    result = asyncio.run(LinkShortener(Settings(), client=_client(lambda r: httpx.Response(404))).click_stats("x"))
    assert not result.success
    assert result.error == STATS_UNAVAILABLE
