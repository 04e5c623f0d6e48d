from datetime import timedelta

from app.config import Settings
from app.utils.dates import utcnow


def _payload(**overrides):
    data = {"title": "Guest lecture", "description": "Auditorium, 5pm", "category": "academic"}
    data.update(overrides)
    return data


# ---------- feed ----------


def test_anonymous_feed_hides_unpublished_and_expired(client, make_announcement):
    now = utcnow()
    make_announcement(title="Visible")
    make_announcement(title="Draft", status="draft")
    make_announcement(title="Expired", expiry_date=now - timedelta(days=1))
    make_announcement(title="Later", status="scheduled", scheduled_at=now + timedelta(days=1))
    make_announcement(title="Off", is_active=False)

    res = client.get("/api/announcements")
    assert res.status_code == 200
    assert [a["title"] for a in res.json()] == ["Visible"]


def test_feed_ranks_emergency_then_urgent_then_newest(client, make_announcement):
    now = utcnow()
    make_announcement(title="Old", created_at=now - timedelta(days=2))
    make_announcement(title="New", created_at=now)
    make_announcement(title="Pinned", status="urgent", priority_until=now + timedelta(hours=3),
                      created_at=now - timedelta(days=5))
    make_announcement(title="Emergency", is_emergency=True, created_at=now - timedelta(days=9))

    titles = [a["title"] for a in client.get("/api/announcements").json()]
    assert titles == ["Emergency", "Pinned", "New", "Old"]


def test_feed_category_search_and_pagination(client, make_announcement):
    now = utcnow()
    for i in range(3):
        make_announcement(title=f"Hackathon {i}", category="tech", created_at=now - timedelta(hours=i))
    make_announcement(title="Football", category="sports")

    assert len(client.get("/api/announcements", params={"category": "TECH"}).json()) == 3
    assert len(client.get("/api/announcements", params={"q": "foot"}).json()) == 1
    page = client.get("/api/announcements", params={"category": "tech", "limit": 1, "offset": 1}).json()
    assert [a["title"] for a in page] == ["Hackathon 1"]
    # Out-of-range values are ignored
    assert len(client.get("/api/announcements", params={"limit": 500, "offset": -3}).json()) == 4


def test_admin_sees_drafts_in_feed(client, auth_state, make_user, make_announcement):
    make_announcement(title="Draft", status="draft")
    auth_state.user = make_user(role="student_admin")
    assert [a["title"] for a in client.get("/api/announcements").json()] == ["Draft"]


def test_legacy_is_admin_flag_grants_admin_view(client, auth_state, make_user, make_announcement):
    make_announcement(title="Draft", status="draft")
    auth_state.user = make_user(role="", is_admin=True)
    assert len(client.get("/api/announcements").json()) == 1


def test_expired_flag_is_computed(client, auth_state, make_user, make_announcement):
    make_announcement(title="Past", expiry_date=utcnow() - timedelta(hours=1))
    auth_state.user = make_user(role="admin")
    [item] = client.get("/api/announcements").json()
    assert item["status"] == "active"
    assert item["is_expired"] is True


def test_categories_for_viewer(client, make_announcement):
    make_announcement(category="tech")
    make_announcement(category="sports", status="draft")
    assert client.get("/api/announcements/categories").json() == ["tech"]


def test_get_hidden_announcement_is_404(client, make_announcement):
    item = make_announcement(status="draft")
    assert client.get(f"/api/announcements/{item.id}").status_code == 404
    assert client.get("/api/announcements/missing").status_code == 404


def test_admin_list_requires_admin(client, auth_state, make_user, make_announcement):
    make_announcement(status="rejected")
    assert client.get("/api/announcements/admin").status_code == 401
    auth_state.user = make_user(role="student")
    assert client.get("/api/announcements/admin").status_code == 403
    auth_state.user = make_user(role="admin")
    assert len(client.get("/api/announcements/admin").json()) == 1


# ---------- create ----------


def test_student_cannot_create(client, auth_state, make_user):
    auth_state.user = make_user(role="user")
    assert client.post("/api/announcements", json=_payload()).status_code == 403


def test_outside_domain_cannot_create(client, auth_state, make_user):
    auth_state.user = make_user(role="admin", email="someone@gmail.com")
    res = client.post("/api/announcements", json=_payload())
    assert res.status_code == 403
    assert res.json()["detail"] == "Domain access restricted"


def test_create_returns_201_with_email_result(client, auth_state, make_user, email_service):
    auth_state.user = make_user(role="admin")
    res = client.post("/api/announcements", json=_payload(send_email=True, link="https://forms.example/rsvp"))
    assert res.status_code == 201
    body = res.json()
    assert body["announcement"]["status"] == "active"
    assert body["announcement"]["short_code"] == "s1"
    assert body["email_sent"] is True
    assert len(email_service.sent) == 1


def test_create_validation_errors(client, auth_state, make_user):
    auth_state.user = make_user(role="admin")
    res = client.post("/api/announcements", json=_payload(title="", category="gossip"))
    assert res.status_code == 400
    detail = res.json()["detail"]
    assert detail["message"] == "Validation failed"
    assert {e["field"] for e in detail["errors"]} == {"title", "category"}


def test_create_with_out_of_range_expiry_is_400(client, auth_state, make_user):
    auth_state.user = make_user(role="admin")
    res = client.post("/api/announcements", json=_payload(expiry_date="9999-12-31T23:59:59-05:00"))
    assert res.status_code == 400
    assert [e["field"] for e in res.json()["detail"]["errors"]] == ["expiry_date"]


def test_create_with_future_priority_is_urgent(client, auth_state, make_user):
    auth_state.user = make_user(role="admin")
    res = client.post(
        "/api/announcements",
        json=_payload(priority_until=(utcnow() + timedelta(hours=2)).isoformat()),
    )
    assert res.json()["announcement"]["status"] == "urgent"
    assert res.json()["announcement"]["has_priority_window"] is True


def test_daily_post_limit(client, auth_state, make_user, make_announcement, monkeypatch):
    monkeypatch.setattr("app.services.announcement_service.get_settings", lambda: Settings(admin_daily_post_limit=1))
    admin = make_user(role="admin")
    auth_state.user = admin
    make_announcement(author_id=admin.id)
    res = client.post("/api/announcements", json=_payload())
    assert res.status_code == 429
    assert "Daily limit reached" in res.json()["detail"]


def test_emergency_broadcast(client, auth_state, make_user, email_service):
    auth_state.user = make_user(role="student_admin")
    res = client.post("/api/announcements/emergency", json={"title": "Fire drill", "description": "Now"})
    assert res.status_code == 201
    item = res.json()["announcement"]
    assert item["is_emergency"] is True
    assert item["category"] == "emergency"
    assert item["emergency_expires_at"] is not None
    assert email_service.sent[0]["is_emergency"] is True


# ---------- update / delete ----------


def test_patch_updates_fields(client, auth_state, make_user, make_announcement):
    item = make_announcement()
    auth_state.user = make_user(role="admin")
    res = client.patch(f"/api/announcements/{item.id}", json={"title": "Updated", "expiry_date": ""})
    assert res.status_code == 200
    assert res.json()["title"] == "Updated"


def test_patch_errors(client, auth_state, make_user, make_announcement):
    item = make_announcement()
    auth_state.user = make_user(role="admin")
    assert client.patch(f"/api/announcements/{item.id}", json={}).status_code == 400
    assert client.patch(f"/api/announcements/{item.id}", json={"expiry_date": "someday"}).status_code == 400
    assert client.patch("/api/announcements/missing", json={"title": "x"}).status_code == 404


def test_delete(client, auth_state, make_user, make_announcement):
    item = make_announcement()
    auth_state.user = make_user(role="admin")
    assert client.delete(f"/api/announcements/{item.id}").status_code == 200
    assert client.delete(f"/api/announcements/{item.id}").status_code == 404


# ---------- review workflow ----------


def test_submit_and_accept(client, auth_state, make_user, make_announcement):
    author = make_user(role="student_admin")
    item = make_announcement(status="draft", author_id=author.id)
    auth_state.user = author
    assert client.post(f"/api/announcements/{item.id}/submit").json()["status"] == "under_review"

    # Same priority cannot review
    assert client.post(f"/api/announcements/{item.id}/review", json={"action": "accept"}).status_code == 403

    auth_state.user = make_user(role="admin")
    res = client.post(f"/api/announcements/{item.id}/review", json={"action": "accept"})
    assert res.status_code == 200
    assert res.json()["status"] == "approved"


def test_review_with_schedule(client, auth_state, make_user, make_announcement):
    author = make_user(role="admin")
    item = make_announcement(status="under_review", author_id=author.id)
    auth_state.user = make_user(role="super_admin")
    when = (utcnow() + timedelta(days=1)).isoformat()
    res = client.post(f"/api/announcements/{item.id}/review", json={"action": "accept", "scheduled_at": when})
    assert res.json()["status"] == "scheduled"


def test_review_conflicts(client, auth_state, make_user, make_announcement):
    item = make_announcement(status="active")
    auth_state.user = make_user(role="super_admin")
    assert client.post(f"/api/announcements/{item.id}/review", json={"action": "reject"}).status_code == 409
    assert client.post(f"/api/announcements/{item.id}/submit").status_code == 409
    assert client.post(f"/api/announcements/{item.id}/review", json={"action": "publish"}).status_code == 422


def test_comments_default_to_author(client, auth_state, make_user, make_announcement):
    author = make_user(role="student_admin")
    item = make_announcement(status="under_review", author_id=author.id)
    reviewer = make_user(role="admin")
    auth_state.user = reviewer
    res = client.post(f"/api/announcements/{item.id}/comments", json={"content": "  Please add the room number "})
    assert res.status_code == 201
    assert res.json()["target_admin_id"] == author.id
    assert res.json()["content"] == "Please add the room number"
    comments = client.get(f"/api/announcements/{item.id}/comments").json()
    assert [c["author_id"] for c in comments] == [reviewer.id]


def test_comment_needs_target(client, auth_state, make_user, make_announcement):
    item = make_announcement()
    auth_state.user = make_user(role="admin")
    res = client.post(f"/api/announcements/{item.id}/comments", json={"content": "hi"})
    assert res.status_code == 400
