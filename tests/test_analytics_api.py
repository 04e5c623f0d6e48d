def test_track_view_and_click(client, db_session, make_announcement):
    item = make_announcement()
    assert client.post("/api/analytics/track", json={"announcement_id": item.id, "event_type": "view"}).status_code == 200
    client.post("/api/analytics/track", json={"announcement_id": item.id, "event_type": "click"})
    client.post("/api/analytics/track", json={"announcement_id": item.id, "event_type": "dismiss"})
    db_session.refresh(item)
    assert (item.views_count, item.clicks_count) == (1, 1)


def test_track_rejects_unknown_event_and_missing_announcement(client, make_announcement):
    item = make_announcement()
    assert client.post("/api/analytics/track", json={"announcement_id": item.id, "event_type": "like"}).status_code == 422
    assert client.post("/api/analytics/track", json={"announcement_id": "nope", "event_type": "view"}).status_code == 404


def test_stats(client, auth_state, make_user, make_announcement):
    make_announcement(title="Popular", views_count=10, clicks_count=3)
    make_announcement(title="Quiet", views_count=1)
    auth_state.user = make_user(role="admin")
    body = client.get("/api/analytics/stats").json()
    assert body["total_announcements"] == 2
    assert body["total_views"] == 11
    assert body["total_clicks"] == 3
    assert body["top_announcements"][0]["title"] == "Popular"


def test_stats_requires_admin(client, auth_state, make_user):
    auth_state.user = make_user(role="student")
    assert client.get("/api/analytics/stats").status_code == 403


def test_shortener_stats(client, auth_state, make_user, make_announcement, shortener):
    with_link = make_announcement(short_code="abc", clicks_count=2)
    without = make_announcement()
    auth_state.user = make_user(role="admin")

    assert client.get("/api/analytics/shortener-stats", params={"announcement_id": with_link.id}).json()["total_clicks"] == 7
    body = client.get("/api/analytics/shortener-stats", params={"announcement_id": without.id}).json()
    assert body["total_clicks"] == 0
    assert body["message"]

    shortener.clicks = None
    fallback = client.get("/api/analytics/shortener-stats", params={"announcement_id": with_link.id}).json()
    assert fallback["total_clicks"] == 2


def test_redirect_counts_click(client, db_session, make_announcement):
    item = make_announcement(link="https://forms.example/rsvp", short_code="abc")
    res = client.get(
        "/api/redirect-announcement",
        params={"announcement_id": item.id},
        follow_redirects=False,
    )
    assert res.status_code == 307
    assert res.headers["location"] == "https://spoo.me/abc"
    db_session.refresh(item)
    assert item.clicks_count == 1


def test_redirect_falls_back_to_raw_link(client, make_announcement):
    item = make_announcement(link="https://forms.example/rsvp")
    res = client.get("/api/redirect-announcement", params={"announcement_id": item.id}, follow_redirects=False)
    assert res.headers["location"] == "https://forms.example/rsvp"


def test_redirect_without_link_is_404(client, make_announcement):
    item = make_announcement()
    assert client.get("/api/redirect-announcement", params={"announcement_id": item.id}).status_code == 404
