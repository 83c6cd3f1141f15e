import pytest

from concierge.notifications import service


class FakeRedis:
    def __init__(self):
        self.published = []

    def publish(self, channel, message):
        self.published.append((channel, message))


def test_notify_and_read(app, member):
    first = service.notify(member.id, "Welcome", "Your concierge is ready")
    service.notify(member.id, "Credits added", kind="credits")
    assert service.unread_count(member.id) == 2

    assert service.mark_read(member.id, first.id) is True
    assert service.unread_count(member.id) == 1
    assert service.mark_read(member.id, "missing") is False

    assert service.mark_all_read(member.id) == 1
    assert service.unread_count(member.id) == 0


def test_unread_count_is_published_when_redis_is_up(app, member):
    app.redis = FakeRedis()
    service.notify(member.id, "Hello")
    assert app.redis.published == [(f"notifications:{member.id}", '{"unread": 1}')]


def test_notification_routes(app, client, member, make_member, login):
    other = make_member(email="other@example.com")
    mine = service.notify(member.id, "Yours")
    theirs = service.notify(other.id, "Not yours")
    login(member)

    data = client.get("/notifications").get_json()
    assert [n["title"] for n in data["notifications"]] == ["Yours"]
    assert data["unread"] == 1

    assert client.post(f"/notifications/{theirs.id}/read").status_code == 404
    assert client.post(f"/notifications/{mine.id}/read").get_json() == {"unread": 0}
    assert client.post("/notifications/read-all").get_json()["updated"] == 0


def test_stream_sends_snapshot_without_redis(app, client, member, login):
    service.notify(member.id, "Ping")
    login(member)
    r = client.get("/notifications/stream")
    assert r.mimetype == "text/event-stream"
    body = r.get_data(as_text=True)
    assert body.startswith("retry: 15000")
    assert 'event: count\ndata: {"unread":1}' in body


@pytest.mark.config(RATELIMIT_ENABLED=True)
def test_stream_reconnects_are_not_rate_limited(app, client, member, login):
    login(member)
    statuses = {client.get("/notifications/stream").status_code for _ in range(60)}
    assert statuses == {200}

    listing = [client.get("/notifications").status_code for _ in range(60)]
    assert 429 in listing
