from datetime import datetime, timedelta

from conftest import STAFF
from icms.domain.status import utcnow


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json["status"] == "ok"


def test_staff_endpoints_require_a_role(client):
    assert client.get("/events").status_code == 401
    response = client.post("/events", json={"title": "x"}, headers={"X-User-Role": "ATTENDEE"})
    assert response.status_code == 403
    assert response.json["error"]["details"] == {"permission": "events.create"}


def test_create_event_starts_as_draft(make_event):
    event = make_event(publish=False)
    assert event["status"] == "DRAFT"
    assert event["is_published"] is False
    assert event["capacity_fill"]["capacity"] == 10
    assert [speaker["name"] for speaker in event["speakers"]] == ["Dr. Arjun Rao"]


def test_create_event_validates_payload(client):
    response = client.post(
        "/events",
        json={"title": " ", "capacity": -1, "start_time": "9am", "event_type": "PARTY"},
        headers=STAFF,
    )
    assert response.status_code == 422
    details = response.json["error"]["details"]
    assert set(details) >= {"title", "capacity", "start_time", "event_type"}


def test_create_event_requires_json(client):
    response = client.post("/events", data="title=x", headers=STAFF)
    assert response.status_code == 415


def test_publish_reports_every_missing_field(client):
    created = client.post("/events", json={"title": "Bare"}, headers=STAFF).json["event"]

    check = client.get(f"/events/{created['id']}/publish-check", headers=STAFF)
    assert check.status_code == 200
    assert check.json["validation"]["is_valid"] is False
    assert "Event description is required" in check.json["validation"]["errors"]

    response = client.post(f"/events/{created['id']}/publish", headers=STAFF)
    assert response.status_code == 422
    assert response.json["error"]["details"] == check.json["validation"]["errors"]

    event = client.get(f"/events/{created['id']}", headers=STAFF).json["event"]
    assert event["is_published"] is False


def test_publish_is_idempotent(client, make_event):
    event = make_event()
    assert event["status"] == "UPCOMING"
    again = client.post(f"/events/{event['id']}/publish", headers=STAFF)
    assert again.status_code == 200
    assert again.json["event"]["published_at"] == event["published_at"]


def test_status_is_derived_from_the_window(make_event):
    assert make_event(starts_in=timedelta(hours=-1), lasts=timedelta(hours=3))["status"] == "ACTIVE"
    completed = make_event(starts_in=timedelta(days=-3), lasts=timedelta(days=1))
    assert completed["status"] == "COMPLETED"


def test_public_listing_hides_drafts_and_cancelled(client, make_event):
    published = make_event(title="Visible")
    draft = make_event(title="Hidden", publish=False)
    cancelled = make_event(title="Called off")
    client.post(f"/events/{cancelled['id']}/cancel", json={"reason": "venue"}, headers=STAFF)

    response = client.get("/events/public")
    assert response.status_code == 200
    assert [event["id"] for event in response.json["events"]] == [published["id"]]

    assert client.get(f"/events/public/{draft['id']}").status_code == 404
    assert client.get(f"/events/public/{published['id']}").status_code == 200
    cancelled_detail = client.get(f"/events/public/{cancelled['id']}")
    assert cancelled_detail.status_code == 404
    assert cancelled_detail.json["error"]["message"] == "Event not found."


def test_public_listing_shows_only_upcoming_and_active_events(client, make_event):
    upcoming = make_event(title="Next Month")
    running = make_event(title="Today", starts_in=timedelta(hours=-1), lasts=timedelta(hours=4))
    finished = make_event(title="Last Year", starts_in=timedelta(days=-30))

    listed = [event["id"] for event in client.get("/events/public").json["events"]]
    assert sorted(listed) == sorted([upcoming["id"], running["id"]])

    detail = client.get(f"/events/public/{finished['id']}")
    assert detail.status_code == 200
    assert detail.json["event"]["status"] == "COMPLETED"


def test_bare_date_event_stays_active_through_its_last_day(client, make_event):
    today = utcnow().date().isoformat()
    event = make_event(start_date=today, end_date=today)
    assert event["status"] == "ACTIVE"

    response = client.post(f"/events/{event['id']}/cancel", headers=STAFF)
    assert response.status_code == 200
    assert response.json["event"]["status"] == "CANCELLED"


def test_list_filters_by_derived_status(client, make_event):
    upcoming = make_event()
    make_event(publish=False)
    response = client.get("/events?status=upcoming", headers=STAFF)
    assert [event["id"] for event in response.json["events"]] == [upcoming["id"]]

    bad = client.get("/events?status=SOON", headers=STAFF)
    assert bad.status_code == 422


def test_cancel_event(client, make_event):
    event = make_event()
    response = client.post(
        f"/events/{event['id']}/cancel", json={"reason": "Monsoon flooding"}, headers=STAFF
    )
    assert response.status_code == 200
    cancelled = response.json["event"]
    assert cancelled["status"] == "CANCELLED"
    assert cancelled["cancellation_reason"] == "Monsoon flooding"
    assert cancelled["is_registration_open"] is False

    again = client.post(f"/events/{event['id']}/cancel", headers=STAFF)
    assert again.status_code == 200
    assert again.json["event"]["cancelled_at"] == cancelled["cancelled_at"]

    publish = client.post(f"/events/{event['id']}/publish", headers=STAFF)
    assert publish.status_code == 409


def test_completed_event_cannot_be_cancelled_or_unpublished(client, make_event):
    event = make_event(starts_in=timedelta(days=-5), lasts=timedelta(days=1))
    response = client.post(f"/events/{event['id']}/cancel", headers=STAFF)
    assert response.status_code == 409
    assert response.json["error"]["details"] == {"current": "COMPLETED", "attempted": "cancel"}
    assert client.post(f"/events/{event['id']}/unpublish", headers=STAFF).status_code == 409


def test_unpublish_returns_event_to_draft(client, make_event):
    event = make_event()
    response = client.post(f"/events/{event['id']}/unpublish", headers=STAFF)
    assert response.status_code == 200
    assert response.json["event"]["status"] == "DRAFT"


def test_duplicate_event(client, make_event):
    original = make_event()
    response = client.post(f"/events/{original['id']}/duplicate", headers=STAFF)
    assert response.status_code == 201
    copy = response.json["event"]
    assert copy["id"] != original["id"]
    assert copy["title"] == "Annual Cardiology Summit (Copy)"
    assert copy["status"] == "DRAFT"
    assert [s["name"] for s in copy["speakers"]] == [s["name"] for s in original["speakers"]]

    original_end = datetime.fromisoformat(original["end_date"])
    copy_start = datetime.fromisoformat(copy["start_date"])
    assert (copy_start - original_end).days >= 89


def test_capacity_cannot_drop_below_taken_seats(client, make_event, staff_register):
    event = make_event(capacity=3)
    staff_register(event["id"], "a@test.org")
    staff_register(event["id"], "b@test.org")

    response = client.patch(f"/events/{event['id']}", json={"capacity": 1}, headers=STAFF)
    assert response.status_code == 422
    assert "capacity" in response.json["error"]["details"]

    response = client.patch(f"/events/{event['id']}", json={"capacity": 2}, headers=STAFF)
    assert response.status_code == 200
    capacity = client.get(f"/events/{event['id']}/capacity", headers=STAFF).json["capacity"]
    assert capacity["taken"] == 2
    assert capacity["available"] == 0
    assert capacity["label"] == "Sold Out"


def test_update_rejects_inverted_window(client, make_event):
    event = make_event(publish=False)
    response = client.patch(
        f"/events/{event['id']}",
        json={"end_date": "2001-01-01T00:00:00"},
        headers=STAFF,
    )
    assert response.status_code == 422


def test_delete_event(client, make_event, staff_register):
    busy = make_event()
    staff_register(busy["id"], "a@test.org")
    response = client.delete(f"/events/{busy['id']}", headers=STAFF)
    assert response.status_code == 422
    assert response.json["error"]["message"] == "Event cannot be deleted."

    idle = make_event(publish=False)
    assert client.delete(f"/events/{idle['id']}", headers=STAFF).status_code == 200
    assert client.get(f"/events/{idle['id']}", headers=STAFF).status_code == 404


def test_speaker_management(client, make_event):
    event = make_event(publish=False)
    response = client.post(
        f"/events/{event['id']}/speakers",
        json={"name": "Dr. Sana Khan", "institution": "AIIMS"},
        headers=STAFF,
    )
    assert response.status_code == 201
    speaker_id = response.json["speaker"]["id"]

    speakers = client.get(f"/events/{event['id']}/speakers", headers=STAFF).json["speakers"]
    assert {s["name"] for s in speakers} == {"Dr. Arjun Rao", "Dr. Sana Khan"}

    removed = client.delete(f"/events/{event['id']}/speakers/{speaker_id}", headers=STAFF)
    assert removed.status_code == 200
    missing = client.delete(f"/events/{event['id']}/speakers/{speaker_id}", headers=STAFF)
    assert missing.status_code == 404


def test_unknown_event_is_404(client):
    response = client.get("/events/does-not-exist", headers=STAFF)
    assert response.status_code == 404
    assert response.json["error"]["message"] == "Event not found."
