from datetime import timedelta
from decimal import Decimal

from conftest import STAFF


def test_dashboard_stats(client, make_event, register, staff_register):
    upcoming = make_event(title="Upcoming Summit", capacity=4)
    make_event(title="Draft Workshop", publish=False)
    make_event(title="Past Symposium", starts_in=timedelta(days=-10))

    paid = register(upcoming["id"], "paid@test.org").json["registration"]
    client.post(f"/registrations/{paid['id']}/mark-paid", headers=STAFF)
    staff_register(upcoming["id"], "seated@test.org")
    cancelled = register(upcoming["id"], "gone@test.org").json["registration"]
    client.post(f"/registrations/{cancelled['id']}/cancel", headers=STAFF)

    response = client.get("/dashboard/stats", headers={"X-User-Role": "CERTIFICATE_MANAGER"})
    assert response.status_code == 200
    stats = response.json["stats"]

    overview = stats["overview"]
    assert overview["total_events"] == 3
    assert overview["total_registrations"] == 3
    assert overview["total_certificates"] == 0
    assert overview["monthly_registrations"] == 3
    assert Decimal(overview["total_revenue"]) == Decimal("150")

    assert stats["events_by_status"]["UPCOMING"] == 1
    assert stats["events_by_status"]["DRAFT"] == 1
    assert stats["events_by_status"]["COMPLETED"] == 1
    assert stats["events_by_status"]["ACTIVE"] == 0

    assert stats["registrations_by_status"] == {
        "PENDING": 1,
        "CONFIRMED": 1,
        "WAITLIST": 0,
        "ATTENDED": 0,
        "CANCELLED": 1,
    }
    assert Decimal(stats["revenue_by_payment_status"]["PAID"]) == Decimal("150")

    assert [event["title"] for event in stats["upcoming_events"]] == ["Upcoming Summit"]
    assert stats["upcoming_events"][0]["capacity_fill"]["taken"] == 1
    assert len(stats["recent_registrations"]) == 3


def test_dashboard_requires_a_role(client):
    assert client.get("/dashboard/stats").status_code == 401
    attendee = client.get("/dashboard/stats", headers={"X-User-Role": "ATTENDEE"})
    assert attendee.status_code == 403
