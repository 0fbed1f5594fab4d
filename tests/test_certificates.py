import base64
from datetime import timedelta

import pytest

from conftest import STAFF, StubRenderer
from icms.database import get_session
from icms.services.certificates import CertificateService


@pytest.fixture
def completed_event(make_event):
    return make_event(starts_in=timedelta(days=-3), lasts=timedelta(days=1), cme_credits=6)


@pytest.fixture
def attendee(client, completed_event, staff_register):
    def _attendee(email="dr.patel@test.org", name="Dr. Nisha Patel"):
        registration = staff_register(completed_event["id"], email, name=name)
        response = client.post(f"/registrations/{registration['id']}/attend", headers=STAFF)
        assert response.status_code == 200
        return response.json["registration"]

    return _attendee


def create_certificate(client, registration_id, **extra):
    payload = {"registration_id": registration_id}
    payload.update(extra)
    return client.post("/certificates", json=payload, headers=STAFF)


def test_eligibility_explains_the_gate(client, completed_event, staff_register, attendee):
    confirmed = staff_register(completed_event["id"], "confirmed@test.org")
    response = client.get(
        f"/registrations/{confirmed['id']}/certificate-eligibility", headers=STAFF
    )
    assert response.status_code == 200
    eligibility = response.json["eligibility"]
    assert eligibility["allowed"] is False
    assert eligibility["reason"] == "not attended"
    assert eligibility["listed"] is True
    assert eligibility["event_status"] == "COMPLETED"

    attended = attendee()
    eligibility = client.get(
        f"/registrations/{attended['id']}/certificate-eligibility", headers=STAFF
    ).json["eligibility"]
    assert eligibility == {
        "allowed": True,
        "reason": None,
        "warnings": [],
        "registration_id": attended["id"],
        "registration_status": "ATTENDED",
        "event_status": "COMPLETED",
        "listed": True,
    }


def test_only_attended_registrations_get_certificates(client, completed_event, staff_register):
    confirmed = staff_register(completed_event["id"], "confirmed@test.org")
    response = create_certificate(client, confirmed["id"])
    assert response.status_code == 409
    assert response.json["error"]["details"] == {"current": "CONFIRMED", "attempted": "generate"}


def test_create_certificate_once(client, attendee):
    registration = attendee()
    response = create_certificate(client, registration["id"])
    assert response.status_code == 201
    certificate = response.json["certificate"]
    assert certificate["status"] == "PENDING"
    assert certificate["certificate_code"].startswith("ICMS-")
    assert certificate["recipient_name"] == "Dr. Nisha Patel"
    assert certificate["cme_credits"] is not None
    assert certificate["warnings"] == []

    again = create_certificate(client, registration["id"])
    assert again.status_code == 409
    assert "regenerate" in again.json["error"]["message"]

    detail = client.get(f"/registrations/{registration['id']}", headers=STAFF).json
    assert detail["registration"]["certificate_id"] == certificate["id"]


def test_missing_signatories_is_a_warning(client, make_event, staff_register):
    event = make_event(
        starts_in=timedelta(days=-3), signatory1_name=None, signatory1_title=None
    )
    registration = staff_register(event["id"], "solo@test.org")
    client.post(f"/registrations/{registration['id']}/attend", headers=STAFF)

    response = create_certificate(client, registration["id"], issue=True)
    assert response.status_code == 201
    assert response.json["certificate"]["status"] == "ISSUED"
    assert response.json["certificate"]["warnings"] == ["no signatories"]


def test_issue_and_revoke(client, attendee, notifier):
    registration = attendee()
    certificate = create_certificate(client, registration["id"]).json["certificate"]
    url = f"/certificates/{certificate['id']}"

    pending_revoke = client.post(f"{url}/revoke", json={"reason": "typo"}, headers=STAFF)
    assert pending_revoke.status_code == 409

    issued = client.post(f"{url}/issue", headers=STAFF)
    assert issued.status_code == 200
    assert issued.json["certificate"]["status"] == "ISSUED"
    assert "certificate.issued" in notifier.templates_for("dr.patel@test.org")
    reissued = client.post(f"{url}/issue", headers=STAFF)
    assert reissued.json["certificate"]["issued_at"] == issued.json["certificate"]["issued_at"]

    missing_reason = client.post(f"{url}/revoke", json={"reason": "  "}, headers=STAFF)
    assert missing_reason.status_code == 422
    assert "reason" in missing_reason.json["error"]["details"]

    revoked = client.post(f"{url}/revoke", json={"reason": "Attendance disputed"}, headers=STAFF)
    assert revoked.status_code == 200
    assert revoked.json["certificate"]["status"] == "REVOKED"
    assert revoked.json["certificate"]["revoked_reason"] == "Attendance disputed"

    twice = client.post(f"{url}/revoke", json={"reason": "again"}, headers=STAFF)
    assert twice.status_code == 409
    assert twice.json["error"]["message"] == "Certificate is already revoked."
    assert client.post(f"{url}/issue", headers=STAFF).status_code == 409
    assert client.post(f"{url}/regenerate", headers=STAFF).status_code == 409

    history = client.get(url, headers=STAFF).json["certificate"]["history"]
    assert [entry["action"] for entry in history] == ["CREATED", "ISSUED", "REVOKED"]
    assert history[-1]["actor"] == "staff-1"

    # A revoked certificate no longer blocks a fresh one.
    assert create_certificate(client, registration["id"]).status_code == 201


def test_regenerate_replaces_the_certificate(client, attendee):
    registration = attendee()
    old = create_certificate(client, registration["id"], issue=True).json["certificate"]

    response = client.post(f"/certificates/{old['id']}/regenerate", headers=STAFF)
    assert response.status_code == 201
    new = response.json["certificate"]
    assert new["id"] != old["id"]
    assert new["certificate_code"] != old["certificate_code"]
    assert new["status"] == "ISSUED"

    assert client.get(f"/certificates/{old['id']}", headers=STAFF).status_code == 404
    assert client.get(f"/certificates/verify/{old['certificate_code']}").status_code == 404

    history = client.get(f"/certificates/{new['id']}", headers=STAFF).json["certificate"]["history"]
    assert history[-1]["action"] == "REGENERATED"
    assert history[-1]["notes"] == f"replaces {old['certificate_code']}"

    listed = client.get(
        f"/certificates?event_id={registration['event_id']}", headers=STAFF
    ).json["certificates"]
    assert [item["id"] for item in listed] == [new["id"]]


def test_verify_is_public(client, attendee):
    registration = attendee()
    certificate = create_certificate(client, registration["id"], issue=True).json["certificate"]

    response = client.get(f"/certificates/verify/{certificate['certificate_code'].lower()}")
    assert response.status_code == 200
    body = response.json
    assert body["valid"] is True
    assert body["verification_url"] == (
        f"https://icms.test/certificates/verify/{certificate['certificate_code']}"
    )
    assert base64.b64decode(body["qr_code"]).startswith(b"\x89PNG")
    assert body["certificate"]["event"]["title"] == "Annual Cardiology Summit"
    assert "recipient_email" not in body["certificate"]

    client.post(
        f"/certificates/{certificate['id']}/revoke", json={"reason": "fraud"}, headers=STAFF
    )
    revoked = client.get(f"/certificates/verify/{certificate['certificate_code']}")
    assert revoked.status_code == 200
    assert revoked.json["valid"] is False
    assert revoked.json["certificate"]["revoked_reason"] == "fraud"

    assert client.get("/certificates/verify/ICMS-NOPE-000000").status_code == 404


def test_download_goes_through_the_renderer(client, attendee, renderer):
    registration = attendee()
    certificate = create_certificate(client, registration["id"]).json["certificate"]
    url = f"/certificates/{certificate['id']}/download"

    assert client.get(url, headers=STAFF).status_code == 409

    client.post(f"/certificates/{certificate['id']}/issue", headers=STAFF)
    response = client.get(url, headers=STAFF)
    assert response.status_code == 200
    assert response.json["artifact"]["content_type"] == "application/pdf"
    assert response.json["certificate"]["download_count"] == 1
    assert renderer.calls[0]["signatories"] == [
        {"name": "Dr. Meera Iyer", "title": "Course Director"}
    ]

    renderer.fail = True
    failed = client.get(url, headers=STAFF)
    assert failed.status_code == 502
    count = client.get(f"/certificates/{certificate['id']}", headers=STAFF).json
    assert count["certificate"]["download_count"] == 1


def test_bulk_create_skips_ineligible_registrations(
    client, completed_event, staff_register, attendee
):
    first = attendee("one@test.org", "Dr. One")
    second = attendee("two@test.org", "Dr. Two")
    confirmed = staff_register(completed_event["id"], "three@test.org")
    create_certificate(client, second["id"])

    response = client.post(
        "/certificates/bulk",
        json={
            "event_id": completed_event["id"],
            "registration_ids": [first["id"], second["id"], confirmed["id"]],
        },
        headers=STAFF,
    )
    assert response.status_code == 201
    assert [item["registration_id"] for item in response.json["created"]] == [first["id"]]
    skipped = {item["registration_id"]: item["reason"] for item in response.json["skipped"]}
    assert skipped == {second["id"]: "certificate exists", confirmed["id"]: "not attended"}


def test_bulk_create_defaults_to_attended_registrations(client, completed_event, attendee):
    attendee("one@test.org")
    attendee("two@test.org")
    response = client.post(
        "/certificates/bulk", json={"event_id": completed_event["id"]}, headers=STAFF
    )
    assert response.status_code == 201
    assert len(response.json["created"]) == 2
    assert all(item["status"] == "ISSUED" for item in response.json["created"])


def test_certificate_permissions(client, attendee):
    registration = attendee()
    denied = client.post(
        "/certificates",
        json={"registration_id": registration["id"]},
        headers={"X-User-Role": "REGISTRATION_MANAGER"},
    )
    assert denied.status_code == 403
    allowed = client.post(
        "/certificates",
        json={"registration_id": registration["id"]},
        headers={"X-User-Role": "CERTIFICATE_MANAGER"},
    )
    assert allowed.status_code == 201


def test_concurrent_downloads_are_all_counted(client, attendee):
    registration = attendee()
    certificate = create_certificate(client, registration["id"], issue=True).json["certificate"]

    session_a = get_session()
    session_b = get_session()
    try:
        service_a = CertificateService(session_a, renderer=StubRenderer())
        service_b = CertificateService(session_b, renderer=StubRenderer())
        # Session A holds a stale copy while B records its download.
        assert service_a.get_certificate(certificate["id"])["download_count"] == 0
        assert service_b.download(certificate["id"])["certificate"]["download_count"] == 1
        assert service_a.download(certificate["id"])["certificate"]["download_count"] == 2
    finally:
        session_a.close()
        session_b.close()


def test_attendees_cannot_browse_staff_certificate_routes(client, attendee):
    registration = attendee()
    certificate = create_certificate(client, registration["id"], issue=True).json["certificate"]
    attendee_headers = {"X-User-Role": "ATTENDEE", "X-User-Email": "dr.patel@test.org"}

    assert client.get("/certificates", headers=attendee_headers).status_code == 403
    detail = client.get(f"/certificates/{certificate['id']}", headers=attendee_headers)
    assert detail.status_code == 403
    download = client.get(f"/certificates/{certificate['id']}/download", headers=attendee_headers)
    assert download.status_code == 403
