from datetime import timedelta

from conftest import STAFF


def attendee_headers(email):
    return {"X-User-Role": "ATTENDEE", "X-User-Id": "user-7", "X-User-Email": email}


def test_attendees_cannot_list_other_peoples_registrations(client, make_event, register):
    event = make_event()
    register(event["id"], "someone.else@test.org")
    headers = attendee_headers("me@test.org")

    response = client.get("/registrations", headers=headers)
    assert response.status_code == 403
    assert response.json["error"]["details"] == {"permission": "registrations.view"}

    other = client.get("/registrations?search=someone", headers=headers)
    assert other.status_code == 403


def test_my_registrations_only_returns_the_callers_records(client, make_event, register):
    first = make_event(title="Cardiology Summit")
    second = make_event(title="Neurology Workshop")
    register(first["id"], "me@test.org", "Dr. Me")
    register(second["id"], "ME@test.org", "Dr. Me")
    register(first["id"], "someone.else@test.org")

    response = client.get("/users/me/registrations", headers=attendee_headers(" Me@Test.org "))
    assert response.status_code == 200
    registrations = response.json["registrations"]
    assert {item["email"] for item in registrations} == {"me@test.org"}
    assert sorted(item["event_title"] for item in registrations) == [
        "Cardiology Summit",
        "Neurology Workshop",
    ]


def test_my_certificates_only_returns_the_callers_certificates(
    client, make_event, staff_register
):
    event = make_event(starts_in=timedelta(days=-3))
    codes = {}
    for email in ("me@test.org", "someone.else@test.org"):
        registration = staff_register(event["id"], email)
        client.post(f"/registrations/{registration['id']}/attend", headers=STAFF)
        created = client.post(
            "/certificates",
            json={"registration_id": registration["id"], "issue": True},
            headers=STAFF,
        )
        assert created.status_code == 201
        codes[email] = created.json["certificate"]["certificate_code"]

    response = client.get("/users/me/certificates", headers=attendee_headers("me@test.org"))
    assert response.status_code == 200
    certificates = response.json["certificates"]
    assert [item["certificate_code"] for item in certificates] == [codes["me@test.org"]]


def test_self_service_routes_need_an_identity(client):
    assert client.get("/users/me/registrations").status_code == 401

    response = client.get("/users/me/certificates", headers={"X-User-Role": "ATTENDEE"})
    assert response.status_code == 401
    assert response.json["error"]["details"] == {"header": "X-User-Email"}

    unknown_role = client.get("/users/me/registrations", headers={"X-User-Role": "JANITOR"})
    assert unknown_role.status_code == 403
