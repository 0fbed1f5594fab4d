import os
import sys
from datetime import timedelta
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from icms.database import Base, get_engine, init_engine
from icms.domain.status import utcnow
from icms.integrations.base import IntegrationError
from icms.main import create_app

STAFF = {"X-User-Role": "SUPER_ADMIN", "X-User-Id": "staff-1"}


class StubNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, template, recipient, context):
        if recipient:
            self.sent.append({"template": template, "recipient": recipient, "context": context})

    def templates_for(self, recipient):
        return [item["template"] for item in self.sent if item["recipient"] == recipient]


class StubRenderer:
    def __init__(self):
        self.calls = []
        self.fail = False

    def render_certificate(self, payload):
        if self.fail:
            raise IntegrationError("rendering backend down")
        self.calls.append(payload)
        return {
            "url": f"https://files.test/{payload['certificate_code']}.pdf",
            "content_type": "application/pdf",
        }


def iso(value):
    return value.replace(microsecond=0).isoformat()


@pytest.fixture(scope="session")
def database_url(tmp_path_factory):
    db_file = tmp_path_factory.mktemp("db") / "test.db"
    return f"sqlite:///{db_file}"


@pytest.fixture(scope="session", autouse=True)
def setup_database(database_url):
    os.environ["DATABASE_URL"] = database_url
    engine = init_engine(database_url)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    get_engine().dispose()


@pytest.fixture(autouse=True)
def clean_database():
    engine = get_engine()
    with engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())
    yield


@pytest.fixture
def notifier():
    return StubNotifier()


@pytest.fixture
def renderer():
    return StubRenderer()


@pytest.fixture
def app(database_url, notifier, renderer):
    flask_app = create_app(
        {
            "TESTING": True,
            "DATABASE_URL": database_url,
            "NOTIFIER": notifier,
            "RENDERER": renderer,
            "PUBLIC_URL": "https://icms.test",
        }
    )
    return flask_app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def staff_headers():
    return dict(STAFF)


@pytest.fixture
def make_event(client):
    """Create an event through the API, published unless told otherwise.

    ``starts_in`` and ``lasts`` are timedeltas relative to now.
    """

    def _make(
        *,
        publish=True,
        starts_in=timedelta(days=7),
        lasts=timedelta(days=1),
        **overrides,
    ):
        start = utcnow() + starts_in
        payload = {
            "title": "Annual Cardiology Summit",
            "description": "Two tracks on interventional cardiology.",
            "event_type": "CONFERENCE",
            "start_date": iso(start),
            "end_date": iso(start + lasts),
            "location": "Convention Centre Hall A",
            "city": "Pune",
            "capacity": 10,
            "price": 150,
            "currency": "INR",
            "organizer": "Indian Heart Society",
            "contact_email": "events@heart.test",
            "contact_phone": "+91 20 5550 0100",
            "cme_credits": 4,
            "signatory1_name": "Dr. Meera Iyer",
            "signatory1_title": "Course Director",
            "speakers": [{"name": "Dr. Arjun Rao", "session_title": "Keynote"}],
        }
        payload.update(overrides)
        response = client.post("/events", json=payload, headers=STAFF)
        assert response.status_code == 201, response.json
        event = response.json["event"]
        if publish:
            response = client.post(f"/events/{event['id']}/publish", headers=STAFF)
            assert response.status_code == 200, response.json
            event = response.json["event"]
        return event

    return _make


@pytest.fixture
def register(client):
    """Public self-registration helper returning the raw response."""

    def _register(event_id, email, name=None, **extra):
        payload = {"event_id": event_id, "email": email, "name": name or email.split("@")[0]}
        payload.update(extra)
        return client.post("/registrations/public", json=payload)

    return _register


@pytest.fixture
def staff_register(client):
    """Staff registration helper returning the created registration."""

    def _register(event_id, email, status="CONFIRMED", **extra):
        payload = {
            "event_id": event_id,
            "email": email,
            "name": extra.pop("name", email.split("@")[0].title()),
            "status": status,
        }
        payload.update(extra)
        response = client.post("/registrations", json=payload, headers=STAFF)
        assert response.status_code in (201, 202), response.json
        return response.json["registration"]

    return _register
