import threading

from icms.integrations.base import IntegrationError
from icms.services.notifications import NotificationDispatcher


class RecordingClient:
    def __init__(self, fail=False):
        self.payloads = []
        self.fail = fail
        self.called = threading.Event()

    def send_notification(self, payload):
        self.payloads.append(payload)
        self.called.set()
        if self.fail:
            raise IntegrationError("smtp relay down")
        return {"status": "queued"}


def test_notifications_are_delivered_in_the_background():
    client = RecordingClient()
    dispatcher = NotificationDispatcher(client, workers=1)
    try:
        dispatcher.notify(
            "registration.confirmed", "asha@clinic.test", {"registration_id": "r1"}
        )
        assert client.called.wait(timeout=5)
    finally:
        dispatcher.shutdown(wait=True)

    assert client.payloads == [
        {
            "template": "registration.confirmed",
            "recipient": "asha@clinic.test",
            "context": {"registration_id": "r1"},
        }
    ]


def test_delivery_failures_stay_in_the_worker():
    client = RecordingClient(fail=True)
    dispatcher = NotificationDispatcher(client, workers=1)
    try:
        dispatcher.notify("certificate.issued", "a@test.org", {})
        assert client.called.wait(timeout=5)
    finally:
        dispatcher.shutdown(wait=True)
    assert len(client.payloads) == 1


def test_missing_recipient_is_skipped():
    client = RecordingClient()
    dispatcher = NotificationDispatcher(client, workers=1)
    dispatcher.notify("registration.received", None, {})
    dispatcher.notify("registration.received", "", {})
    dispatcher.shutdown(wait=True)
    assert client.payloads == []
