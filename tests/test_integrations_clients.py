"""Integration client tests relying on mocked HTTP backends."""
from __future__ import annotations

import json

import pytest
import responses

from icms.config import ResilienceConfig, ServiceConfig
from icms.integrations import (
    CircuitOpenError,
    EmailServiceClient,
    IntegrationError,
    RenderingServiceClient,
)


def _service_config(name: str, base_url: str, **resilience) -> ServiceConfig:
    settings = {
        "max_attempts": 1,
        "backoff_factor": 0.01,
        "max_backoff": 0.01,
        "circuit_breaker_failure_threshold": 5,
        "circuit_breaker_reset_timeout": 60,
    }
    settings.update(resilience)
    return ServiceConfig(
        name=name,
        base_url=base_url,
        timeout=1.0,
        secret="s3cret",
        resilience=ResilienceConfig(**settings),
    )


@responses.activate
def test_email_client_posts_notification() -> None:
    responses.add(
        responses.POST,
        "http://mail.test/api/notifications/send",
        json={"status": "queued"},
        status=202,
    )
    client = EmailServiceClient(config=_service_config("email_service", "http://mail.test/api/"))
    result = client.send_notification({"template": "registration.confirmed", "recipient": "a@b.c"})

    assert result == {"status": "queued"}
    request = responses.calls[0].request
    assert request.headers["Authorization"] == "Bearer s3cret"
    assert json.loads(request.body)["template"] == "registration.confirmed"


@responses.activate
def test_rendering_client_returns_artifact_descriptor() -> None:
    responses.add(
        responses.POST,
        "http://render.test/certificates/render",
        json={"url": "https://files.test/ICMS-1.pdf", "content_type": "application/pdf"},
        status=200,
    )
    client = RenderingServiceClient(
        config=_service_config("rendering_service", "http://render.test")
    )
    artifact = client.render_certificate({"certificate_code": "ICMS-1"})
    assert artifact["url"].endswith("ICMS-1.pdf")


@responses.activate
def test_client_retries_then_raises() -> None:
    responses.add(responses.POST, "http://render.test/certificates/render", status=503)
    responses.add(responses.POST, "http://render.test/certificates/render", status=503)
    responses.add(
        responses.POST,
        "http://render.test/certificates/render",
        json={"url": "https://files.test/ok.pdf"},
        status=200,
    )
    client = RenderingServiceClient(
        config=_service_config("rendering_service", "http://render.test", max_attempts=3)
    )
    assert client.render_certificate({})["url"] == "https://files.test/ok.pdf"
    assert len(responses.calls) == 3

    flaky = RenderingServiceClient(
        config=_service_config("rendering_service", "http://render.test", max_attempts=2)
    )
    responses.replace(responses.POST, "http://render.test/certificates/render", status=500)
    with pytest.raises(IntegrationError):
        flaky.render_certificate({})


@responses.activate
def test_circuit_breaker_opens_after_repeated_failures() -> None:
    responses.add(responses.POST, "http://mail.test/notifications/send", status=500)
    client = EmailServiceClient(
        config=_service_config(
            "email_service", "http://mail.test", circuit_breaker_failure_threshold=2
        )
    )
    for _ in range(2):
        with pytest.raises(IntegrationError):
            client.send_notification({})
    assert client.breaker.is_open

    with pytest.raises(CircuitOpenError):
        client.send_notification({})
    assert len(responses.calls) == 2


@responses.activate
def test_client_errors_are_not_retried() -> None:
    responses.add(
        responses.POST,
        "http://render.test/certificates/render",
        json={"error": "unknown template"},
        status=422,
    )
    client = RenderingServiceClient(
        config=_service_config(
            "rendering_service",
            "http://render.test",
            max_attempts=3,
            circuit_breaker_failure_threshold=1,
        )
    )
    with pytest.raises(IntegrationError) as excinfo:
        client.render_certificate({})
    assert excinfo.value.status_code == 422
    assert not excinfo.value.retryable
    assert len(responses.calls) == 1
    assert not client.breaker.is_open


@responses.activate
def test_rate_limited_calls_are_retried() -> None:
    responses.add(responses.POST, "http://mail.test/notifications/send", status=429)
    responses.add(
        responses.POST, "http://mail.test/notifications/send", json={"status": "queued"}
    )
    client = EmailServiceClient(
        config=_service_config("email_service", "http://mail.test", max_attempts=2)
    )
    assert client.send_notification({}) == {"status": "queued"}
    assert len(responses.calls) == 2


@responses.activate
def test_circuit_breaker_lets_a_call_through_after_the_reset_timeout() -> None:
    responses.add(responses.POST, "http://mail.test/notifications/send", status=500)
    client = EmailServiceClient(
        config=_service_config(
            "email_service",
            "http://mail.test",
            circuit_breaker_failure_threshold=1,
            circuit_breaker_reset_timeout=0,
        )
    )
    with pytest.raises(IntegrationError):
        client.send_notification({})
    assert not client.breaker.is_open

    responses.replace(
        responses.POST, "http://mail.test/notifications/send", json={"status": "queued"}
    )
    assert client.send_notification({}) == {"status": "queued"}
    assert client.breaker.state.failures == 0
