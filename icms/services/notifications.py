"""Fire-and-forget delivery of lifecycle notifications."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler

from icms.integrations.email_service import EmailServiceClient

__all__ = ["NotificationDispatcher"]

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Submit notification jobs to a background scheduler.

    Callers dispatch only after their transaction has committed. Jobs run on
    a small thread pool; a failing delivery is logged and never reaches the
    request that triggered it.
    """

    def __init__(
        self,
        client: Optional[EmailServiceClient] = None,
        *,
        workers: int = 2,
        scheduler: Optional[BackgroundScheduler] = None,
    ) -> None:
        self._client = client
        self._scheduler = scheduler or BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(max(1, workers))},
            job_defaults={"coalesce": False, "misfire_grace_time": None},
            timezone="UTC",
        )
        self._scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
        self._started = False

    @property
    def client(self) -> EmailServiceClient:
        if self._client is None:
            self._client = EmailServiceClient()
        return self._client

    def start(self) -> None:
        if self._started:
            return
        self._scheduler.start()
        self._started = True

    def shutdown(self, wait: bool = False) -> None:
        if self._started:
            self._scheduler.shutdown(wait=wait)
            self._started = False

    def notify(self, template: str, recipient: Optional[str], context: Dict[str, Any]) -> None:
        if not recipient:
            return
        payload = {"template": template, "recipient": recipient, "context": context}
        self.start()
        self._scheduler.add_job(self._deliver, args=[payload], name=f"notify:{template}")

    def _deliver(self, payload: Dict[str, Any]) -> None:
        self.client.send_notification(payload)
        logger.info("Notification %s sent to %s", payload["template"], payload["recipient"])

    @staticmethod
    def _on_job_error(event: Any) -> None:
        logger.warning("Notification job %s failed: %s", event.job_id, event.exception)
