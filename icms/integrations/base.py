"""Resilient HTTP plumbing shared by the notification and rendering clients."""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests

from icms.config import ResilienceConfig, ServiceConfig

logger = logging.getLogger(__name__)

# Client errors that still mean "try again later".
_TRANSIENT_STATUS_CODES = frozenset({408, 425, 429})


class IntegrationError(RuntimeError):
    """Raised when a downstream call fails irrecoverably."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """Transport failures and server-side errors are worth another attempt."""

        if self.status_code is None:
            return True
        return self.status_code >= 500 or self.status_code in _TRANSIENT_STATUS_CODES


class CircuitOpenError(IntegrationError):
    """Raised when the circuit breaker prevents further calls."""


@dataclass
class _CircuitBreakerState:
    failures: int = 0
    open_until: float = 0.0


class CircuitBreaker:
    """Stop calling a collaborator after repeated failures.

    Once ``circuit_breaker_failure_threshold`` consecutive calls fail, calls
    are refused for ``circuit_breaker_reset_timeout`` seconds; the next call
    after that window is let through as a fresh attempt.
    """

    def __init__(self, name: str, config: ResilienceConfig) -> None:
        self.name = name
        self.config = config
        self.state = _CircuitBreakerState()

    @property
    def is_open(self) -> bool:
        return bool(self.state.open_until) and time.monotonic() < self.state.open_until

    def allow(self) -> None:
        if self.is_open:
            raise CircuitOpenError(f"{self.name} circuit is open; skipping call.")
        if self.state.open_until:
            self.state = _CircuitBreakerState()

    def record_success(self) -> None:
        self.state = _CircuitBreakerState()

    def record_failure(self) -> None:
        self.state.failures += 1
        if self.state.failures == self.config.circuit_breaker_failure_threshold:
            logger.warning(
                "%s circuit opened after %d consecutive failure(s)",
                self.name,
                self.state.failures,
            )
        if self.state.failures >= self.config.circuit_breaker_failure_threshold:
            self.state.open_until = (
                time.monotonic() + self.config.circuit_breaker_reset_timeout
            )


class HttpClient:
    """JSON-over-HTTP client with retry, backoff and a circuit breaker.

    Rejections the collaborator will repeat on every attempt (most 4xx
    answers) are raised at once and do not count against the breaker.
    """

    def __init__(self, config: ServiceConfig, session: Optional[requests.Session] = None) -> None:
        self.config = config
        self.breaker = CircuitBreaker(config.name, config.resilience)
        self.session = session or requests.Session()

    def post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = self._build_url(path)
        return self._execute(lambda: self._send(url, payload))

    def _send(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.session.post(
                url, json=payload, headers=self._headers(), timeout=self.config.timeout
            )
        except requests.RequestException as exc:
            raise IntegrationError(f"{self.config.name} is unreachable: {exc}") from exc
        if response.status_code >= 400:
            raise IntegrationError(
                f"HTTP {response.status_code} from {url}: {response.text}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except json.JSONDecodeError as exc:
            raise IntegrationError(f"Invalid JSON received from {url}: {response.text}") from exc

    def _execute(self, operation: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
        resilience = self.config.resilience
        max_attempts = max(1, resilience.max_attempts)
        delay = resilience.backoff_factor
        max_backoff = max(delay, resilience.max_backoff)

        for attempt in range(1, max_attempts + 1):
            self.breaker.allow()
            try:
                result = operation()
            except CircuitOpenError:
                raise
            except IntegrationError as exc:
                if not exc.retryable:
                    logger.warning("%s rejected the call: %s", self.config.name, exc)
                    raise
                self.breaker.record_failure()
                if attempt == max_attempts:
                    logger.warning(
                        "%s call failed after %d attempt(s): %s", self.config.name, attempt, exc
                    )
                    raise
                logger.info(
                    "%s call failed (attempt %d/%d), retrying in %.2fs",
                    self.config.name,
                    attempt,
                    max_attempts,
                    delay,
                )
                time.sleep(delay)
                delay = min(delay * 2, max_backoff)
            else:
                self.breaker.record_success()
                return result

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.secret:
            headers["Authorization"] = f"Bearer {self.config.secret}"
        return headers

    def _build_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"
