"""Centralised configuration management for integrations and resilience."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Optional


@dataclass(frozen=True)
class ResilienceConfig:
    """Retry and circuit breaker settings for outbound integrations."""

    max_attempts: int = 3
    backoff_factor: float = 0.5
    max_backoff: float = 5.0
    circuit_breaker_failure_threshold: int = 5
    circuit_breaker_reset_timeout: float = 30.0


@dataclass(frozen=True)
class ServiceConfig:
    """Configuration for a downstream dependency."""

    name: str
    base_url: str
    timeout: float = 5.0
    secret: Optional[str] = None
    resilience: ResilienceConfig = field(default_factory=ResilienceConfig)


@dataclass(frozen=True)
class AppSettings:
    """Settings that are not tied to a downstream service."""

    public_url: str = "http://localhost:5003"
    log_level: str = "INFO"
    notification_workers: int = 2


@dataclass(frozen=True)
class AppConfig:
    """Aggregate application configuration."""

    services: Dict[str, ServiceConfig]
    settings: AppSettings = field(default_factory=AppSettings)

    def service(self, name: str) -> ServiceConfig:
        try:
            return self.services[name]
        except KeyError as exc:
            raise KeyError(f"Unknown service configuration requested: {name}") from exc


def _get_env_name(service_name: str, key: str) -> str:
    return f"{service_name.upper()}_{key.upper()}"


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _load_resilience(service_name: str) -> ResilienceConfig:
    return ResilienceConfig(
        max_attempts=_get_int(_get_env_name(service_name, "MAX_ATTEMPTS"), 3),
        backoff_factor=_get_float(_get_env_name(service_name, "BACKOFF_FACTOR"), 0.5),
        max_backoff=_get_float(_get_env_name(service_name, "MAX_BACKOFF"), 5.0),
        circuit_breaker_failure_threshold=_get_int(
            _get_env_name(service_name, "CB_FAILURE_THRESHOLD"), 5
        ),
        circuit_breaker_reset_timeout=_get_float(
            _get_env_name(service_name, "CB_RESET_TIMEOUT"), 30.0
        ),
    )


def _load_service_config(
    service_name: str,
    *,
    default_url: str,
    default_timeout: float = 5.0,
) -> ServiceConfig:
    base_url = os.getenv(_get_env_name(service_name, "URL"), default_url)
    secret = os.getenv(_get_env_name(service_name, "SECRET"))

    return ServiceConfig(
        name=service_name,
        base_url=base_url,
        timeout=_get_float(_get_env_name(service_name, "TIMEOUT"), default_timeout),
        secret=secret,
        resilience=_load_resilience(service_name),
    )


def _load_settings() -> AppSettings:
    return AppSettings(
        public_url=os.getenv("ICMS_PUBLIC_URL", "http://localhost:5003").rstrip("/"),
        log_level=os.getenv("ICMS_LOG_LEVEL", "INFO").upper(),
        notification_workers=max(1, _get_int("ICMS_NOTIFICATION_WORKERS", 2)),
    )


@lru_cache()
def get_config() -> AppConfig:
    """Return the lazily initialised application configuration."""

    services = {
        "email_service": _load_service_config(
            "email_service", default_url="http://email-service.local/api"
        ),
        "rendering_service": _load_service_config(
            "rendering_service",
            default_url="http://rendering-service.local/api",
            default_timeout=15.0,
        ),
    }
    return AppConfig(services=services, settings=_load_settings())


def get_service_config(service_name: str) -> ServiceConfig:
    """Shortcut to retrieve an individual service configuration."""

    config = get_config()
    return config.service(service_name)


def get_settings() -> AppSettings:
    return get_config().settings
