"""Clients for the collaborating ICMS services."""

from .base import CircuitOpenError, IntegrationError
from .email_service import EmailServiceClient
from .rendering_service import RenderingServiceClient

__all__ = [
    "CircuitOpenError",
    "EmailServiceClient",
    "IntegrationError",
    "RenderingServiceClient",
]
