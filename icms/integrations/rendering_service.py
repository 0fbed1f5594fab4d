"""Client for the certificate rendering service."""
from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from icms.config import ServiceConfig, get_service_config

from .base import HttpClient


class RenderingServiceClient(HttpClient):
    """Turn a certificate snapshot into a downloadable artifact.

    The service answers with a descriptor such as
    ``{"url": ..., "content_type": "application/pdf", "expires_at": ...}``;
    the artifact itself never passes through this process.
    """

    def __init__(
        self,
        *,
        config: Optional[ServiceConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if config is None:
            config = get_service_config("rendering_service")
        super().__init__(config, session=session)

    def render_certificate(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.post("certificates/render", payload)
