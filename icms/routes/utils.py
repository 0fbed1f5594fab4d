"""Shared route utilities."""
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from flask import jsonify, request


def error_response(status: int, message: str, details: Optional[Any] = None):
    payload = {"error": {"code": status, "message": message}}
    if details is not None:
        payload["error"]["details"] = details
    return jsonify(payload), status


def read_json_body(*, required: bool = True) -> Tuple[Optional[Dict[str, Any]], Optional[Any]]:
    """Return ``(payload, None)`` or ``(None, error_response)`` for the request body."""

    if not request.data and not required:
        return {}, None
    if not request.is_json:
        return None, error_response(415, "Content-Type 'application/json' required.")

    data = request.get_json(silent=True)
    if data is None:
        return None, error_response(400, "Invalid or unparsable JSON.")
    if not isinstance(data, dict):
        return None, error_response(400, "Invalid JSON payload: a JSON object is required.")
    return data, None
