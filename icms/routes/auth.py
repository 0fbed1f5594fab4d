"""Request guards built on the role matrix.

Authentication happens upstream; the gateway forwards the caller's role in
``X-User-Role``, identifier in ``X-User-Id`` and email in ``X-User-Email``.
"""
from __future__ import annotations

from functools import wraps
from typing import Callable, Optional

from flask import g, request

from icms.permissions import can
from icms.routes.utils import error_response

ROLE_HEADER = "X-User-Role"
USER_HEADER = "X-User-Id"
EMAIL_HEADER = "X-User-Email"


def current_actor() -> Optional[str]:
    return g.get("actor_id")


def current_email() -> Optional[str]:
    return g.get("user_email")


def require_permission(permission: str) -> Callable:
    def decorator(view: Callable) -> Callable:
        @wraps(view)
        def wrapper(*args, **kwargs):
            role = (request.headers.get(ROLE_HEADER) or "").strip()
            if not role:
                return error_response(401, "Authentication required.")
            if not can(role, permission):
                return error_response(403, "Insufficient role.", {"permission": permission})
            g.role = role.upper()
            g.actor_id = request.headers.get(USER_HEADER) or None
            g.user_email = (request.headers.get(EMAIL_HEADER) or "").strip().lower() or None
            return view(*args, **kwargs)

        return wrapper

    return decorator
