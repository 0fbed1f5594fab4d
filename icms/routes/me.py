"""Self-service routes returning only the caller's own records."""
from __future__ import annotations

from flask import Blueprint, jsonify

from icms.routes.auth import EMAIL_HEADER, current_email, require_permission
from icms.routes.dependencies import get_certificate_service, get_registration_service
from icms.routes.utils import error_response

me_bp = Blueprint("me", __name__)


def _missing_identity():
    return error_response(401, "Authentication required.", {"header": EMAIL_HEADER})


@me_bp.get("/users/me/registrations")
@require_permission("registrations.own")
def my_registrations():
    email = current_email()
    if not email:
        return _missing_identity()
    return jsonify({"registrations": get_registration_service().list_for_email(email)})


@me_bp.get("/users/me/certificates")
@require_permission("certificates.own")
def my_certificates():
    email = current_email()
    if not email:
        return _missing_identity()
    return jsonify({"certificates": get_certificate_service().list_for_email(email)})
