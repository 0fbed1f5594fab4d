"""Routes for registrations, attendance and waitlist handling."""
from __future__ import annotations

from flask import Blueprint, jsonify, request

from icms.domain.enums import RegistrationStatus
from icms.routes.auth import current_actor, require_permission
from icms.routes.dependencies import get_certificate_service, get_registration_service
from icms.routes.utils import error_response, read_json_body

registrations_bp = Blueprint("registrations", __name__)

# URL action -> (service action, permission)
_ACTIONS = {
    "confirm": ("confirm", "registrations.approve"),
    "attend": ("attend", "registrations.edit"),
    "cancel": ("cancel", "registrations.edit"),
    "mark-paid": ("mark_paid", "registrations.edit"),
    "mark-free": ("mark_free", "registrations.edit"),
}


def _created_response(registration):
    status_code = 202 if registration["status"] == RegistrationStatus.WAITLIST.value else 201
    message = (
        "Event is full; registration placed on the waitlist"
        if status_code == 202
        else "Registration created"
    )
    return jsonify({"message": message, "registration": registration}), status_code


@registrations_bp.post("/registrations/public")
def register_public():
    data, error = read_json_body()
    if error:
        return error
    registration = get_registration_service().register(data)
    return _created_response(registration)


@registrations_bp.get("/registrations")
@require_permission("registrations.view")
def list_registrations():
    registrations = get_registration_service().list_registrations(
        event_id=request.args.get("event_id"),
        status=request.args.get("status"),
        payment_status=request.args.get("payment_status"),
        search=request.args.get("search"),
    )
    return jsonify({"registrations": registrations})


@registrations_bp.post("/registrations")
@require_permission("registrations.create")
def create_registration():
    data, error = read_json_body()
    if error:
        return error
    registration = get_registration_service().register(
        data, staff=True, actor_id=current_actor()
    )
    return _created_response(registration)


@registrations_bp.post("/registrations/bulk")
@require_permission("registrations.edit")
def bulk_registrations():
    data, error = read_json_body()
    if error:
        return error
    result = get_registration_service().bulk(
        data.get("registration_ids") or [], data.get("action") or ""
    )
    return jsonify(result)


@registrations_bp.get("/registrations/<registration_id>")
@require_permission("registrations.view")
def get_registration(registration_id: str):
    registration = get_registration_service().get_registration(registration_id)
    return jsonify({"registration": registration})


@registrations_bp.get("/registrations/<registration_id>/certificate-eligibility")
@require_permission("registrations.view")
def certificate_eligibility(registration_id: str):
    return jsonify({"eligibility": get_certificate_service().eligibility(registration_id)})


@registrations_bp.post("/registrations/<registration_id>/<action>")
def registration_action(registration_id: str, action: str):
    if action not in _ACTIONS:
        return error_response(404, "Unknown registration action.")
    service_action, permission = _ACTIONS[action]

    @require_permission(permission)
    def _run():
        registration = get_registration_service().apply_action(registration_id, service_action)
        return jsonify({"registration": registration})

    return _run()
