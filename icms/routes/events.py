"""Routes for managing events, publication and capacity."""
from __future__ import annotations

from flask import Blueprint, jsonify, request

from icms.routes.auth import require_permission
from icms.routes.dependencies import get_event_service, get_registration_service
from icms.routes.utils import read_json_body

events_bp = Blueprint("events", __name__)


def _list_filters():
    return {
        "event_type": request.args.get("type"),
        "city": request.args.get("city"),
        "search": request.args.get("search"),
        "status": request.args.get("status"),
    }


@events_bp.get("/events/public")
def list_public_events():
    service = get_event_service()
    events = service.list_events(published_only=True, **_list_filters())
    return jsonify({"events": events})


@events_bp.get("/events/public/<event_id>")
def get_public_event(event_id: str):
    service = get_event_service()
    return jsonify({"event": service.get_event(event_id, published_only=True)})


@events_bp.get("/events")
@require_permission("events.view")
def list_events():
    service = get_event_service()
    return jsonify({"events": service.list_events(**_list_filters())})


@events_bp.post("/events")
@require_permission("events.create")
def create_event():
    data, error = read_json_body()
    if error:
        return error

    service = get_event_service()
    created_event = service.create_event(data)
    payload = {
        "message": "Event created",
        "event_id": created_event["id"],
        "event": created_event,
    }
    return jsonify(payload), 201


@events_bp.get("/events/<event_id>")
@require_permission("events.view")
def get_event(event_id: str):
    service = get_event_service()
    return jsonify({"event": service.get_event(event_id)})


@events_bp.patch("/events/<event_id>")
@require_permission("events.edit")
def update_event(event_id: str):
    data, error = read_json_body()
    if error:
        return error

    service = get_event_service()
    updated_event = service.update_event(event_id, data)
    return jsonify({"message": "Event updated", "event": updated_event})


@events_bp.delete("/events/<event_id>")
@require_permission("events.delete")
def delete_event(event_id: str):
    get_event_service().delete_event(event_id)
    return jsonify({"message": "Event deleted"})


@events_bp.get("/events/<event_id>/publish-check")
@require_permission("events.view")
def publish_check(event_id: str):
    return jsonify({"validation": get_event_service().publish_check(event_id)})


@events_bp.post("/events/<event_id>/publish")
@require_permission("events.edit")
def publish_event(event_id: str):
    event = get_event_service().publish(event_id)
    return jsonify({"message": "Event published", "event": event})


@events_bp.post("/events/<event_id>/unpublish")
@require_permission("events.edit")
def unpublish_event(event_id: str):
    event = get_event_service().unpublish(event_id)
    return jsonify({"message": "Event unpublished", "event": event})


@events_bp.post("/events/<event_id>/cancel")
@require_permission("events.edit")
def cancel_event(event_id: str):
    data, error = read_json_body(required=False)
    if error:
        return error
    event = get_event_service().cancel(event_id, data.get("reason"))
    return jsonify({"message": "Event cancelled", "event": event})


@events_bp.post("/events/<event_id>/duplicate")
@require_permission("events.create")
def duplicate_event(event_id: str):
    event = get_event_service().duplicate(event_id)
    return jsonify({"message": "Event duplicated", "event_id": event["id"], "event": event}), 201


@events_bp.get("/events/<event_id>/capacity")
@require_permission("events.view")
def event_capacity(event_id: str):
    return jsonify({"capacity": get_event_service().capacity(event_id)})


@events_bp.post("/events/<event_id>/waitlist/promote")
@require_permission("registrations.approve")
def promote_waitlist(event_id: str):
    promoted = get_registration_service().promote_waitlist(event_id)
    return jsonify({"promoted": promoted, "count": len(promoted)})


@events_bp.get("/events/<event_id>/speakers")
@require_permission("events.view")
def list_speakers(event_id: str):
    return jsonify({"speakers": get_event_service().list_speakers(event_id)})


@events_bp.post("/events/<event_id>/speakers")
@require_permission("events.edit")
def add_speaker(event_id: str):
    data, error = read_json_body()
    if error:
        return error
    speaker = get_event_service().add_speaker(event_id, data)
    return jsonify({"speaker": speaker}), 201


@events_bp.delete("/events/<event_id>/speakers/<speaker_id>")
@require_permission("events.edit")
def remove_speaker(event_id: str, speaker_id: str):
    get_event_service().remove_speaker(event_id, speaker_id)
    return jsonify({"message": "Speaker removed"})
