"""Routes for certificate generation, lifecycle and verification."""
from __future__ import annotations

from flask import Blueprint, jsonify, request

from icms.routes.auth import current_actor, require_permission
from icms.routes.dependencies import get_certificate_service
from icms.routes.utils import read_json_body

certificates_bp = Blueprint("certificates", __name__)


@certificates_bp.get("/certificates/verify/<code>")
def verify_certificate(code: str):
    return jsonify(get_certificate_service().verify(code))


@certificates_bp.get("/certificates")
@require_permission("certificates.view")
def list_certificates():
    certificates = get_certificate_service().list_certificates(
        event_id=request.args.get("event_id"),
        status=request.args.get("status"),
        search=request.args.get("search"),
    )
    return jsonify({"certificates": certificates})


@certificates_bp.post("/certificates")
@require_permission("certificates.create")
def create_certificate():
    data, error = read_json_body()
    if error:
        return error
    certificate = get_certificate_service().create(data, actor=current_actor())
    return jsonify({"message": "Certificate created", "certificate": certificate}), 201


@certificates_bp.post("/certificates/bulk")
@require_permission("certificates.create")
def bulk_create_certificates():
    data, error = read_json_body()
    if error:
        return error
    result = get_certificate_service().bulk_create(data, actor=current_actor())
    return jsonify(result), 201


@certificates_bp.get("/certificates/<certificate_id>")
@require_permission("certificates.view")
def get_certificate(certificate_id: str):
    return jsonify({"certificate": get_certificate_service().get_certificate(certificate_id)})


@certificates_bp.post("/certificates/<certificate_id>/issue")
@require_permission("certificates.issue")
def issue_certificate(certificate_id: str):
    certificate = get_certificate_service().issue(certificate_id, actor=current_actor())
    return jsonify({"message": "Certificate issued", "certificate": certificate})


@certificates_bp.post("/certificates/<certificate_id>/revoke")
@require_permission("certificates.edit")
def revoke_certificate(certificate_id: str):
    data, error = read_json_body(required=False)
    if error:
        return error
    certificate = get_certificate_service().revoke(
        certificate_id, data.get("reason"), actor=current_actor()
    )
    return jsonify({"message": "Certificate revoked", "certificate": certificate})


@certificates_bp.post("/certificates/<certificate_id>/regenerate")
@require_permission("certificates.issue")
def regenerate_certificate(certificate_id: str):
    certificate = get_certificate_service().regenerate(certificate_id, actor=current_actor())
    return jsonify({"message": "Certificate regenerated", "certificate": certificate}), 201


@certificates_bp.get("/certificates/<certificate_id>/download")
@require_permission("certificates.view")
def download_certificate(certificate_id: str):
    return jsonify(get_certificate_service().download(certificate_id))
