"""Dashboard statistics route."""
from __future__ import annotations

from flask import Blueprint, jsonify

from icms.routes.auth import require_permission
from icms.routes.dependencies import get_dashboard_service

dashboard_bp = Blueprint("dashboard", __name__)


@dashboard_bp.get("/dashboard/stats")
@require_permission("dashboard.view")
def dashboard_stats():
    return jsonify({"stats": get_dashboard_service().stats()})
