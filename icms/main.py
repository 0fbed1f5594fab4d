"""ICMS event lifecycle service application entrypoint."""
from __future__ import annotations

import atexit
import logging
from typing import Any, Mapping, Optional

from flask import Flask

from icms.config import get_settings
from icms.database import init_engine
from icms.errors import (
    CapacityConflictError,
    CollaboratorFailure,
    DuplicateRegistrationError,
    IllegalTransitionError,
    LifecycleError,
    NotFoundError,
    RegistrationClosedError,
    ValidationError,
)
from icms.integrations.rendering_service import RenderingServiceClient
from icms.logging_setup import setup_logging
from icms.routes import register_blueprints
from icms.routes.dependencies import cleanup_services
from icms.routes.utils import error_response
from icms.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)


def create_app(config: Optional[Mapping[str, Any]] = None) -> Flask:
    """Build the Flask application.

    ``config`` may override ``DATABASE_URL``, ``NOTIFIER``, ``RENDERER`` and
    ``PUBLIC_URL``; collaborators default to the HTTP clients configured
    from the environment.
    """

    settings = get_settings()
    setup_logging(settings.log_level)

    app = Flask(__name__)
    app.config.update(config or {})
    init_engine(app.config.get("DATABASE_URL"))

    if app.config.get("NOTIFIER") is None:
        dispatcher = NotificationDispatcher(workers=settings.notification_workers)
        atexit.register(dispatcher.shutdown)
        app.config["NOTIFIER"] = dispatcher
    if app.config.get("RENDERER") is None:
        app.config["RENDERER"] = RenderingServiceClient()
    app.config.setdefault("PUBLIC_URL", settings.public_url)

    register_blueprints(app)
    app.teardown_appcontext(cleanup_services)
    register_error_handlers(app)

    @app.get("/health")
    def health():
        return {"status": "ok", "service": "icms-event-lifecycle"}

    logger.info("Application ready")
    return app


def register_error_handlers(flask_app: Flask) -> None:
    @flask_app.errorhandler(ValidationError)
    def handle_validation(exc: ValidationError):
        return error_response(422, exc.message, exc.errors)

    @flask_app.errorhandler(IllegalTransitionError)
    def handle_illegal_transition(exc: IllegalTransitionError):
        return error_response(
            409, exc.message, {"current": exc.current, "attempted": exc.attempted}
        )

    @flask_app.errorhandler(CapacityConflictError)
    def handle_capacity_conflict(exc: CapacityConflictError):
        return error_response(
            409, exc.message, {"event_id": exc.event_id, "capacity": exc.capacity}
        )

    @flask_app.errorhandler(DuplicateRegistrationError)
    def handle_duplicate(exc: DuplicateRegistrationError):
        return error_response(409, exc.message)

    @flask_app.errorhandler(RegistrationClosedError)
    def handle_closed(exc: RegistrationClosedError):
        return error_response(409, exc.message)

    @flask_app.errorhandler(CollaboratorFailure)
    def handle_collaborator(exc: CollaboratorFailure):
        logger.error("Collaborator failure: %s", exc.message)
        return error_response(502, exc.message)

    @flask_app.errorhandler(LifecycleError)
    def handle_lifecycle(exc: LifecycleError):
        return error_response(400, exc.message)

    @flask_app.errorhandler(NotFoundError)
    def handle_not_found(exc: NotFoundError):
        return error_response(404, f"{exc.resource} not found.", {"id": exc.identifier})

    @flask_app.errorhandler(404)
    def handle_404(e):
        return error_response(404, "Resource not found.")

    @flask_app.errorhandler(405)
    def handle_405(e):
        return error_response(405, "Method not allowed for this resource.")

    @flask_app.errorhandler(500)
    def handle_500(e):
        return error_response(500, "Internal server error.")


if __name__ == "__main__":
    create_app().run(debug=True, port=5003)
