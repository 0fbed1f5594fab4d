"""Blueprint registration helpers."""
from __future__ import annotations

from flask import Flask

from .certificates import certificates_bp
from .dashboard import dashboard_bp
from .events import events_bp
from .me import me_bp
from .registrations import registrations_bp

__all__ = ["register_blueprints"]


def register_blueprints(app: Flask) -> None:
    app.register_blueprint(events_bp)
    app.register_blueprint(registrations_bp)
    app.register_blueprint(certificates_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(me_bp)
