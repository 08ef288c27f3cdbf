"""Flask app factory — creates and configures the JSON API application."""

from __future__ import annotations

from flask import Flask

from claudedash.config import DashConfig
from claudedash.service import QueryService


def create_app(config: DashConfig, service: QueryService | None = None) -> Flask:
    """Create the Flask app with its QueryService and registered routes.

    Args:
        config: DashConfig with log_dir, day_boundary, etc.
        service: Optional pre-built service (tests inject one).

    Returns:
        Configured Flask application.
    """
    app = Flask(__name__)

    app.extensions["claudedash"] = service or QueryService.from_config(config)

    from claudedash.web.routes import bp

    app.register_blueprint(bp)

    return app
