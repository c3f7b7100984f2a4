"""
Web server — Flask app factory.

Serves the JSON API and the SSE event stream the desktop front-end
consumes.  The installer runs on its own loop thread
(``InstallerRuntime``); route handlers only marshal calls onto it.
"""

from __future__ import annotations

import logging

from flask import Flask

from src.core.models.settings import InstallerSettings
from src.core.services.event_bus import EventBus
from src.core.services.installer.orchestration.runtime import InstallerRuntime
from src.core.services.mongo_ops import MongoConnection

logger = logging.getLogger(__name__)


def create_app(
    settings: InstallerSettings | None = None,
    *,
    runtime: InstallerRuntime | None = None,
    bus: EventBus | None = None,
    connection: MongoConnection | None = None,
    auto_connect: bool = True,
) -> Flask:
    """Create and configure the Flask application.

    Args:
        settings: Installer settings (defaults if omitted).
        runtime: Installer runtime; built for this machine if omitted.
        bus: Event bus streamed at ``/api/events``.
        connection: Database connection for the ``/api/db`` routes.
        auto_connect: Try to connect to the configured server at startup.

    Returns:
        Configured Flask application.
    """
    from src.core.services.event_bus import bus as default_bus

    settings = settings or InstallerSettings()
    bus = bus or (runtime.service.emitter.bus if runtime else default_bus)

    if runtime is None:
        from src.core.services.installer.orchestration.service import build_service

        runtime = InstallerRuntime(build_service(settings, bus))
    runtime.start()

    app = Flask(__name__)
    app.config["SETTINGS"] = settings
    app.config["EVENT_BUS"] = bus
    app.config["INSTALLER_RUNTIME"] = runtime
    connection = connection or MongoConnection(settings.database_name)
    if auto_connect:
        connection.auto_connect(settings.connection_uri)
    app.config["MONGO_CONNECTION"] = connection

    from src.ui.web.routes_db import db_bp
    from src.ui.web.routes_events import events_bp
    from src.ui.web.routes_install import install_bp

    app.register_blueprint(install_bp, url_prefix="/api")
    app.register_blueprint(events_bp, url_prefix="/api")
    app.register_blueprint(db_bp, url_prefix="/api")

    logger.info("Web app created (platform=%s)", runtime.service.platform_name)
    return app


def run_server(
    app: Flask,
    host: str = "127.0.0.1",
    port: int = 8000,
    debug: bool = False,
) -> None:
    """Run the Flask development server."""
    logger.info("Starting web server on %s:%d", host, port)
    try:
        app.run(host=host, port=port, debug=debug, use_reloader=False, threaded=True)
    finally:
        app.config["INSTALLER_RUNTIME"].stop()
        app.config["MONGO_CONNECTION"].disconnect()
