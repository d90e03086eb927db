"""Flask application factory for the photo backup service."""

import atexit
import os

from flask import Flask

from photo_backup.config import Settings, get_package_version
from photo_backup.context import EXTENSION_KEY, ServiceContext


def create_app(settings: Settings | None = None) -> Flask:
    """Create and configure the Flask application.

    Args:
        settings: Settings to run with; loaded from the environment if omitted
    """
    app = Flask(__name__)

    # Load configuration
    settings = settings or Settings()
    app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "dev-secret-key-change-in-production")
    app.config["SETTINGS"] = settings

    services = ServiceContext.create(settings)
    app.extensions[EXTENSION_KEY] = services
    atexit.register(services.close)

    # Register blueprints
    from photo_backup.routes.backup import backup_bp
    from photo_backup.routes.logs import logs_bp
    from photo_backup.routes.main import main_bp
    from photo_backup.routes.photos import photos_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(backup_bp, url_prefix="/api/backup")
    app.register_blueprint(photos_bp, url_prefix="/api/photos")
    app.register_blueprint(logs_bp, url_prefix="/api/logs")

    services.log.info(
        "app",
        "app_started",
        f"Application started (v{get_package_version()})",
        {"version": get_package_version(), "photos_dir": str(settings.photos_dir)},
    )

    return app
