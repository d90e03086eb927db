"""Service banner and health routes for photo_backup."""

from flask import Blueprint, Response, jsonify

from photo_backup.config import get_package_version
from photo_backup.context import get_services

main_bp = Blueprint("main", __name__)


@main_bp.route("/")
def index() -> tuple[Response, int]:
    """Describe the running service."""
    return jsonify(
        {
            "name": "photo-backup",
            "version": get_package_version(),
            "endpoints": ["/api/photos", "/api/backup/status", "/api/logs/entries"],
        }
    ), 200


@main_bp.route("/api/health")
def health() -> tuple[Response, int]:
    """Report whether the service is up and whether a backup or scan is running."""
    services = get_services()
    return jsonify(
        {
            "status": "ok",
            "version": get_package_version(),
            "backupRunning": services.backups.get_status().is_running,
            "scanning": services.scans.get_progress().is_scanning,
        }
    ), 200
