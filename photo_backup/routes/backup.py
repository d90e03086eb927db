"""Backup API routes for photo_backup"""

from flask import Blueprint, Response, jsonify, request

from photo_backup.context import get_services
from photo_backup.services.backup_service import InvalidDestinationError

backup_bp = Blueprint("backup", __name__)

DEFAULT_HISTORY_LIMIT = 50


@backup_bp.route("/start", methods=["POST"])
def start_backup() -> tuple[Response, int]:
    """Start a backup session.

    Request body:
        destination: 'local' or 's3'
        destinationPath: Target directory (local) or key prefix (s3), optional
        sourceDirectory: Directory to back up, defaults to the photos directory

    Returns:
        JSON response with the backup status
    """
    services = get_services()
    data = request.get_json(silent=True) or {}

    destination = data.get("destination")
    if not destination:
        return jsonify({"error": "destination is required"}), 400

    source_dir = data.get("sourceDirectory") or services.settings.photos_dir

    try:
        status = services.backups.start_backup(
            source_dir,
            destination,
            data.get("destinationPath") or None,
        )
    except InvalidDestinationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        services.log.error(
            "backup", "backup_start_failed", f"Failed to start backup: {e}", {"error": str(e)}
        )
        return jsonify({"error": str(e)}), 500

    return jsonify(status.to_dict()), 200


@backup_bp.route("/stop", methods=["POST"])
def stop_backup() -> tuple[Response, int]:
    """Stop the running backup after the file currently in flight."""
    status = get_services().backups.stop_backup()
    return jsonify(status.to_dict()), 200


@backup_bp.route("/status", methods=["GET"])
def get_status() -> tuple[Response, int]:
    """Get the live status of the current (or last) backup."""
    status = get_services().backups.get_status()
    return jsonify(status.to_dict()), 200


@backup_bp.route("/history", methods=["GET"])
def get_history() -> tuple[Response, int]:
    """List past backup sessions, most recent first.

    Query params:
        limit: Maximum number of sessions (default 50)
    """
    try:
        limit = int(request.args.get("limit", DEFAULT_HISTORY_LIMIT))
    except ValueError:
        return jsonify({"error": "limit must be an integer"}), 400
    if limit < 1:
        return jsonify({"error": "limit must be positive"}), 400

    sessions = get_services().backups.get_backup_history(limit)
    return jsonify([session.to_dict() for session in sessions]), 200


@backup_bp.route("/session/<session_id>", methods=["GET"])
def get_session(session_id: str) -> tuple[Response, int]:
    """Get one backup session with its per-file records.

    Args:
        session_id: Numeric session id
    """
    try:
        session_id_int = int(session_id)
    except ValueError:
        return jsonify({"error": "Invalid session ID"}), 400

    details = get_services().backups.get_backup_session_details(session_id_int)
    if details is None:
        return jsonify({"error": "Session not found"}), 404

    return jsonify(details), 200
