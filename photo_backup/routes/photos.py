"""Photo index API routes for photo_backup"""

from flask import Blueprint, Response, jsonify, request, send_file

from photo_backup.context import get_services
from photo_backup.services.scan_service import AlreadyScanningError

photos_bp = Blueprint("photos", __name__)


@photos_bp.route("", methods=["GET"])
def list_photos() -> tuple[Response, int]:
    """List indexed directories and the photos in each.

    Returns:
        JSON with selectedFolder, directories and photosByFolder
    """
    services = get_services()
    try:
        result = services.photos.list_photos(services.settings.photos_dir)
    except Exception as e:
        services.log.error("app", "photo_list_failed", f"Failed to list photos: {e}", {"error": str(e)})
        return jsonify({"error": str(e)}), 500
    return jsonify(result), 200


@photos_bp.route("/scan", methods=["POST"])
def scan_photos() -> tuple[Response, int]:
    """Rebuild the photo index from disk.

    Request body (optional):
        sourceDirectory: Directory to scan, defaults to the photos directory

    Returns:
        JSON with message, stats and final progress; 409 if a scan is running
    """
    services = get_services()
    data = request.get_json(silent=True) or {}
    source_dir = data.get("sourceDirectory") or services.settings.photos_dir

    try:
        progress = services.scans.scan(source_dir)
    except AlreadyScanningError as e:
        return jsonify(
            {"error": str(e), "progress": services.scans.get_progress().to_dict()}
        ), 409
    except Exception as e:
        services.log.error(
            "scan",
            "scan_request_failed",
            f"Scan request for {source_dir} failed: {e}",
            {"source_directory": str(source_dir), "error": str(e)},
        )
        return jsonify({"error": str(e)}), 500

    return jsonify(
        {
            "message": "Scan completed successfully",
            "stats": services.scans.stats(),
            "progress": progress.to_dict(),
        }
    ), 200


@photos_bp.route("/scan/progress", methods=["GET"])
def get_scan_progress() -> tuple[Response, int]:
    """Get progress of the current or most recent scan."""
    return jsonify(get_services().scans.get_progress().to_dict()), 200


@photos_bp.route("/scan/stats", methods=["GET"])
def get_scan_stats() -> tuple[Response, int]:
    """Get directory and photo totals of the persisted index."""
    return jsonify(get_services().scans.stats()), 200


@photos_bp.route("/thumbnail/<folder_id>/<path:filename>", methods=["GET"])
def get_thumbnail(folder_id: str, filename: str) -> tuple[Response, int] | Response:
    """Serve the image bytes of a photo.

    Args:
        folder_id: Directory id from the listing
        filename: Photo file name within that directory
    """
    services = get_services()
    try:
        folder_id_int = int(folder_id)
    except ValueError:
        return jsonify({"error": "Folder not found"}), 404

    path = services.photos.resolve_photo_file(services.settings.photos_dir, folder_id_int, filename)
    if path is None:
        return jsonify({"error": "Photo not found"}), 404

    return send_file(path)
