"""Shared utility functions for app services."""

from datetime import UTC, datetime


def utc_timestamp() -> str:
    """Current time as an ISO 8601 string in UTC."""
    return datetime.now(UTC).isoformat()


def format_file_size(size_bytes: int) -> str:
    """Format a file size in bytes to a human-readable string.

    Args:
        size_bytes: Size in bytes

    Returns:
        Human-readable size string (e.g., "1.5 GB")
    """
    size_float = float(size_bytes)
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if abs(size_float) < 1024.0:
            return f"{size_float:.1f} {unit}"
        size_float /= 1024.0
    return f"{size_float:.1f} PB"
