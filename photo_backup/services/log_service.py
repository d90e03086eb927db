"""JSONL logging service for application events.

Writes one JSON object per line to hive-partitioned daily .jsonl files, plus
one CSV summary per finished backup session.
DuckDB-compatible: SELECT * FROM read_json_auto('logs/json/**/events.jsonl', hive_partitioning=true)
"""

import csv
import io
import json
import threading
from collections import Counter
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from photo_backup.services.models import BackupSession, FileUpload
from photo_backup.services.utils import format_file_size


class LogService:
    """JSONL log service with thread-safe file writes."""

    def __init__(self, log_dir: Path) -> None:
        """Initialize the log service."""
        self._log_dir = Path(log_dir)
        self._write_lock = threading.Lock()

    def _get_log_dir(self) -> Path:
        """Get the configured log directory, creating it if needed."""
        self._log_dir.mkdir(parents=True, exist_ok=True)
        return self._log_dir

    def _get_hive_dir(self, subdir: str, dt: datetime) -> Path:
        """Build a hive-partitioned directory path and create it.

        Args:
            subdir: Top-level subdirectory ('json' or 'csv')
            dt: Datetime to partition by

        Returns:
            Path like logs/json/year=2026/month=02/day=08/
        """
        log_dir = self._get_log_dir()
        hive_dir = (
            log_dir
            / subdir
            / f"year={dt.year:04d}"
            / f"month={dt.month:02d}"
            / f"day={dt.day:02d}"
        )
        hive_dir.mkdir(parents=True, exist_ok=True)
        return hive_dir

    def _get_current_log_file(self) -> Path:
        """Get the path to today's events log file (hive-partitioned)."""
        now = datetime.now(UTC)
        hive_dir = self._get_hive_dir("json", now)
        return hive_dir / "events.jsonl"

    def log(
        self,
        level: str,
        category: str,
        event: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Append a log entry to the current day's JSONL file.

        Args:
            level: Log level (INFO, WARNING, ERROR)
            category: Event category (app, scan, backup)
            event: Machine-readable event name (snake_case)
            message: Human-readable message
            metadata: Optional additional data
        """
        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": level.upper(),
            "category": category,
            "event": event,
            "message": message,
        }
        if metadata:
            entry["metadata"] = metadata

        line = json.dumps(entry, default=str)

        with self._write_lock:
            log_file = self._get_current_log_file()
            with open(log_file, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    def info(
        self,
        category: str,
        event: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Log an INFO-level event."""
        self.log("INFO", category, event, message, metadata)

    def warning(
        self,
        category: str,
        event: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Log a WARNING-level event."""
        self.log("WARNING", category, event, message, metadata)

    def error(
        self,
        category: str,
        event: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Log an ERROR-level event."""
        self.log("ERROR", category, event, message, metadata)

    def save_session_csv(
        self,
        session: BackupSession,
        uploads: list[FileUpload],
        completed_at: datetime,
    ) -> Path:
        """Write a per-session CSV backup summary.

        Args:
            session: The finished backup session
            uploads: Upload records of the session
            completed_at: When the session ended

        Returns:
            Path to the written CSV file
        """
        hive_dir = self._get_hive_dir("csv", completed_at)
        time_str = completed_at.strftime("%H%M%S")
        out_path = hive_dir / f"backup-summary-{time_str}-{session.id}.csv"

        columns = [
            "session_id",
            "session_status",
            "destination",
            "file_path",
            "file_name",
            "file_size_bytes",
            "file_size_formatted",
            "status",
            "upload_time",
            "error_message",
        ]

        buf = io.StringIO()
        writer = csv.writer(buf)
        writer.writerow(columns)

        for upload in uploads:
            writer.writerow([
                session.id,
                session.status.value,
                session.destination.value,
                upload.file_path,
                upload.file_name,
                upload.file_size,
                format_file_size(upload.file_size),
                upload.status.value,
                upload.upload_time or "",
                upload.error_message or "",
            ])

        with self._write_lock:
            with open(out_path, "w", encoding="utf-8", newline="") as fh:
                fh.write(buf.getvalue())

        return out_path

    @staticmethod
    def _partition_date(path: Path) -> str | None:
        """Date of a file below a year=/month=/day= partition, or None."""
        partitions: dict[str, str] = {}
        for part in path.parts:
            key, sep, value = part.partition("=")
            if sep:
                partitions[key] = value
        try:
            return f"{partitions['year']}-{partitions['month']}-{partitions['day']}"
        except KeyError:
            return None

    def _event_files(self, date: str | None = None) -> list[Path]:
        """Event files for one day, or for every day newest first."""
        json_dir = self._get_log_dir() / "json"
        if not date:
            if not json_dir.exists():
                return []
            return sorted(json_dir.rglob("events.jsonl"), reverse=True)
        dt = datetime.strptime(date, "%Y-%m-%d")
        path = json_dir / f"year={dt.year:04d}" / f"month={dt.month:02d}" / f"day={dt.day:02d}"
        events = path / "events.jsonl"
        return [events] if events.exists() else []

    def _summary_files(self) -> list[Path]:
        """Backup session CSV summaries, newest first."""
        csv_dir = self._get_log_dir() / "csv"
        if not csv_dir.exists():
            return []
        return sorted(csv_dir.rglob("*.csv"), reverse=True)

    @staticmethod
    def _read_events(log_file: Path) -> Iterator[dict[str, Any]]:
        """Yield the entries of one file, skipping lines cut short by a crash."""
        try:
            with open(log_file, encoding="utf-8") as f:
                lines = f.readlines()
        except OSError:
            return
        for line in lines:
            if not line.strip():
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError:
                continue

    def list_log_files(self) -> list[dict[str, Any]]:
        """List event logs and backup summaries, newest first within each type."""
        log_dir = self._get_log_dir()
        files = [(path, "jsonl") for path in self._event_files()]
        files += [(path, "csv") for path in self._summary_files()]
        return [
            {
                "date": self._partition_date(path),
                "filename": path.name,
                "path": str(path),
                "relative_path": path.relative_to(log_dir).as_posix(),
                "size_bytes": path.stat().st_size,
                "type": file_type,
            }
            for path, file_type in files
        ]

    def read_log_entries(
        self,
        date: str | None = None,
        level: str | None = None,
        category: str | None = None,
        search: str | None = None,
        offset: int = 0,
        limit: int = 100,
    ) -> dict[str, Any]:
        """Page through logged events, newest first.

        An unparsable date matches nothing. Level comparison and search over
        message and event name are case-insensitive.
        """
        try:
            files = self._event_files(date)
        except ValueError:
            files = []

        needle = search.lower() if search else None
        matched = [
            entry
            for log_file in files
            for entry in self._read_events(log_file)
            if (not level or entry.get("level", "").upper() == level.upper())
            and (not category or entry.get("category") == category)
            and (
                needle is None
                or needle in entry.get("message", "").lower()
                or needle in entry.get("event", "").lower()
            )
        ]
        matched.sort(key=lambda e: e.get("timestamp", ""), reverse=True)

        return {
            "entries": matched[offset : offset + limit],
            "total": len(matched),
            "offset": offset,
            "limit": limit,
        }

    def get_log_stats(self) -> dict[str, Any]:
        """Count logged events by level and category across every day."""
        levels: Counter[str] = Counter()
        categories: Counter[str] = Counter()
        files = self._event_files()

        for log_file in files:
            for entry in self._read_events(log_file):
                levels[entry.get("level", "UNKNOWN")] += 1
                categories[entry.get("category", "unknown")] += 1

        dates = sorted(filter(None, (self._partition_date(f) for f in files)))
        return {
            "total_entries": sum(levels.values()),
            "level_counts": dict(levels),
            "category_counts": dict(categories),
            "date_range": {
                "earliest": dates[0] if dates else None,
                "latest": dates[-1] if dates else None,
            },
            "file_count": len(files),
            "csv_count": len(self._summary_files()),
        }
