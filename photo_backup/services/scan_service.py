"""Scan engine that rebuilds the persisted photo index from disk."""

import threading
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any

from photo_backup.services import walker
from photo_backup.services.database_service import DatabaseService
from photo_backup.services.log_service import LogService
from photo_backup.services.utils import utc_timestamp


class ScanError(Exception):
    """Base class for scan failures reported to callers."""


class AlreadyScanningError(ScanError):
    """Raised when a scan is requested while another one is running."""


class SourceNotFoundError(ScanError):
    """Raised when the directory to scan does not exist."""


@dataclass(frozen=True)
class ScanProgress:
    """Progress of the current or most recent scan."""

    is_scanning: bool = False
    total_directories: int = 0
    scanned_directories: int = 0
    total_photos: int = 0
    current_directory: str = ""
    start_time: str | None = None
    end_time: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "isScanning": self.is_scanning,
            "totalDirectories": self.total_directories,
            "scannedDirectories": self.scanned_directories,
            "totalPhotos": self.total_photos,
            "currentDirectory": self.current_directory,
            "startTime": self.start_time,
            "endTime": self.end_time,
        }


class ScanService:
    """Walks a source directory and replaces the photo index with the result."""

    def __init__(self, database: DatabaseService, log: LogService) -> None:
        self._db = database
        self._log = log
        self._progress = ScanProgress()
        self._lock = threading.Lock()

    def _update_progress(self, **changes: Any) -> None:
        with self._lock:
            self._progress = replace(self._progress, **changes)

    def get_progress(self) -> ScanProgress:
        """Get current scan progress."""
        with self._lock:
            return self._progress

    def stats(self) -> dict[str, int]:
        """Totals currently persisted in the index, regardless of scan state."""
        directories, photos = self._db.count_photo_index()
        return {"totalDirectories": directories, "totalPhotos": photos}

    def scan(self, source_directory: Path | str) -> ScanProgress:
        """Scan source_directory and persist the resulting index.

        The existing index is cleared before the new one is written. If the
        scan fails after that point the index is left partially populated.

        Args:
            source_directory: Root of the photo tree

        Returns:
            Final scan progress

        Raises:
            AlreadyScanningError: If a scan is already in progress
            SourceNotFoundError: If source_directory does not exist
        """
        source = Path(source_directory)

        with self._lock:
            if self._progress.is_scanning:
                raise AlreadyScanningError("A scan is already in progress")
            if not source.is_dir():
                raise SourceNotFoundError(f"Source directory does not exist: {source}")
            self._progress = ScanProgress(is_scanning=True, start_time=utc_timestamp())

        self._log.info(
            "scan",
            "scan_started",
            f"Starting photo scan of {source}",
            {"source_directory": str(source)},
        )

        try:
            directory_map = walker.walk(source)
            self._update_progress(total_directories=len(directory_map))

            self._db.clear_photo_data()

            for relative_dir, file_names in directory_map.items():
                self._update_progress(current_directory=relative_dir or "(root)")
                photos = self._index_directory(source, relative_dir, file_names)
                if not photos:
                    continue
                with self._lock:
                    self._progress = replace(
                        self._progress,
                        total_photos=self._progress.total_photos + photos,
                        scanned_directories=self._progress.scanned_directories + 1,
                    )

            # Directories whose files all failed to stat were never written
            with self._lock:
                self._progress = replace(
                    self._progress,
                    total_directories=self._progress.scanned_directories,
                    end_time=utc_timestamp(),
                )
        except Exception as e:
            self._log.error(
                "scan",
                "scan_failed",
                f"Photo scan of {source} failed: {e}",
                {"source_directory": str(source), "error": str(e)},
            )
            raise
        finally:
            self._update_progress(is_scanning=False)

        progress = self.get_progress()
        self._log.info(
            "scan",
            "scan_completed",
            f"Scan completed: {progress.total_photos} photos in "
            f"{progress.total_directories} directories",
            asdict(progress),
        )
        return progress

    def _index_directory(self, source: Path, relative_dir: str, file_names: tuple[str, ...]) -> int:
        """Persist one directory and its photos.

        Returns:
            Number of photos written
        """
        photos: list[dict[str, Any]] = []
        for file_name in file_names:
            file_path = walker.join_relative(relative_dir, file_name)
            try:
                stat_result = (source / file_path).stat()
            except OSError as e:
                self._log.warning(
                    "scan",
                    "photo_stat_failed",
                    f"Skipping {file_path}: {e}",
                    {"file_path": file_path, "error": str(e)},
                )
                continue
            photos.append(
                {
                    "file_name": file_name,
                    "file_path": file_path,
                    "file_size": stat_result.st_size,
                    "date_modified": walker.format_mtime(stat_result.st_mtime),
                }
            )

        if not photos:
            return 0

        directory_id = self._db.upsert_photo_directory(
            walker.directory_name(relative_dir),
            relative_dir,
            len(photos),
        )
        for photo in photos:
            photo["directory_id"] = directory_id
        self._db.bulk_upsert_photos(photos)

        return len(photos)
