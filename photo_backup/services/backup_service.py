"""Backup pipeline that transfers photos one at a time to local disk or S3."""

import logging
import shutil
import threading
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from functools import partial
from pathlib import Path
from typing import Any

from mypy_boto3_s3 import S3Client

from photo_backup.config import Settings
from photo_backup.services import s3_service, walker
from photo_backup.services.database_service import DatabaseService
from photo_backup.services.log_service import LogService
from photo_backup.services.models import BackupSession, Destination, FileStatus, SessionStatus
from photo_backup.services.utils import format_file_size, utc_timestamp

logger = logging.getLogger(__name__)

Transfer = Callable[[Path, "BackupFile"], dict[str, Any]]


class InvalidDestinationError(ValueError):
    """Raised when a backup is requested for an unusable destination."""


@dataclass
class BackupFile:
    """State of a single file in the running backup."""

    path: str
    name: str
    size: int
    status: FileStatus = FileStatus.PENDING
    upload_id: int | None = None
    upload_time: str | None = None
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "path": self.path,
            "name": self.name,
            "size": self.size,
            "status": self.status.value,
            "uploadTime": self.upload_time,
            "errorMessage": self.error_message,
        }


@dataclass
class BackupStatus:
    """Live aggregate of the current (or last) backup session."""

    session_id: int | None = None
    is_running: bool = False
    total_files: int = 0
    completed_files: int = 0
    failed_files: int = 0
    total_size: int = 0
    current_file: str = ""
    source_directory: str = ""
    destination: Destination | None = None
    destination_path: str | None = None
    start_time: str | None = None
    files: list[BackupFile] = field(default_factory=list)

    @property
    def processed_files(self) -> int:
        """Files that reached a terminal state."""
        return self.completed_files + self.failed_files

    @property
    def progress_percent(self) -> float:
        """Overall progress percentage by file count."""
        if self.total_files == 0:
            return 0.0
        return round(self.processed_files / self.total_files * 100, 1)

    def snapshot(self) -> "BackupStatus":
        """Copy that shares no mutable state with this status."""
        return replace(self, files=[replace(f) for f in self.files])

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "sessionId": self.session_id,
            "isRunning": self.is_running,
            "totalFiles": self.total_files,
            "completedFiles": self.completed_files,
            "failedFiles": self.failed_files,
            "totalSize": self.total_size,
            "totalSizeFormatted": format_file_size(self.total_size),
            "progressPercent": self.progress_percent,
            "currentFile": self.current_file,
            "sourceDirectory": self.source_directory,
            "destination": self.destination.value if self.destination else None,
            "destinationPath": self.destination_path,
            "startTime": self.start_time,
            "files": [f.to_dict() for f in self.files],
        }


class BackupService:
    """Runs at most one backup session at a time.

    Files are processed strictly in enumeration order on a single background
    thread. Request threads only read snapshots of the live status.
    """

    def __init__(
        self,
        database: DatabaseService,
        log: LogService,
        settings: Settings,
    ) -> None:
        self._db = database
        self._log = log
        self._settings = settings
        self._status = BackupStatus()
        self._cursor = 0
        self._lock = threading.Lock()
        self._start_lock = threading.Lock()
        self._worker: threading.Thread | None = None

        interrupted = self._db.fail_interrupted_sessions()
        if interrupted:
            self._log.warning(
                "backup",
                "backup_sessions_interrupted",
                f"Marked {interrupted} interrupted backup session(s) as failed",
                {"sessions": interrupted},
            )

    def get_status(self) -> BackupStatus:
        """Get a snapshot of the live backup status."""
        with self._lock:
            return self._status.snapshot()

    def _validate_destination(self, destination: str) -> Destination:
        try:
            dest = Destination(destination)
        except ValueError:
            raise InvalidDestinationError(
                f"Invalid destination '{destination}'. Must be 'local' or 's3'"
            ) from None
        if dest is Destination.S3 and not self._settings.s3_bucket:
            raise InvalidDestinationError("S3 bucket not configured")
        return dest

    def start_backup(
        self,
        source_dir: Path | str,
        destination: str,
        destination_path: str | None = None,
    ) -> BackupStatus:
        """Start backing up every image under source_dir.

        Calling this while a session is running returns the running status
        unchanged. A worker still finishing its last file after a stop is
        waited for first. When no images are found the session is recorded as
        completed straight away and no background work is started.

        Args:
            source_dir: Directory to enumerate images from
            destination: 'local' or 's3'
            destination_path: Target directory (local) or key prefix (s3)

        Returns:
            Snapshot of the backup status

        Raises:
            InvalidDestinationError: If the destination is unknown or unconfigured
        """
        with self._start_lock:
            with self._lock:
                if self._status.is_running:
                    return self._status.snapshot()

            # A stopped worker may still be finishing its in-flight file
            if self._worker is not None:
                self._worker.join()
                self._worker = None

            dest = self._validate_destination(destination)
            source = Path(source_dir)

            images = list(walker.iter_image_files(source))
            total_size = sum(image.size for image in images)
            start_time = utc_timestamp()

            session_id, upload_ids = self._db.create_backup_session(
                start_time=start_time,
                source_directory=str(source),
                destination=dest.value,
                destination_path=destination_path,
                files=[
                    {
                        "file_path": image.relative_path,
                        "file_name": image.name,
                        "file_size": image.size,
                    }
                    for image in images
                ],
                total_size=total_size,
            )

            files = [
                BackupFile(
                    path=image.relative_path,
                    name=image.name,
                    size=image.size,
                    upload_id=upload_id,
                )
                for image, upload_id in zip(images, upload_ids, strict=True)
            ]

            with self._lock:
                self._status = BackupStatus(
                    session_id=session_id,
                    is_running=bool(files),
                    total_files=len(files),
                    total_size=total_size,
                    source_directory=str(source),
                    destination=dest,
                    destination_path=destination_path,
                    start_time=start_time,
                    files=files,
                )
                self._cursor = 0
                status = self._status.snapshot()

            self._log.info(
                "backup",
                "backup_started",
                f"Started backup session {session_id} with {len(files)} files",
                {
                    "session_id": session_id,
                    "source_directory": str(source),
                    "destination": dest.value,
                    "destination_path": destination_path,
                    "total_files": len(files),
                    "total_size": total_size,
                },
            )

            if not files:
                self._finalize_session(session_id, SessionStatus.COMPLETED, 0, 0)
                return status

            self._worker = threading.Thread(
                target=self._run,
                args=(session_id, source, dest, destination_path, files),
                name=f"backup-session-{session_id}",
                daemon=True,
            )
            self._worker.start()
            return status

    def stop_backup(self) -> BackupStatus:
        """Stop the running backup after the file currently in flight.

        The worker stores the outcome of that file and then finalizes the
        session: completed if every file was processed, otherwise stopped.
        Calling this with nothing running returns the current status.
        """
        with self._lock:
            if self._status.is_running:
                self._status.is_running = False
                self._status.current_file = ""
            return self._status.snapshot()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the background worker to exit.

        Returns:
            True if no worker is left running
        """
        worker = self._worker
        if worker is not None:
            worker.join(timeout)
            return not worker.is_alive()
        return True

    def get_backup_history(self, limit: int = 50) -> list[BackupSession]:
        """Get past backup sessions, most recent first."""
        return self._db.get_backup_sessions(limit)

    def get_backup_session_details(self, session_id: int) -> dict[str, Any] | None:
        """Get a session with its per-file upload records, or None if unknown."""
        session = self._db.get_backup_session(session_id)
        if session is None:
            return None
        uploads = self._db.get_file_uploads_by_session(session_id)
        return {**session.to_dict(), "files": [u.to_dict() for u in uploads]}

    def _run(
        self,
        session_id: int,
        source: Path,
        destination: Destination,
        destination_path: str | None,
        files: list[BackupFile],
    ) -> None:
        """Worker thread entry point."""
        try:
            try:
                transfer = self._make_transfer(destination, destination_path)
            except Exception as e:
                self._fail_session(
                    session_id, f"Failed to prepare {destination.value} destination: {e}"
                )
                return
            self._process_files(session_id, source, transfer, files)
        except Exception as e:
            logger.exception("Backup session %s aborted", session_id)
            self._fail_session(session_id, str(e))
        finally:
            self._db.close()

    def _process_files(
        self,
        session_id: int,
        source: Path,
        transfer: Transfer,
        files: list[BackupFile],
    ) -> None:
        """Transfer files one at a time until done or stopped, then finalize."""
        completed = 0
        failed = 0

        for index, backup_file in enumerate(files):
            with self._lock:
                if not self._status.is_running:
                    break
                backup_file.status = FileStatus.IN_PROGRESS
                self._status.current_file = backup_file.name

            self._db.update_file_upload(backup_file.upload_id, status=FileStatus.IN_PROGRESS)

            try:
                result = transfer(source / backup_file.path, backup_file)
            except Exception as e:
                result = {"success": False, "error": str(e)}

            success = bool(result.get("success"))
            error_message = None if success else str(result.get("error") or "Unknown error")
            upload_time = utc_timestamp()
            if success:
                completed += 1
            else:
                failed += 1

            with self._lock:
                backup_file.status = FileStatus.COMPLETED if success else FileStatus.FAILED
                backup_file.upload_time = upload_time
                backup_file.error_message = error_message
                self._status.completed_files = completed
                self._status.failed_files = failed
                self._cursor = index + 1

            self._db.update_file_upload(
                backup_file.upload_id,
                status=backup_file.status,
                upload_time=upload_time,
                error_message=error_message,
            )
            self._db.update_backup_session(
                session_id, completed_files=completed, failed_files=failed
            )

            if success:
                self._log.info(
                    "backup",
                    "file_backup_completed",
                    f"Backed up {backup_file.path}",
                    {
                        "session_id": session_id,
                        "file_path": backup_file.path,
                        "file_size": backup_file.size,
                    },
                )
            else:
                self._log.error(
                    "backup",
                    "file_backup_failed",
                    f"Failed to back up {backup_file.path}: {error_message}",
                    {
                        "session_id": session_id,
                        "file_path": backup_file.path,
                        "error": error_message,
                    },
                )

        with self._lock:
            self._status.is_running = False
            self._status.current_file = ""
            reached_end = self._cursor >= len(files)

        final_status = SessionStatus.COMPLETED if reached_end else SessionStatus.STOPPED
        self._finalize_session(session_id, final_status, completed, failed)

    def _make_transfer(self, destination: Destination, destination_path: str | None) -> Transfer:
        """Build the per-file transfer function for a destination."""
        if destination is Destination.S3:
            client = s3_service.create_s3_client(
                self._settings.aws_profile,
                self._settings.aws_region,
            )
            access = s3_service.validate_bucket_access(client, self._settings.s3_bucket)
            if not access["success"]:
                raise RuntimeError(access["error"])
            return partial(self._transfer_s3, client, self._settings.s3_bucket, destination_path)

        target_dir = Path(destination_path) if destination_path else self._settings.local_backup_dir
        return partial(self._transfer_local, target_dir)

    @staticmethod
    def _transfer_local(
        target_dir: Path, source_path: Path, backup_file: BackupFile
    ) -> dict[str, Any]:
        """Copy a file below target_dir, keeping its relative path and metadata."""
        target = target_dir / backup_file.path
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source_path, target)
        return {"success": True, "path": str(target), "error": None}

    @staticmethod
    def _transfer_s3(
        client: S3Client,
        bucket: str,
        prefix: str | None,
        source_path: Path,
        backup_file: BackupFile,
    ) -> dict[str, Any]:
        """Upload a file's bytes to S3 under the session's key prefix."""
        data = source_path.read_bytes()
        return s3_service.upload_bytes(
            client,
            bucket,
            s3_service.build_object_key(backup_file.path, prefix),
            data,
            s3_service.guess_content_type(backup_file.name),
        )

    def _fail_session(self, session_id: int, error: str) -> None:
        """Finalize a session that could not continue as failed."""
        with self._lock:
            self._status.is_running = False
            self._status.current_file = ""
            completed = self._status.completed_files
            failed = self._status.failed_files

        self._log.error(
            "backup",
            "backup_session_failed",
            f"Backup session {session_id} failed: {error}",
            {"session_id": session_id, "error": error},
        )
        self._finalize_session(session_id, SessionStatus.FAILED, completed, failed)

    def _finalize_session(
        self,
        session_id: int,
        status: SessionStatus,
        completed: int,
        failed: int,
    ) -> None:
        """Persist the final state of a session and write its summary."""
        end_time = datetime.now(UTC)
        self._db.update_backup_session(
            session_id,
            status=status,
            end_time=end_time.isoformat(),
            completed_files=completed,
            failed_files=failed,
        )

        self._log.info(
            "backup",
            f"backup_{status.value}",
            f"Backup session {session_id} {status.value}: {completed} completed, {failed} failed",
            {
                "session_id": session_id,
                "status": status.value,
                "completed": completed,
                "failed": failed,
            },
        )

        session = self._db.get_backup_session(session_id)
        if session is None:
            return
        try:
            self._log.save_session_csv(
                session,
                self._db.get_file_uploads_by_session(session_id),
                end_time,
            )
        except OSError:
            logger.warning("Failed to save backup session CSV summary", exc_info=True)
