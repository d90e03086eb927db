"""Persisted record types for the photo index and backup history."""

import sqlite3
from dataclasses import dataclass
from enum import Enum
from typing import Any


class SessionStatus(Enum):
    """Status of a backup session."""

    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


class FileStatus(Enum):
    """Status of a single file within a backup session."""

    PENDING = "pending"
    IN_PROGRESS = "inProgress"
    COMPLETED = "completed"
    FAILED = "failed"


class Destination(Enum):
    """Where a backup session sends its files."""

    LOCAL = "local"
    S3 = "s3"


@dataclass(frozen=True)
class Directory:
    """A scanned directory that directly contains photos."""

    id: int
    name: str
    path: str
    photo_count: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Directory":
        return cls(
            id=row["id"],
            name=row["name"],
            path=row["path"],
            photo_count=row["photo_count"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "photoCount": self.photo_count,
        }


@dataclass(frozen=True)
class Photo:
    """A photo file belonging to exactly one directory."""

    id: int
    directory_id: int
    file_name: str
    file_path: str
    file_size: int
    date_modified: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Photo":
        return cls(
            id=row["id"],
            directory_id=row["directory_id"],
            file_name=row["file_name"],
            file_path=row["file_path"],
            file_size=row["file_size"],
            date_modified=row["date_modified"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "directoryId": self.directory_id,
            "fileName": self.file_name,
            "filePath": self.file_path,
            "fileSize": self.file_size,
            "dateModified": self.date_modified,
        }


@dataclass(frozen=True)
class BackupSession:
    """One backup run with its aggregate counters."""

    id: int
    start_time: str
    status: SessionStatus
    total_files: int
    completed_files: int
    failed_files: int
    total_size: int
    source_directory: str
    destination: Destination
    destination_path: str | None = None
    end_time: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "BackupSession":
        return cls(
            id=row["id"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            status=SessionStatus(row["status"]),
            total_files=row["total_files"],
            completed_files=row["completed_files"],
            failed_files=row["failed_files"],
            total_size=row["total_size"],
            source_directory=row["source_directory"],
            destination=Destination(row["destination"]),
            destination_path=row["destination_path"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "status": self.status.value,
            "totalFiles": self.total_files,
            "completedFiles": self.completed_files,
            "failedFiles": self.failed_files,
            "totalSize": self.total_size,
            "sourceDirectory": self.source_directory,
            "destination": self.destination.value,
            "destinationPath": self.destination_path,
        }


@dataclass(frozen=True)
class FileUpload:
    """Outcome of one file's transfer within a session."""

    id: int
    session_id: int
    file_path: str
    file_name: str
    file_size: int
    status: FileStatus
    upload_time: str | None = None
    error_message: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "FileUpload":
        return cls(
            id=row["id"],
            session_id=row["session_id"],
            file_path=row["file_path"],
            file_name=row["file_name"],
            file_size=row["file_size"],
            status=FileStatus(row["status"]),
            upload_time=row["upload_time"],
            error_message=row["error_message"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "filePath": self.file_path,
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "status": self.status.value,
            "uploadTime": self.upload_time,
            "errorMessage": self.error_message,
        }
