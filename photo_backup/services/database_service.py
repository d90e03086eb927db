"""SQLite persistence for the photo index and backup history."""

import sqlite3
import threading
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from photo_backup.services.models import (
    BackupSession,
    Directory,
    FileStatus,
    FileUpload,
    Photo,
    SessionStatus,
)

# Columns callers may change after a row is created
_SESSION_UPDATE_COLUMNS = (
    "end_time",
    "status",
    "total_files",
    "completed_files",
    "failed_files",
    "total_size",
)
_UPLOAD_UPDATE_COLUMNS = ("status", "upload_time", "error_message")


def _to_db_value(value: Any) -> Any:
    """Convert enum members to their stored string form."""
    if isinstance(value, Enum):
        return value.value
    return value


class DatabaseService:
    """Database service with thread-safe SQLite access.

    Photo directories and photos use plain INTEGER PRIMARY KEY columns so
    that SQLite hands out the same rowids again after the index is cleared.
    Backup sessions and uploads use AUTOINCREMENT ids that are never reused.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the database, creating the file and schema if needed."""
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._init_db()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, "connection") or self._local.connection is None:
            connection = sqlite3.connect(
                str(self._db_path),
                check_same_thread=False,
                timeout=30.0,
            )
            connection.row_factory = sqlite3.Row
            connection.execute("PRAGMA foreign_keys = ON")
            self._local.connection = connection
        conn: sqlite3.Connection = self._local.connection
        return conn

    def _init_db(self) -> None:
        """Initialize the database schema."""
        conn = self._get_connection()
        cursor = conn.cursor()

        # WAL lets status pollers read while the backup thread writes
        cursor.execute("PRAGMA journal_mode = WAL")

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS photo_directories (
                id INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                path TEXT NOT NULL UNIQUE,
                photo_count INTEGER NOT NULL DEFAULT 0,
                updated_at TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS photos (
                id INTEGER PRIMARY KEY,
                directory_id INTEGER NOT NULL,
                file_name TEXT NOT NULL,
                file_path TEXT NOT NULL UNIQUE,
                file_size INTEGER NOT NULL DEFAULT 0,
                date_modified TEXT,
                FOREIGN KEY (directory_id) REFERENCES photo_directories(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS backup_sessions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                start_time TEXT NOT NULL,
                end_time TEXT,
                status TEXT NOT NULL
                    CHECK(status IN ('running', 'completed', 'stopped', 'failed')),
                total_files INTEGER NOT NULL DEFAULT 0,
                completed_files INTEGER NOT NULL DEFAULT 0,
                failed_files INTEGER NOT NULL DEFAULT 0,
                total_size INTEGER NOT NULL DEFAULT 0,
                source_directory TEXT NOT NULL,
                destination TEXT NOT NULL DEFAULT 's3' CHECK(destination IN ('local', 's3')),
                destination_path TEXT,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS file_uploads (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id INTEGER NOT NULL,
                file_path TEXT NOT NULL,
                file_name TEXT NOT NULL,
                file_size INTEGER NOT NULL,
                status TEXT NOT NULL
                    CHECK(status IN ('pending', 'inProgress', 'completed', 'failed')),
                upload_time TEXT,
                error_message TEXT,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (session_id) REFERENCES backup_sessions(id) ON DELETE CASCADE
            )
        """)

        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_photos_directory_id ON photos(directory_id)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_backup_sessions_status ON backup_sessions(status)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_backup_sessions_start_time "
            "ON backup_sessions(start_time DESC)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_file_uploads_session_id ON file_uploads(session_id)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_file_uploads_status ON file_uploads(status)"
        )

        conn.commit()

    # ── Photo index ──────────────────────────────────────────

    def clear_photo_data(self) -> None:
        """Delete every photo and directory row."""
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute("DELETE FROM photos")
        cursor.execute("DELETE FROM photo_directories")
        conn.commit()

    def upsert_photo_directory(self, name: str, path: str, photo_count: int) -> int:
        """Insert a directory or update the existing row with the same path.

        Returns:
            The id of the directory row
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        now = datetime.now(UTC).isoformat()

        cursor.execute(
            """
            INSERT INTO photo_directories (name, path, photo_count, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(path) DO UPDATE SET
                name = excluded.name,
                photo_count = excluded.photo_count,
                updated_at = excluded.updated_at
            """,
            (name, path, photo_count, now),
        )
        cursor.execute("SELECT id FROM photo_directories WHERE path = ?", (path,))
        directory_id = int(cursor.fetchone()["id"])

        conn.commit()
        return directory_id

    def bulk_upsert_photos(self, photos: list[dict[str, Any]]) -> None:
        """Insert or update photos keyed by file_path in a single transaction.

        Args:
            photos: List of dicts with keys: directory_id, file_name, file_path,
                file_size, date_modified
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        data = [
            (
                photo["directory_id"],
                photo["file_name"],
                photo["file_path"],
                photo.get("file_size", 0),
                photo.get("date_modified"),
            )
            for photo in photos
        ]

        cursor.executemany(
            """
            INSERT INTO photos (directory_id, file_name, file_path, file_size, date_modified)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(file_path) DO UPDATE SET
                directory_id = excluded.directory_id,
                file_name = excluded.file_name,
                file_size = excluded.file_size,
                date_modified = excluded.date_modified
            """,
            data,
        )

        conn.commit()

    def get_all_photo_directories(self) -> list[Directory]:
        """Get every directory in the index, in scan order."""
        cursor = self._get_connection().cursor()
        cursor.execute("SELECT id, name, path, photo_count FROM photo_directories ORDER BY id")
        return [Directory.from_row(row) for row in cursor.fetchall()]

    def get_photo_directory(self, directory_id: int) -> Directory | None:
        """Get a directory by id."""
        cursor = self._get_connection().cursor()
        cursor.execute(
            "SELECT id, name, path, photo_count FROM photo_directories WHERE id = ?",
            (directory_id,),
        )
        row = cursor.fetchone()
        return Directory.from_row(row) if row else None

    def get_photos_by_directory(self, directory_id: int) -> list[Photo]:
        """Get the photos owned by a directory, in scan order."""
        cursor = self._get_connection().cursor()
        cursor.execute(
            """
            SELECT id, directory_id, file_name, file_path, file_size, date_modified
            FROM photos
            WHERE directory_id = ?
            ORDER BY id
            """,
            (directory_id,),
        )
        return [Photo.from_row(row) for row in cursor.fetchall()]

    def get_all_photos(self) -> list[Photo]:
        """Get every photo in the index."""
        cursor = self._get_connection().cursor()
        cursor.execute(
            """
            SELECT id, directory_id, file_name, file_path, file_size, date_modified
            FROM photos
            ORDER BY id
            """
        )
        return [Photo.from_row(row) for row in cursor.fetchall()]

    def count_photo_index(self) -> tuple[int, int]:
        """Count persisted directories and photos.

        Returns:
            Tuple of (directory_count, photo_count)
        """
        cursor = self._get_connection().cursor()
        cursor.execute("SELECT COUNT(*) FROM photo_directories")
        directories = int(cursor.fetchone()[0])
        cursor.execute("SELECT COUNT(*) FROM photos")
        photos = int(cursor.fetchone()[0])
        return directories, photos

    # ── Backup sessions ──────────────────────────────────────

    def create_backup_session(
        self,
        start_time: str,
        source_directory: str,
        destination: str,
        destination_path: str | None,
        files: list[dict[str, Any]],
        total_size: int,
        status: SessionStatus = SessionStatus.RUNNING,
    ) -> tuple[int, list[int]]:
        """Create a session and its pending upload records atomically.

        Readers never observe a session whose upload rows are only partly
        inserted: the session row and every file row commit together.

        Args:
            start_time: ISO timestamp of the session start
            source_directory: Directory the files were enumerated from
            destination: 'local' or 's3'
            destination_path: Optional destination folder or key prefix
            files: List of dicts with keys: file_path, file_name, file_size
            total_size: Sum of the file sizes
            status: Initial session status

        Returns:
            Tuple of (session_id, upload_ids) with upload ids in file order
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute(
                """
                INSERT INTO backup_sessions
                    (start_time, status, total_files, completed_files, failed_files,
                     total_size, source_directory, destination, destination_path)
                VALUES (?, ?, ?, 0, 0, ?, ?, ?, ?)
                """,
                (
                    start_time,
                    status.value,
                    len(files),
                    total_size,
                    source_directory,
                    destination,
                    destination_path,
                ),
            )
            session_id = int(cursor.lastrowid or 0)

            upload_ids: list[int] = []
            for file_info in files:
                cursor.execute(
                    """
                    INSERT INTO file_uploads
                        (session_id, file_path, file_name, file_size, status)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        session_id,
                        file_info["file_path"],
                        file_info["file_name"],
                        file_info["file_size"],
                        FileStatus.PENDING.value,
                    ),
                )
                upload_ids.append(int(cursor.lastrowid or 0))

            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise

        return session_id, upload_ids

    def update_backup_session(self, session_id: int, **fields: Any) -> None:
        """Update selected columns of a backup session.

        Raises:
            ValueError: If a column cannot be updated
        """
        self._update_row("backup_sessions", _SESSION_UPDATE_COLUMNS, session_id, fields)

    def update_file_upload(self, upload_id: int, **fields: Any) -> None:
        """Update selected columns of a file upload record.

        Raises:
            ValueError: If a column cannot be updated
        """
        self._update_row("file_uploads", _UPLOAD_UPDATE_COLUMNS, upload_id, fields)

    def _update_row(
        self,
        table: str,
        allowed: tuple[str, ...],
        row_id: int,
        fields: dict[str, Any],
    ) -> None:
        unknown = set(fields) - set(allowed)
        if unknown:
            raise ValueError(f"Cannot update {table} columns: {', '.join(sorted(unknown))}")
        if not fields:
            return

        assignments = ", ".join(f"{column} = ?" for column in fields)
        values = [_to_db_value(value) for value in fields.values()]

        conn = self._get_connection()
        conn.execute(f"UPDATE {table} SET {assignments} WHERE id = ?", (*values, row_id))
        conn.commit()

    def get_backup_session(self, session_id: int) -> BackupSession | None:
        """Get a backup session by id."""
        cursor = self._get_connection().cursor()
        cursor.execute("SELECT * FROM backup_sessions WHERE id = ?", (session_id,))
        row = cursor.fetchone()
        return BackupSession.from_row(row) if row else None

    def get_backup_sessions(self, limit: int = 50) -> list[BackupSession]:
        """Get backup sessions, most recent first."""
        cursor = self._get_connection().cursor()
        cursor.execute(
            "SELECT * FROM backup_sessions ORDER BY start_time DESC, id DESC LIMIT ?",
            (limit,),
        )
        return [BackupSession.from_row(row) for row in cursor.fetchall()]

    def get_file_uploads_by_session(self, session_id: int) -> list[FileUpload]:
        """Get the upload records of a session in enumeration order."""
        cursor = self._get_connection().cursor()
        cursor.execute(
            "SELECT * FROM file_uploads WHERE session_id = ? ORDER BY id ASC",
            (session_id,),
        )
        return [FileUpload.from_row(row) for row in cursor.fetchall()]

    def fail_interrupted_sessions(self) -> int:
        """Mark sessions still 'running' from a previous process as failed.

        Returns:
            Number of sessions updated
        """
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "UPDATE backup_sessions SET status = ?, end_time = ? WHERE status = ?",
            (
                SessionStatus.FAILED.value,
                datetime.now(UTC).isoformat(),
                SessionStatus.RUNNING.value,
            ),
        )
        updated = cursor.rowcount
        conn.commit()
        return updated

    def close(self) -> None:
        """Close the database connection for the current thread."""
        if hasattr(self._local, "connection") and self._local.connection is not None:
            self._local.connection.close()
            self._local.connection = None
