"""Tests for the backup service module."""

import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import patch

import boto3
import pytest
from moto import mock_aws

from photo_backup.config import Settings
from photo_backup.services import s3_service
from photo_backup.services.backup_service import (
    BackupFile,
    BackupService,
    BackupStatus,
    InvalidDestinationError,
)
from photo_backup.services.database_service import DatabaseService
from photo_backup.services.log_service import LogService
from photo_backup.services.models import Destination, FileStatus, SessionStatus

JOIN_TIMEOUT = 10


@pytest.fixture
def backup_service(
    database: DatabaseService, log_service: LogService, settings: Settings
) -> BackupService:
    """Create a BackupService over temp storage."""
    return BackupService(database, log_service, settings)


@pytest.fixture
def five_photos(tmp_path: Path, make_file: Callable[..., Path]) -> Path:
    """A source directory holding five images."""
    root = tmp_path / "five"
    for i in range(5):
        make_file(root / f"img{i}.jpg", bytes(10 * (i + 1)))
    return root


class TestStartBackup:
    """Tests for start_backup method."""

    def test_local_backup_copies_files(
        self, backup_service: BackupService, photo_tree: Path, tmp_path: Path
    ) -> None:
        """Test a full local backup of the mixed tree."""
        target = tmp_path / "target"

        status = backup_service.start_backup(photo_tree, "local", str(target))
        assert status.is_running is True
        assert status.total_files == 2
        assert status.total_size == 350
        assert backup_service.join(JOIN_TIMEOUT)

        assert (target / "a.jpg").read_bytes() == b"a" * 100
        assert (target / "sub" / "c.png").read_bytes() == b"c" * 250
        assert not (target / "b.txt").exists()

        final = backup_service.get_status()
        assert final.is_running is False
        assert final.completed_files == 2
        assert final.failed_files == 0
        assert all(f.status == FileStatus.COMPLETED for f in final.files)

    def test_local_backup_defaults_to_configured_dir(
        self, backup_service: BackupService, photo_tree: Path, settings: Settings
    ) -> None:
        """Test that a local backup without a path uses the configured directory."""
        backup_service.start_backup(photo_tree, "local")
        assert backup_service.join(JOIN_TIMEOUT)

        assert (settings.local_backup_dir / "sub" / "c.png").exists()

    def test_session_persisted_as_completed(
        self, backup_service: BackupService, database: DatabaseService, photo_tree: Path
    ) -> None:
        """Test that a finished session and its uploads are stored."""
        status = backup_service.start_backup(photo_tree, "local")
        assert backup_service.join(JOIN_TIMEOUT)

        session = database.get_backup_session(status.session_id)
        assert session is not None
        assert session.status == SessionStatus.COMPLETED
        assert session.completed_files == 2
        assert session.end_time is not None
        assert session.destination == Destination.LOCAL

        uploads = database.get_file_uploads_by_session(status.session_id)
        assert [u.file_path for u in uploads] == ["a.jpg", "sub/c.png"]
        assert all(u.status == FileStatus.COMPLETED for u in uploads)
        assert all(u.upload_time for u in uploads)

    def test_empty_source_completes_immediately(
        self, backup_service: BackupService, database: DatabaseService, empty_tree: Path
    ) -> None:
        """Test that a source without images produces a completed empty session."""
        status = backup_service.start_backup(empty_tree, "local")

        assert status.is_running is False
        assert status.total_files == 0
        assert status.session_id is not None

        session = database.get_backup_session(status.session_id)
        assert session is not None
        assert session.status == SessionStatus.COMPLETED
        assert session.total_files == 0
        assert session.end_time is not None

    def test_invalid_destination(
        self, backup_service: BackupService, database: DatabaseService, photo_tree: Path
    ) -> None:
        """Test that an unknown destination is rejected without creating a session."""
        with pytest.raises(InvalidDestinationError):
            backup_service.start_backup(photo_tree, "ftp")

        assert database.get_backup_sessions() == []
        assert backup_service.get_status().session_id is None

    def test_s3_without_bucket(
        self,
        database: DatabaseService,
        log_service: LogService,
        photo_tree: Path,
    ) -> None:
        """Test that S3 is rejected when no bucket is configured."""
        no_bucket = Settings(settings_file=None, overrides={"s3_bucket": ""})
        service = BackupService(database, log_service, no_bucket)

        with pytest.raises(InvalidDestinationError):
            service.start_backup(photo_tree, "s3")

    def test_only_one_session_runs(
        self, backup_service: BackupService, database: DatabaseService, five_photos: Path
    ) -> None:
        """Test that starting while running returns the running session."""
        release = threading.Event()

        def blocking_transfer(*_args: Any) -> dict[str, Any]:
            release.wait(JOIN_TIMEOUT)
            return {"success": True, "error": None}

        with patch.object(BackupService, "_transfer_local", side_effect=blocking_transfer):
            first = backup_service.start_backup(five_photos, "local")
            second = backup_service.start_backup(five_photos, "local")
            release.set()
            assert backup_service.join(JOIN_TIMEOUT)

        assert second.session_id == first.session_id
        assert second.is_running is True
        assert len(database.get_backup_sessions()) == 1

    def test_new_session_after_finish(
        self, backup_service: BackupService, photo_tree: Path
    ) -> None:
        """Test that a second backup can start once the first finished."""
        first = backup_service.start_backup(photo_tree, "local")
        assert backup_service.join(JOIN_TIMEOUT)

        second = backup_service.start_backup(photo_tree, "local")
        assert backup_service.join(JOIN_TIMEOUT)

        assert second.session_id != first.session_id
        assert [s.id for s in backup_service.get_backup_history()] == [
            second.session_id,
            first.session_id,
        ]

    def test_interrupted_sessions_failed_on_startup(
        self,
        database: DatabaseService,
        log_service: LogService,
        settings: Settings,
    ) -> None:
        """Test that sessions left running by a previous process are failed."""
        session_id, _ = database.create_backup_session(
            start_time="2026-01-01T00:00:00+00:00",
            source_directory="/photos",
            destination="local",
            destination_path=None,
            files=[],
            total_size=0,
        )

        BackupService(database, log_service, settings)

        session = database.get_backup_session(session_id)
        assert session is not None
        assert session.status == SessionStatus.FAILED


class TestBackupProcessing:
    """Tests for the per-file processing loop."""

    def test_files_processed_in_order(
        self, backup_service: BackupService, tmp_path: Path, make_file: Callable[..., Path]
    ) -> None:
        """Test that files are transferred one at a time in walk order."""
        root = tmp_path / "ordered"
        for name in ("z.jpg", "m.png", "b/y.jpg", "a/x.jpg"):
            make_file(root / name)
        seen: list[str] = []

        def recording_transfer(
            _target: Path, _source: Path, backup_file: BackupFile
        ) -> dict[str, Any]:
            seen.append(backup_file.path)
            return {"success": True, "error": None}

        with patch.object(BackupService, "_transfer_local", side_effect=recording_transfer):
            backup_service.start_backup(root, "local")
            assert backup_service.join(JOIN_TIMEOUT)

        assert seen == ["m.png", "z.jpg", "a/x.jpg", "b/y.jpg"]

    def test_progress_is_monotonic(
        self,
        backup_service: BackupService,
        database: DatabaseService,
        five_photos: Path,
    ) -> None:
        """Test that each file starts with every earlier file already processed."""
        observed: list[tuple[int, FileStatus]] = []

        def observing_transfer(
            _target: Path, _source: Path, backup_file: BackupFile
        ) -> dict[str, Any]:
            status = backup_service.get_status()
            current = next(f for f in status.files if f.path == backup_file.path)
            observed.append((status.processed_files, current.status))
            return {"success": True, "error": None}

        with patch.object(BackupService, "_transfer_local", side_effect=observing_transfer):
            backup_service.start_backup(five_photos, "local")
            assert backup_service.join(JOIN_TIMEOUT)

        assert observed == [(i, FileStatus.IN_PROGRESS) for i in range(5)]
        assert backup_service.get_status().progress_percent == 100.0

    def test_failure_does_not_stop_session(
        self,
        backup_service: BackupService,
        database: DatabaseService,
        five_photos: Path,
    ) -> None:
        """Test that a failed file is recorded and the rest still run."""

        def flaky_transfer(
            _target: Path, _source: Path, backup_file: BackupFile
        ) -> dict[str, Any]:
            if backup_file.name == "img1.jpg":
                return {"success": False, "error": "Access denied"}
            if backup_file.name == "img3.jpg":
                raise OSError("No space left on device")
            return {"success": True, "error": None}

        with patch.object(BackupService, "_transfer_local", side_effect=flaky_transfer):
            status = backup_service.start_backup(five_photos, "local")
            assert backup_service.join(JOIN_TIMEOUT)

        session = database.get_backup_session(status.session_id)
        assert session is not None
        assert session.status == SessionStatus.COMPLETED
        assert session.completed_files == 3
        assert session.failed_files == 2

        uploads = {u.file_name: u for u in database.get_file_uploads_by_session(status.session_id)}
        assert uploads["img1.jpg"].error_message == "Access denied"
        assert uploads["img3.jpg"].error_message == "No space left on device"
        assert uploads["img4.jpg"].status == FileStatus.COMPLETED

    def test_stop_after_two_files(
        self,
        backup_service: BackupService,
        database: DatabaseService,
        five_photos: Path,
    ) -> None:
        """Test that stopping during the second file halts after it completes."""
        calls: list[str] = []

        def stopping_transfer(
            _target: Path, _source: Path, backup_file: BackupFile
        ) -> dict[str, Any]:
            calls.append(backup_file.name)
            if len(calls) == 2:
                backup_service.stop_backup()
            return {"success": True, "error": None}

        with patch.object(BackupService, "_transfer_local", side_effect=stopping_transfer):
            status = backup_service.start_backup(five_photos, "local")
            assert backup_service.join(JOIN_TIMEOUT)

        assert calls == ["img0.jpg", "img1.jpg"]

        session = database.get_backup_session(status.session_id)
        assert session is not None
        assert session.status == SessionStatus.STOPPED
        assert session.completed_files == 2
        assert session.end_time is not None

        uploads = database.get_file_uploads_by_session(status.session_id)
        assert [u.status for u in uploads] == [
            FileStatus.COMPLETED,
            FileStatus.COMPLETED,
            FileStatus.PENDING,
            FileStatus.PENDING,
            FileStatus.PENDING,
        ]

        final = backup_service.get_status()
        assert final.is_running is False
        assert final.completed_files == 2

    def test_restart_waits_for_stopped_transfer(
        self,
        backup_service: BackupService,
        database: DatabaseService,
        five_photos: Path,
    ) -> None:
        """Test that a restart right after a stop never overlaps two transfers."""
        started = threading.Event()
        active = 0
        max_active = 0
        counter_lock = threading.Lock()

        def slow_transfer(*_args: Any) -> dict[str, Any]:
            nonlocal active, max_active
            with counter_lock:
                active += 1
                max_active = max(max_active, active)
            started.set()
            time.sleep(0.2)
            with counter_lock:
                active -= 1
            return {"success": True, "error": None}

        with patch.object(BackupService, "_transfer_local", side_effect=slow_transfer):
            first = backup_service.start_backup(five_photos, "local")
            assert started.wait(JOIN_TIMEOUT)
            backup_service.stop_backup()
            second = backup_service.start_backup(five_photos, "local")
            backup_service.stop_backup()
            assert backup_service.join(JOIN_TIMEOUT)

        assert max_active == 1
        assert second.session_id != first.session_id

        session = database.get_backup_session(first.session_id)
        assert session is not None
        assert session.status == SessionStatus.STOPPED
        assert session.completed_files == 1
        uploads = database.get_file_uploads_by_session(first.session_id)
        assert uploads[0].status == FileStatus.COMPLETED
        assert FileStatus.IN_PROGRESS not in [u.status for u in uploads]

    def test_stop_when_idle(self, backup_service: BackupService) -> None:
        """Test that stopping with nothing running is harmless."""
        status = backup_service.stop_backup()
        assert status.is_running is False
        assert status.session_id is None

    def test_writes_csv_summary(
        self, backup_service: BackupService, log_service: LogService, photo_tree: Path
    ) -> None:
        """Test that a finished session leaves a CSV summary in the log directory."""
        status = backup_service.start_backup(photo_tree, "local")
        assert backup_service.join(JOIN_TIMEOUT)

        csv_files = [f for f in log_service.list_log_files() if f["type"] == "csv"]
        assert len(csv_files) == 1
        assert csv_files[0]["filename"].endswith(f"-{status.session_id}.csv")


class TestS3Backup:
    """Tests for backups to S3 using moto mock."""

    @pytest.fixture(autouse=True)
    def aws_credentials(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Fake credentials so nothing can reach a real account."""
        monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
        monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
        monkeypatch.setenv("AWS_DEFAULT_REGION", "us-west-2")

    def test_uploads_under_prefix(
        self, backup_service: BackupService, database: DatabaseService, photo_tree: Path
    ) -> None:
        """Test that objects are written with the prefix and content type."""
        with mock_aws():
            client = boto3.client("s3", region_name="us-west-2")
            client.create_bucket(
                Bucket="test-bucket",
                CreateBucketConfiguration={"LocationConstraint": "us-west-2"},
            )

            with patch.object(s3_service, "create_s3_client", return_value=client):
                status = backup_service.start_backup(photo_tree, "s3", "photos/2026")
                assert backup_service.join(JOIN_TIMEOUT)

            keys = sorted(
                obj["Key"] for obj in client.list_objects_v2(Bucket="test-bucket")["Contents"]
            )
            head = client.head_object(Bucket="test-bucket", Key="photos/2026/sub/c.png")

        assert keys == ["photos/2026/a.jpg", "photos/2026/sub/c.png"]
        assert head["ContentType"] == "image/png"

        session = database.get_backup_session(status.session_id)
        assert session is not None
        assert session.status == SessionStatus.COMPLETED
        assert session.destination == Destination.S3

    def test_missing_bucket_fails_session(
        self, backup_service: BackupService, database: DatabaseService, photo_tree: Path
    ) -> None:
        """Test that an inaccessible bucket fails the session before any upload."""
        with mock_aws():
            client = boto3.client("s3", region_name="us-west-2")

            with patch.object(s3_service, "create_s3_client", return_value=client):
                status = backup_service.start_backup(photo_tree, "s3")
                assert backup_service.join(JOIN_TIMEOUT)

        session = database.get_backup_session(status.session_id)
        assert session is not None
        assert session.status == SessionStatus.FAILED
        assert session.completed_files == 0
        assert backup_service.get_status().is_running is False

    def test_client_creation_error_fails_session(
        self, backup_service: BackupService, database: DatabaseService, photo_tree: Path
    ) -> None:
        """Test that a bad AWS profile fails the session."""
        with patch.object(
            s3_service, "create_s3_client", side_effect=RuntimeError("profile not found")
        ):
            status = backup_service.start_backup(photo_tree, "s3")
            assert backup_service.join(JOIN_TIMEOUT)

        session = database.get_backup_session(status.session_id)
        assert session is not None
        assert session.status == SessionStatus.FAILED


class TestBackupStatus:
    """Tests for the BackupStatus record."""

    def test_snapshot_is_independent(self) -> None:
        """Test that mutating a snapshot leaves the original untouched."""
        status = BackupStatus(files=[BackupFile(path="a.jpg", name="a.jpg", size=1)])

        copy = status.snapshot()
        copy.files[0].status = FileStatus.COMPLETED
        copy.completed_files = 1

        assert status.files[0].status == FileStatus.PENDING
        assert status.completed_files == 0

    def test_progress_percent(self) -> None:
        """Test progress percentage by file count."""
        assert BackupStatus().progress_percent == 0.0
        status = BackupStatus(total_files=3, completed_files=1, failed_files=1)
        assert status.progress_percent == 66.7

    def test_to_dict(self) -> None:
        """Test the serialized status keys."""
        data = BackupStatus(destination=Destination.LOCAL, total_size=2048).to_dict()
        assert data["destination"] == "local"
        assert data["totalSizeFormatted"] == "2.0 KB"
        assert data["isRunning"] is False
        assert data["files"] == []
