"""Pytest configuration and fixtures for the photo_backup tests."""

import os
from collections.abc import Callable, Generator
from datetime import UTC, datetime
from pathlib import Path

import pytest
from flask import Flask
from flask.testing import FlaskClient

from photo_backup import create_app
from photo_backup.config import Settings
from photo_backup.context import EXTENSION_KEY
from photo_backup.services.database_service import DatabaseService
from photo_backup.services.log_service import LogService

# Modification time given to every fixture photo
PHOTO_MTIME = datetime(2024, 1, 15, 12, 0, tzinfo=UTC).timestamp()


def write_file(path: Path, data: bytes = b"\xff\xd8\xff\xe0fake-image") -> Path:
    """Create a file (and its parents) with a fixed modification time."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    os.utime(path, (PHOTO_MTIME, PHOTO_MTIME))
    return path


@pytest.fixture
def photo_tree(tmp_path: Path) -> Path:
    """A small photo tree: a.jpg and b.txt at the root, c.png in sub/."""
    root = tmp_path / "photos"
    write_file(root / "a.jpg", b"a" * 100)
    write_file(root / "b.txt", b"not an image")
    write_file(root / "sub" / "c.png", b"c" * 250)
    return root


@pytest.fixture
def empty_tree(tmp_path: Path) -> Path:
    """A source directory without any files."""
    root = tmp_path / "empty"
    root.mkdir()
    return root


@pytest.fixture
def settings(tmp_path: Path, photo_tree: Path) -> Settings:
    """Settings pointing every path into the test's temp directory."""
    return Settings(
        settings_file=None,
        overrides={
            "photos_dir": str(photo_tree),
            "database_path": str(tmp_path / "data" / "test.db"),
            "log_directory": str(tmp_path / "logs"),
            "local_backup_dir": str(tmp_path / "backups"),
            "aws_profile": "test-profile",
            "aws_region": "us-west-2",
            "s3_bucket": "test-bucket",
        },
    )


@pytest.fixture
def database(settings: Settings) -> Generator[DatabaseService, None, None]:
    """Database service backed by a temp file."""
    db = DatabaseService(settings.database_path)
    yield db
    db.close()


@pytest.fixture
def log_service(settings: Settings) -> LogService:
    """Log service writing into a temp directory."""
    return LogService(settings.log_directory)


@pytest.fixture
def app(settings: Settings) -> Generator[Flask, None, None]:
    """Create application for testing."""
    app = create_app(settings)
    app.config["TESTING"] = True

    yield app

    app.extensions[EXTENSION_KEY].close()


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    """Create test client."""
    return app.test_client()


@pytest.fixture
def make_file() -> Callable[..., Path]:
    """Factory for files with a fixed modification time."""
    return write_file
