"""Configuration management for photo_backup"""

import json
import os
import tomllib
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# Base directory for the project
BASE_DIR = Path(__file__).resolve().parent.parent

# Load environment variables from .env file
ENV_FILE = BASE_DIR / ".env"
load_dotenv(ENV_FILE)

# Settings file paths
SETTINGS_FILE = BASE_DIR / "settings.json"
PYPROJECT_FILE = BASE_DIR / "pyproject.toml"

# Environment variable names for configuration
ENV_PHOTOS_DIR = "PHOTOS_DIR"
ENV_DATABASE_PATH = "PHOTO_BACKUP_DB"
ENV_LOG_DIRECTORY = "PHOTO_BACKUP_LOG_DIR"
ENV_LOCAL_BACKUP_DIR = "PHOTO_BACKUP_LOCAL_DIR"
ENV_AWS_PROFILE = "PHOTO_BACKUP_AWS_PROFILE"
ENV_AWS_REGION = "PHOTO_BACKUP_AWS_REGION"
ENV_S3_BUCKET = "PHOTO_BACKUP_S3_BUCKET"

ENV_VARIABLES = {
    "photos_dir": ENV_PHOTOS_DIR,
    "database_path": ENV_DATABASE_PATH,
    "log_directory": ENV_LOG_DIRECTORY,
    "local_backup_dir": ENV_LOCAL_BACKUP_DIR,
    "aws_profile": ENV_AWS_PROFILE,
    "aws_region": ENV_AWS_REGION,
    "s3_bucket": ENV_S3_BUCKET,
}


def get_package_version() -> str:
    """Get the package version from pyproject.toml."""
    try:
        with open(PYPROJECT_FILE, "rb") as f:
            pyproject = tomllib.load(f)
        return str(pyproject.get("project", {}).get("version", "0.0.0"))
    except (OSError, tomllib.TOMLDecodeError):
        return "0.0.0"


def _resolve_path(value: str) -> Path:
    """Resolve a configured path, treating relative paths as relative to BASE_DIR."""
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = BASE_DIR / path
    return path


class Settings:
    """Application settings assembled from defaults, a JSON file and the environment."""

    _settings: dict[str, Any]

    def __init__(
        self,
        settings_file: Path | None = SETTINGS_FILE,
        overrides: dict[str, Any] | None = None,
    ) -> None:
        self._settings_file = settings_file
        self._overrides = dict(overrides or {})
        self._load_settings()

    def _load_settings(self) -> None:
        """Load settings, with explicit overrides and environment variables taking precedence.

        Priority order (highest to lowest):
        1. Explicit overrides passed to the constructor
        2. Environment variables (from .env file or system)
        3. settings.json (user-saved settings)
        4. Hardcoded defaults
        """
        defaults: dict[str, Any] = {
            "photos_dir": "sample-photos",
            "database_path": "data/photo-backup.db",
            "log_directory": "logs",
            "local_backup_dir": "backups",
            "aws_profile": "default",
            "aws_region": "us-west-2",
            "s3_bucket": "",
        }

        if self._settings_file is not None and self._settings_file.exists():
            with open(self._settings_file, encoding="utf-8") as f:
                defaults.update(json.load(f))

        for key, env_name in ENV_VARIABLES.items():
            value = os.environ.get(env_name)
            if value is not None:
                defaults[key] = value

        defaults.update(self._overrides)
        self._settings = defaults

    @property
    def photos_dir(self) -> Path:
        """Source directory holding the photos to scan and back up."""
        return _resolve_path(str(self._settings["photos_dir"]))

    @property
    def database_path(self) -> Path:
        """Location of the SQLite database file."""
        return _resolve_path(str(self._settings["database_path"]))

    @property
    def log_directory(self) -> Path:
        """Directory for JSONL event logs and CSV summaries."""
        return _resolve_path(str(self._settings["log_directory"]))

    @property
    def local_backup_dir(self) -> Path:
        """Default destination for local backups."""
        return _resolve_path(str(self._settings["local_backup_dir"]))

    @property
    def aws_profile(self) -> str:
        """Get the AWS profile name."""
        return str(self._settings.get("aws_profile", "default"))

    @property
    def aws_region(self) -> str:
        """Get the AWS region."""
        return str(self._settings.get("aws_region", "us-west-2"))

    @property
    def s3_bucket(self) -> str:
        """Get the S3 bucket name."""
        return str(self._settings.get("s3_bucket", ""))
