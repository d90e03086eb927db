"""Process-wide service container shared by request handlers."""

from dataclasses import dataclass

from flask import current_app

from photo_backup.config import Settings
from photo_backup.services.backup_service import BackupService
from photo_backup.services.database_service import DatabaseService
from photo_backup.services.log_service import LogService
from photo_backup.services.photo_service import PhotoService
from photo_backup.services.scan_service import ScanService

EXTENSION_KEY = "photo_backup"


@dataclass
class ServiceContext:
    """Owns every service for the lifetime of the application."""

    settings: Settings
    database: DatabaseService
    log: LogService
    scans: ScanService
    backups: BackupService
    photos: PhotoService

    @classmethod
    def create(cls, settings: Settings) -> "ServiceContext":
        """Construct and wire the services described by settings."""
        database = DatabaseService(settings.database_path)
        log = LogService(settings.log_directory)
        return cls(
            settings=settings,
            database=database,
            log=log,
            scans=ScanService(database, log),
            backups=BackupService(database, log, settings),
            photos=PhotoService(database),
        )

    def close(self, timeout: float = 10.0) -> None:
        """Stop any running backup and release the database connection."""
        self.backups.stop_backup()
        self.backups.join(timeout)
        self.database.close()


def get_services() -> ServiceContext:
    """Get the service context of the current Flask application."""
    services: ServiceContext = current_app.extensions[EXTENSION_KEY]
    return services
