"""Read-side views of the photo index."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import quote

from photo_backup.services import walker
from photo_backup.services.database_service import DatabaseService
from photo_backup.services.models import Directory

THUMBNAIL_URL = "/api/photos/thumbnail/{folder_id}/{file_name}"

# selectedFolder value when there are no directories
NO_FOLDER = 0


@dataclass(frozen=True)
class PhotoView:
    """A photo as shown to clients."""

    id: int
    name: str
    date: str
    thumbnail: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "date": self.date, "thumbnail": self.thumbnail}


def thumbnail_url(folder_id: int, file_name: str) -> str:
    """Thumbnail reference for a photo in a folder."""
    return THUMBNAIL_URL.format(folder_id=folder_id, file_name=quote(file_name, safe=""))


class PhotoService:
    """Builds the directory and photo listing served to clients."""

    def __init__(self, database: DatabaseService) -> None:
        self._db = database

    def list_photos(self, base_dir: Path | str) -> dict[str, Any]:
        """List directories and their photos.

        Reads the index written by the last scan. While the index is empty
        the listing is read directly from base_dir instead, with ids numbered
        in walk order.

        Returns:
            Dict with selectedFolder, directories and photosByFolder
        """
        directories = self._db.get_all_photo_directories()
        if directories:
            photos_by_folder = {
                str(directory.id): [
                    PhotoView(
                        id=photo.id,
                        name=photo.file_name,
                        date=(photo.date_modified or "")[:10],
                        thumbnail=thumbnail_url(directory.id, photo.file_name),
                    ).to_dict()
                    for photo in self._db.get_photos_by_directory(directory.id)
                ]
                for directory in directories
            }
        else:
            directories, photos_by_folder = self._read_from_disk(Path(base_dir))

        return {
            "selectedFolder": directories[0].id if directories else NO_FOLDER,
            "directories": [directory.to_dict() for directory in directories],
            "photosByFolder": photos_by_folder,
        }

    def resolve_photo_file(
        self,
        base_dir: Path | str,
        folder_id: int,
        file_name: str,
    ) -> Path | None:
        """Find a photo on disk by folder id and file name.

        The stored path is checked against the filesystem because the index
        may be stale.

        Returns:
            Absolute path of the photo, or None if it cannot be found
        """
        base = Path(base_dir).resolve()
        directory = self._find_directory(base, folder_id)
        if directory is None:
            return None

        candidate = (base / directory.path / file_name).resolve()
        if not candidate.is_relative_to(base) or not candidate.is_file():
            return None
        return candidate

    def _find_directory(self, base: Path, folder_id: int) -> Directory | None:
        if self._db.count_photo_index()[0]:
            return self._db.get_photo_directory(folder_id)
        directories, _ = self._read_from_disk(base)
        return next((d for d in directories if d.id == folder_id), None)

    def _read_from_disk(
        self, base: Path
    ) -> tuple[list[Directory], dict[str, list[dict[str, Any]]]]:
        """Walk base directly, numbering directories and photos from 1."""
        directories: list[Directory] = []
        photos_by_folder: dict[str, list[dict[str, Any]]] = {}
        photo_id = 1

        for folder_id, (relative_dir, names) in enumerate(walker.walk(base).items(), start=1):
            views: list[dict[str, Any]] = []
            for name in names:
                path = base / walker.join_relative(relative_dir, name)
                try:
                    date = walker.format_mtime(path.stat().st_mtime)[:10]
                except OSError:
                    continue
                views.append(
                    PhotoView(
                        id=photo_id,
                        name=name,
                        date=date,
                        thumbnail=thumbnail_url(folder_id, name),
                    ).to_dict()
                )
                photo_id += 1

            directories.append(
                Directory(
                    id=folder_id,
                    name=walker.directory_name(relative_dir),
                    path=relative_dir,
                    photo_count=len(views),
                )
            )
            photos_by_folder[str(folder_id)] = views

        return directories, photos_by_folder
