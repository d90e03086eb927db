"""Filesystem traversal that groups image files by directory."""

import logging
import os
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from types import MappingProxyType

logger = logging.getLogger(__name__)

SUPPORTED_IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp"})

ROOT_DIRECTORY = ""


@dataclass(frozen=True)
class ImageFile:
    """An image file found under a source root."""

    relative_path: str
    name: str
    size: int
    modified: datetime


def is_image_file(filename: str) -> bool:
    """Check if a file is an image based on its extension."""
    return os.path.splitext(filename)[1].lower() in SUPPORTED_IMAGE_EXTENSIONS


def join_relative(relative_dir: str, name: str) -> str:
    """Relative path of a name inside a walked directory."""
    return f"{relative_dir}/{name}" if relative_dir else name


def walk(root: Path | str, relative_dir: str = ROOT_DIRECTORY) -> Mapping[str, tuple[str, ...]]:
    """Map each directory under root to the image files it directly contains.

    Keys are paths relative to root using "/" separators, with the root itself
    as "". Directories without images of their own are left out even when
    their subdirectories hold images. Entries are visited in name order and
    symlinked directories are not followed. An entry that cannot be read is
    logged and skipped.

    Args:
        root: Directory to traverse
        relative_dir: Directory below root to start from

    Returns:
        Read-only mapping of relative directory path to image file names
    """
    current = Path(root) / relative_dir if relative_dir else Path(root)

    try:
        with os.scandir(current) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError:
        logger.warning("Error reading directory %s", current, exc_info=True)
        return MappingProxyType({})

    images: list[str] = []
    subdirectories: list[str] = []
    for entry in entries:
        try:
            if entry.is_dir(follow_symlinks=False):
                subdirectories.append(entry.name)
            elif entry.is_file() and is_image_file(entry.name):
                images.append(entry.name)
        except OSError:
            logger.warning("Error processing %s", entry.path, exc_info=True)

    merged: dict[str, tuple[str, ...]] = {relative_dir: tuple(images)} if images else {}
    for name in subdirectories:
        merged = {**merged, **walk(root, join_relative(relative_dir, name))}

    return MappingProxyType(merged)


def iter_image_files(root: Path | str) -> Iterator[ImageFile]:
    """Yield every image under root with its size and modification time.

    Files come out in walk order: a directory's own images first, then those
    of its subdirectories. Files that disappear or cannot be stat'ed between
    listing and reading are logged and skipped.
    """
    root_path = Path(root)
    for relative_dir, names in walk(root_path).items():
        for name in names:
            relative_path = join_relative(relative_dir, name)
            try:
                stat_result = (root_path / relative_path).stat()
            except OSError:
                logger.warning("Error reading file stats for %s", relative_path, exc_info=True)
                continue
            yield ImageFile(
                relative_path=relative_path,
                name=name,
                size=stat_result.st_size,
                modified=datetime.fromtimestamp(stat_result.st_mtime, tz=UTC),
            )


def format_mtime(st_mtime: float) -> str:
    """ISO 8601 UTC timestamp for a stat modification time."""
    return datetime.fromtimestamp(st_mtime, tz=UTC).isoformat()


def directory_name(relative_dir: str) -> str:
    """Display name of a walked directory; the root is called 'root'."""
    return relative_dir.rsplit("/", 1)[-1] if relative_dir else "root"
