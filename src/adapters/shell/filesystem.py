"""
Filesystem adapter — the directory operations the engine needs.

Removal returns a Receipt instead of raising; whether a failed or
partial removal is acceptable is the engine's decision, made by checking
``is_empty`` afterwards.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from src.adapters.base import Filesystem
from src.core.models.receipt import ErrorKind, Receipt

logger = logging.getLogger(__name__)

_GIB = 1024 ** 3


def nearest_existing(path: Path) -> Path:
    """``path`` or its closest existing ancestor."""
    current = path.absolute()
    while not current.exists() and current.parent != current:
        current = current.parent
    return current


class LocalFilesystem(Filesystem):
    """Operations on the local disk."""

    @property
    def name(self) -> str:
        return "local-fs"

    def is_available(self) -> bool:
        return True  # filesystem is always available

    def exists(self, path: Path) -> bool:
        return path.exists()

    def is_empty(self, path: Path) -> bool:
        if not path.exists():
            return True
        if not path.is_dir():
            return False
        try:
            return next(path.iterdir(), None) is None
        except OSError:
            return False

    def remove_tree(self, path: Path) -> Receipt:
        if not path.exists() and not path.is_symlink():
            return Receipt.skip(self.name, "remove_tree", f"{path} does not exist", target=str(path))

        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
        except OSError as e:
            logger.error("Failed to remove %s: %s", path, e)
            return Receipt.failure(
                self.name, "remove_tree", f"Cannot remove {path}: {e}",
                kind=ErrorKind.FATAL, target=str(path),
            )

        logger.info("Removed %s", path)
        return Receipt.success(self.name, "remove_tree", f"removed {path}", target=str(path))

    def move(self, source: Path, destination: Path) -> Receipt:
        if not source.exists() and not source.is_symlink():
            return Receipt.skip(self.name, "move", f"{source} does not exist", target=str(source))
        if destination.exists():
            return Receipt.failure(
                self.name, "move", f"Cannot move {source}: {destination} already exists",
                kind=ErrorKind.CONFLICT, target=str(source),
            )

        try:
            source.rename(destination)
        except OSError as e:
            logger.error("Failed to move %s to %s: %s", source, destination, e)
            return Receipt.failure(
                self.name, "move", f"Cannot move {source}: {e}",
                kind=ErrorKind.FATAL, target=str(source),
            )

        logger.info("Moved %s to %s", source, destination)
        return Receipt.success(self.name, "move", f"moved {source} to {destination}", target=str(source))

    def free_disk_gb(self, path: Path) -> float:
        try:
            usage = shutil.disk_usage(nearest_existing(path))
        except OSError as e:
            logger.warning("Cannot measure free space for %s: %s", path, e)
            return 0.0
        return round(usage.free / _GIB, 2)
