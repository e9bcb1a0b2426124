"""
Environment lock — one provisioning run per environment directory.

A non-blocking exclusive advisory lock on ``<env_dir>.lock`` taken at
PREFLIGHT and released when the run ends, whatever the outcome. A held
lock fails fast with LockError; it is never waited on or retried.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any

from src.core.errors import LockError

logger = logging.getLogger(__name__)


def _lock_file(handle: IO[Any]) -> None:
    if os.name == "nt":
        import msvcrt

        msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)  # type: ignore[attr-defined]
        return
    import fcntl

    fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)


def _unlock_file(handle: IO[Any]) -> None:
    if os.name == "nt":
        import msvcrt

        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)  # type: ignore[attr-defined]
        return
    import fcntl

    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


@dataclass
class EnvLock:
    """A held environment lock. Use as a context manager or call release()."""

    path: Path
    _handle: IO[Any] | None

    @property
    def held(self) -> bool:
        return self._handle is not None

    def release(self) -> None:
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        try:
            _unlock_file(handle)
        except OSError as e:
            logger.warning("Failed to unlock %s: %s", self.path, e)
        finally:
            handle.close()
        logger.debug("Released environment lock %s", self.path)

    def __enter__(self) -> EnvLock:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


def acquire_env_lock(path: Path) -> EnvLock:
    """Take the lock at ``path`` or raise.

    Raises:
        LockError: If another run holds it, or the lock file cannot be opened.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handle = path.open("a+", encoding="utf-8")
    except OSError as e:
        raise LockError(f"Cannot open lock file {path}: {e}") from e

    try:
        _lock_file(handle)
    except OSError as e:
        handle.close()
        raise LockError(
            f"Environment is locked by another run ({path}); wait for it to finish"
        ) from e

    try:
        handle.seek(0)
        handle.truncate()
        handle.write(f"pid={os.getpid()}\n")
        handle.flush()
    except OSError as e:
        logger.debug("Could not record pid in %s: %s", path, e)

    logger.debug("Acquired environment lock %s", path)
    return EnvLock(path=path, _handle=handle)
