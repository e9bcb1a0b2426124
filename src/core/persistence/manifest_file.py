"""
Manifest file persistence — parse, render and atomically rewrite.

Format: one requirement per line, ``name[extras]<specifier>  # comment``.
Blank lines and full-line comments are skipped on load (source line
numbers still count them). Rewrites go through a temp file in the same
directory and a rename, and are preceded by a timestamped backup
``<file>.bak.YYYYMMDD_HHMMSS`` of the previous content. A rewrite whose
content is unchanged touches nothing.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path

from packaging.requirements import InvalidRequirement, Requirement

from src.core.errors import ManifestError
from src.core.models.manifest import DependencyEntry, Manifest

logger = logging.getLogger(__name__)


@dataclass
class WriteResult:
    """What a manifest write did."""

    path: Path
    changed: bool
    backup: Path | None = None


# ── Parsing ────────────────────────────────────────────────

def _split_comment(line: str) -> tuple[str, str | None]:
    """Split ``"pandas>=2  # note"`` into requirement and comment."""
    if "#" not in line:
        return line.strip(), None
    body, _, comment = line.partition("#")
    return body.strip(), comment.strip() or None


def parse_line(line: str, line_no: int = 0) -> DependencyEntry | None:
    """Parse one manifest line; None for blank and comment-only lines.

    Raises:
        ManifestError: If the line is not a plain requirement.
    """
    body, comment = _split_comment(line)
    if not body:
        return None
    if body.startswith("-"):
        raise ManifestError(f"line {line_no}: pip options are not supported: {body}")

    try:
        req = Requirement(body)
    except InvalidRequirement as e:
        raise ManifestError(f"line {line_no}: invalid requirement {body!r}: {e}") from e

    if req.url:
        raise ManifestError(f"line {line_no}: URL requirements are not supported: {body}")
    if req.marker is not None:
        raise ManifestError(f"line {line_no}: environment markers are not supported: {body}")

    return DependencyEntry(
        name=req.name,
        version_spec=str(req.specifier),
        source_line=line_no,
        comment=comment,
        extras=tuple(sorted(req.extras)),
    )


def parse_manifest(text: str) -> Manifest:
    """Parse manifest text into a Manifest, keeping declaration order."""
    entries = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        entry = parse_line(line, line_no)
        if entry is not None:
            entries.append(entry)
    return Manifest(entries=entries)


def parse_lock(text: str) -> Manifest:
    """Parse compiled lock text, ignoring pip option lines (``--index-url`` ...)."""
    entries = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        if line.lstrip().startswith("-"):
            continue
        entry = parse_line(line, line_no)
        if entry is not None:
            entries.append(entry)
    return Manifest(entries=entries)


def load_manifest(path: Path) -> Manifest:
    """Read and parse a manifest file.

    Raises:
        ManifestError: If the file is missing, unreadable or malformed.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ManifestError(f"Manifest not found: {path}") from e
    except OSError as e:
        raise ManifestError(f"Cannot read manifest {path}: {e}") from e

    try:
        manifest = parse_manifest(text)
    except ManifestError as e:
        raise ManifestError(f"{path}: {e}") from e

    logger.debug("Loaded %d manifest entries from %s", len(manifest.entries), path)
    return manifest


# ── Writing ────────────────────────────────────────────────

def backup_file(path: Path) -> Path | None:
    """Copy ``path`` to ``path.bak.YYYYMMDD_HHMMSS``; None if there is nothing to back up."""
    if not path.is_file():
        return None

    ts = time.strftime("%Y%m%d_%H%M%S")
    dest = path.with_name(f"{path.name}.bak.{ts}")
    n = 1
    while dest.exists():
        dest = path.with_name(f"{path.name}.bak.{ts}_{n}")
        n += 1

    shutil.copy2(path, dest)
    logger.info("Backed up %s → %s", path, dest)
    return dest


def atomic_write_text(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` via temp file + rename."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


def write_text_with_backup(path: Path, content: str) -> WriteResult:
    """Replace a text file atomically, backing up the previous version first."""
    if path.is_file():
        try:
            if path.read_text(encoding="utf-8") == content:
                logger.debug("%s unchanged, not rewriting", path)
                return WriteResult(path=path, changed=False)
        except OSError as e:
            logger.warning("Cannot compare with existing %s: %s", path, e)

    backup = backup_file(path)
    atomic_write_text(path, content)
    logger.info("Wrote %s", path)
    return WriteResult(path=path, changed=True, backup=backup)


def save_manifest(manifest: Manifest, path: Path) -> WriteResult:
    """Persist a manifest (atomic, with backup, skipped when unchanged)."""
    return write_text_with_backup(path, manifest.render())
