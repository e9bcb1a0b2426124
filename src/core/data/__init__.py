"""
Central data registry for static catalogs.

Loads base catalogs from ``src/core/data/catalogs/`` once at first access
and caches them for the process lifetime.  The planner, the constraint
pass and the verifier all read from this single source of truth.

Usage::

    from src.core.data import get_registry

    registry = get_registry()
    signatures = registry.signatures        # list[IncompatibilitySignature]
    pins = registry.backtracking_pins       # dict[str, str]
"""

from __future__ import annotations

import json
import logging
from functools import cached_property
from pathlib import Path

from packaging.utils import canonicalize_name

from src.core.models.signature import IncompatibilitySignature

logger = logging.getLogger(__name__)

_DATA_DIR = Path(__file__).parent


def _load_json(relative_path: str) -> list | dict:
    """Load a JSON file relative to the data directory."""
    path = _DATA_DIR / relative_path
    if not path.exists():
        logger.warning("Data file not found: %s", path)
        return [] if relative_path.endswith("s.json") else {}
    with open(path, encoding="utf-8") as f:
        return json.load(f)


class DataRegistry:
    """Central registry for all static data catalogs.

    Each property lazily loads its file on first access and caches the
    result for the lifetime of the instance.  Create one instance per
    process (see ``get_registry``).
    """

    # ── Compatibility rules ──────────────────────────────────────

    @cached_property
    def signatures(self) -> list[IncompatibilitySignature]:
        """Built-in incompatibility signatures, in declaration order."""
        data = _load_json("catalogs/signatures.json")
        result = [IncompatibilitySignature.model_validate(item) for item in data]
        logger.debug("Loaded %d built-in signatures", len(result))
        return result

    # ── Smart constraints ────────────────────────────────────────

    @cached_property
    def backtracking_pins(self) -> dict[str, str]:
        """Packages known to send the resolver into long backtracking → exact version."""
        data = _load_json("catalogs/backtracking_pins.json")
        logger.debug("Loaded %d backtracking pins", len(data))
        return {canonicalize_name(k): v for k, v in data.items()}

    @cached_property
    def conflict_matrix(self) -> list[dict]:
        """Package combinations and the specifiers that keep them installable."""
        data = _load_json("catalogs/conflict_matrix.json")
        logger.debug("Loaded %d conflict matrix rules", len(data))
        return data

    # ── Verification ─────────────────────────────────────────────

    @cached_property
    def import_names(self) -> dict[str, str]:
        """Distribution name → top-level import name, where they differ."""
        data = _load_json("catalogs/import_names.json")
        return {canonicalize_name(k): v for k, v in data.items()}

    @cached_property
    def critical_packages(self) -> list[str]:
        """Distributions probed by import after install, unless configured."""
        data = _load_json("catalogs/critical_packages.json")
        logger.debug("Loaded %d default critical packages", len(data))
        return data

    # ── Manifest template ────────────────────────────────────────

    @cached_property
    def default_manifest(self) -> str:
        """Text of the manifest written when a project has none."""
        path = _DATA_DIR / "catalogs" / "default_manifest.in"
        return path.read_text(encoding="utf-8")

    def import_name(self, distribution: str) -> str:
        """Top-level module to import to prove ``distribution`` works."""
        key = canonicalize_name(distribution)
        return self.import_names.get(key, key.replace("-", "_"))


# ── Module-level singleton ───────────────────────────────────────

_registry: DataRegistry | None = None


def get_registry() -> DataRegistry:
    """Return the process-level DataRegistry singleton.

    Creates the instance on first call; subsequent calls return the
    same object.
    """
    global _registry  # noqa: PLW0603
    if _registry is None:
        _registry = DataRegistry()
    return _registry
