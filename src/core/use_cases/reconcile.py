"""
Reconcile use case — constrain and deduplicate the manifest.

Constraint pins come from the built-in backtracking catalog plus, when
the compatibility rules are on, the matching signatures' package pins
(those win: they are specific to this host). They only tighten floating
and ranged entries, and the conflict matrix fills in ranges for floating
entries that are known to clash. Reconciliation then leaves exactly one
entry per package; only signature pins decide its conflicts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from src.core.config.loader import ConfigError, load_config
from src.core.data import DataRegistry, get_registry
from src.core.errors import ManifestError
from src.core.models.config import ProvisionConfig
from src.core.models.host import HostProfile
from src.core.models.manifest import Manifest, ReconcileReport
from src.core.persistence.manifest_file import WriteResult, load_manifest, parse_manifest, save_manifest
from src.core.services import host_profile
from src.core.services.constraints import AppliedConstraint, apply_constraints
from src.core.services.reconciler import reconcile
from src.core.use_cases.profile import Recommendation, recommendation

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """The manifest before and after, and every change made on the way."""

    original: Manifest | None = None
    manifest: Manifest | None = None
    constraints: list[AppliedConstraint] = field(default_factory=list)
    reports: list[ReconcileReport] = field(default_factory=list)
    created: bool = False
    write: WriteResult | None = None
    error: str | None = None

    @property
    def changed(self) -> bool:
        return self.created or bool(self.constraints) or bool(self.reports)

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "created": self.created,
            "changed": self.changed,
            "constraints": [c.to_dict() for c in self.constraints],
            "reports": [r.to_dict() for r in self.reports],
            "manifest": [e.requirement() for e in self.manifest.entries] if self.manifest else [],
            "written": str(self.write.path) if self.write and self.write.changed else None,
            "backup": str(self.write.backup) if self.write and self.write.backup else None,
        }


def read_manifest(config: ProvisionConfig, data: DataRegistry | None = None) -> tuple[Manifest, bool]:
    """The project manifest, or the built-in default set when there is none.

    Returns:
        (manifest, created) where ``created`` means the default was used.

    Raises:
        ManifestError: If the file exists but cannot be parsed.
    """
    path = config.manifest_path
    if path.is_file():
        return load_manifest(path), False
    logger.warning("No manifest at %s; starting from the default package set", path)
    return parse_manifest((data or get_registry()).default_manifest), True


def reconcile_inputs(
    config: ProvisionConfig,
    rec: Recommendation,
    data: DataRegistry | None = None,
) -> ReconcileResult:
    """Read the manifest and run constraints then reconciliation, without writing."""
    data = data or get_registry()
    original, created = read_manifest(config, data)

    constraint_pins = {**data.backtracking_pins, **rec.package_pins}
    constrained, applied = apply_constraints(original, constraint_pins, data.conflict_matrix)
    # only a matching signature may overrule "highest wins"
    reconciled, reports = reconcile(constrained, rec.package_pins)

    for report in reports:
        logger.info("Reconciled %s", report.message)

    return ReconcileResult(
        original=original,
        manifest=reconciled,
        constraints=applied,
        reports=reports,
        created=created,
    )


def persist(result: ReconcileResult, config: ProvisionConfig) -> None:
    """Write the reconciled manifest back when anything changed."""
    if result.manifest is None or not result.changed:
        return
    result.write = save_manifest(result.manifest, config.manifest_path)


def reconcile_manifest(
    config_path: Path | None = None,
    write: bool = False,
    adaptive: bool | None = None,
    profile: HostProfile | None = None,
) -> ReconcileResult:
    """Reconcile the project manifest, optionally persisting the result."""
    try:
        config = load_config(config_path)
        profile = profile or host_profile.collect(config.env_path)
        result = reconcile_inputs(config, recommendation(config, profile, adaptive))
    except (ConfigError, ManifestError) as e:
        return ReconcileResult(error=str(e))

    if write:
        try:
            persist(result, config)
        except OSError as e:
            result.error = f"Cannot write {config.manifest_path}: {e}"
    return result
