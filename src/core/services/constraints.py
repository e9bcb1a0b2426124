"""
Smart constraints — pre-resolution pins that keep the resolver out of trouble.

Two sources, both static data:

- **Backtracking pins**: packages whose open ranges send the resolver
  into very long backtracking. Any entry for them that is not already an
  exact pin is rewritten to ``==<pin>``.
- **Conflict matrix**: package combinations known to clash. When every
  package of a combination is declared, the listed specifiers are
  applied to entries that are still floating. Specifiers from several
  matching combinations for one package are intersected.

Runs before reconciliation. Pure: the input manifest is never mutated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from packaging.specifiers import SpecifierSet
from packaging.utils import canonicalize_name

from src.core.models.manifest import DependencyEntry, Manifest

logger = logging.getLogger(__name__)

CONSTRAINT_NOTE = "smart constraint"


@dataclass(frozen=True)
class AppliedConstraint:
    """One rewrite performed by the constraint pass."""

    name: str
    before: str
    after: str
    source: str

    @property
    def message(self) -> str:
        return f"{self.name}: {self.before or '<floating>'} -> {self.after} ({self.source})"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "before": self.before,
            "after": self.after,
            "source": self.source,
        }


def matrix_constraints(
    names: set[str],
    matrix: list[dict],
) -> dict[str, tuple[str, str]]:
    """Specifiers implied by the conflict matrix: name → (spec, source)."""
    combined: dict[str, SpecifierSet] = {}
    sources: dict[str, list[str]] = {}

    for rule in matrix:
        combo = [canonicalize_name(p) for p in rule.get("packages", [])]
        if not combo or not all(p in names for p in combo):
            continue
        label = "+".join(combo)
        logger.info("Conflict matrix: %s declared together", label)
        for pkg, spec in rule.get("constraints", {}).items():
            key = canonicalize_name(pkg)
            combined[key] = combined.get(key, SpecifierSet()) & SpecifierSet(spec)
            sources.setdefault(key, []).append(label)

    return {
        key: (str(spec), "conflict matrix " + ", ".join(sources[key]))
        for key, spec in combined.items()
    }


def _annotate(comment: str | None) -> str:
    if not comment:
        return CONSTRAINT_NOTE
    if CONSTRAINT_NOTE in comment:
        return comment
    return f"{comment} ({CONSTRAINT_NOTE})"


def apply_constraints(
    manifest: Manifest,
    pins: dict[str, str],
    matrix: list[dict],
) -> tuple[Manifest, list[AppliedConstraint]]:
    """Rewrite entries per the pins and the conflict matrix.

    Args:
        manifest: The manifest as declared.
        pins: Package → exact version (backtracking catalog, plus signature
            pins when the compatibility rules are enabled).
        matrix: Conflict matrix rules (``packages`` + ``constraints``).

    Returns:
        The rewritten manifest and one AppliedConstraint per changed entry.
    """
    normalised_pins = {canonicalize_name(k): v for k, v in pins.items()}
    implied = matrix_constraints(set(manifest.names()), matrix)

    entries: list[DependencyEntry] = []
    applied: list[AppliedConstraint] = []

    for entry in manifest.entries:
        new_spec: str | None = None
        source = ""

        pin = normalised_pins.get(entry.key)
        if pin is not None and not entry.is_pinned:
            new_spec, source = f"=={pin}", "backtracking pin"
        elif entry.key in implied and not entry.version_spec:
            new_spec, source = implied[entry.key]

        if new_spec is None or new_spec == entry.version_spec:
            entries.append(entry)
            continue

        rewritten = DependencyEntry(
            name=entry.name,
            version_spec=new_spec,
            source_line=entry.source_line,
            comment=_annotate(entry.comment),
            extras=entry.extras,
        )
        change = AppliedConstraint(
            name=entry.key, before=entry.version_spec, after=rewritten.version_spec, source=source,
        )
        logger.info("Applied %s", change.message)
        entries.append(rewritten)
        applied.append(change)

    return Manifest(entries=entries), applied
