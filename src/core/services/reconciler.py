"""
Manifest reconciler — deduplicate and resolve version conflicts.

Pure function over a Manifest: entries are grouped by canonical name,
identical repeats collapse to their first occurrence, and differing
specs for one name are resolved to a single survivor. Persisting the
result (and backing up the previous file) is the caller's job.

Conflict policy, in order:

1. A pinned version for the name (from matching signatures) wins: the
   entry already at that version is kept, else the first entry is
   re-pinned to it.
2. Otherwise the entry asking for the highest version wins, judged by
   its exact or lower-bound clauses (``!=`` never counts). At an equal
   version an exact pin beats a range; ranges with only an upper cap
   rank below those, floating entries lowest; remaining ties keep the
   earliest entry. Same-spec repeats merge their extras.
"""

from __future__ import annotations

import logging

from packaging.specifiers import SpecifierSet
from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, Version

from src.core.models.manifest import (
    ConflictReport,
    DependencyEntry,
    DuplicateReport,
    Manifest,
    ReconcileReport,
)

logger = logging.getLogger(__name__)


_LOWER_OPERATORS = frozenset({"==", "===", "~=", ">=", ">"})
_UPPER_OPERATORS = frozenset({"<", "<="})


def _clause_version(clause) -> Version | None:
    try:
        return Version(clause.version.removesuffix(".*"))
    except InvalidVersion:
        return None


def _highest_admitted(spec: str) -> tuple[Version | None, Version | None]:
    """(highest lower-bound or exact version, highest upper cap) of a specifier.

    ``==1.2.*`` counts as 1.2; ``!=`` clauses are ignored.
    """
    floor: Version | None = None
    cap: Version | None = None
    for clause in SpecifierSet(spec):
        v = _clause_version(clause)
        if v is None:
            continue
        if clause.operator in _LOWER_OPERATORS:
            if floor is None or v > floor:
                floor = v
        elif clause.operator in _UPPER_OPERATORS:
            if cap is None or v > cap:
                cap = v
    return floor, cap


def rank(entry: DependencyEntry) -> tuple[int, Version, int]:
    """Sort key for conflict resolution; larger wins.

    Entries with an exact or lower-bound version outrank cap-only ranges
    such as ``<2``, which outrank floating entries.
    """
    if not entry.version_spec:
        return (0, Version("0"), 0)
    floor, cap = _highest_admitted(entry.version_spec)
    if floor is not None:
        return (2, floor, 1 if entry.is_pinned else 0)
    if cap is not None:
        return (1, cap, 0)
    return (0, Version("0"), 0)


def _at_version(entry: DependencyEntry, version: str) -> bool:
    pinned = entry.pinned_version
    if pinned is None:
        return False
    try:
        return Version(pinned) == Version(version)
    except InvalidVersion:
        return pinned == version


def _merged_extras(entries) -> tuple[str, ...]:
    """Union of the entries' extras in first-seen order."""
    seen: list[str] = []
    for entry in entries:
        for extra in entry.extras:
            if extra not in seen:
                seen.append(extra)
    return tuple(seen)


def _resolve_conflict(
    key: str,
    group: list[tuple[int, DependencyEntry]],
    pin: str | None,
) -> tuple[int, DependencyEntry, str]:
    """Pick the survivor of a conflicting group: (index, entry, reason)."""
    if pin is not None:
        for idx, entry in group:
            if _at_version(entry, pin):
                return idx, entry, f"compatibility pin {key}=={pin}"
        idx, first = group[0]
        repinned = first.model_copy(update={"version_spec": f"=={pin}"})
        return idx, repinned, f"compatibility pin {key}=={pin} (re-pinned, no entry declared it)"

    best_idx, best = group[0]
    best_rank = rank(best)
    for idx, entry in group[1:]:
        r = rank(entry)
        if r > best_rank:  # strictly greater: ties keep the earliest
            best_idx, best, best_rank = idx, entry, r
    return best_idx, best, "kept highest version"


def reconcile(
    manifest: Manifest,
    pins: dict[str, str] | None = None,
) -> tuple[Manifest, list[ReconcileReport]]:
    """Return a manifest with one entry per name, plus what was removed and why.

    Args:
        manifest: Entries as loaded, possibly with repeats.
        pins: Package name → exact version that must win a conflict.

    Idempotent: reconciling the output again changes nothing.
    """
    normalised_pins = {canonicalize_name(k): v for k, v in (pins or {}).items()}

    groups: dict[str, list[tuple[int, DependencyEntry]]] = {}
    for idx, entry in enumerate(manifest.entries):
        groups.setdefault(entry.key, []).append((idx, entry))

    survivors: dict[int, DependencyEntry] = {}
    reports: list[ReconcileReport] = []

    for key, group in groups.items():
        if len(group) == 1:
            idx, entry = group[0]
            survivors[idx] = entry
            continue

        specs = {entry.version_spec for _, entry in group}
        if len(specs) == 1:
            idx, kept = group[0]
            merged = _merged_extras(entry for _, entry in group)
            added = [x for x in merged if x not in kept.extras]
            if added:
                kept = kept.model_copy(update={"extras": merged})
            survivors[idx] = kept
            report = DuplicateReport(
                name=key, kept=kept, dropped=[e for _, e in group[1:]], merged_extras=added,
            )
            logger.info("Reconcile: %s", report.message)
            reports.append(report)
            continue

        idx, kept, reason = _resolve_conflict(key, group, normalised_pins.get(key))
        survivors[idx] = kept
        # a re-pinned survivor is a copy, so its original entry counts as dropped
        dropped = [e for i, e in group if not (i == idx and e is kept)]
        report = ConflictReport(name=key, kept=kept, dropped=dropped, reason=reason)
        logger.warning("Reconcile conflict: %s", report.message)
        reports.append(report)

    result = Manifest(entries=[survivors[i] for i in sorted(survivors)])
    return result, reports
