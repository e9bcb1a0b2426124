"""
Version helpers shared by the rule engine, the planner and the adapters.
"""

from __future__ import annotations

from packaging.version import InvalidVersion, Version


def parse_version(value: str) -> Version:
    """Parse a version leniently; unparseable values compare as ``0``."""
    try:
        return Version(value)
    except InvalidVersion:
        return Version("0")


def in_range(version: str, minimum: str, maximum: str | None) -> bool:
    """``minimum <= version < maximum``; no maximum means open-ended."""
    v = parse_version(version)
    if v < parse_version(minimum or "0"):
        return False
    if maximum and v >= parse_version(maximum):
        return False
    return True


def versions_match(requested: str, actual: str) -> bool:
    """Whether ``actual`` satisfies ``requested`` by release-segment prefix.

    ``3.12`` matches ``3.12.7``; ``3.12.7`` matches only ``3.12.7``.
    """
    try:
        want = Version(requested).release
        have = Version(actual).release
    except InvalidVersion:
        return requested.strip() == actual.strip()
    return have[: len(want)] == want


def latest_stable(
    available: list[str],
    series: list[str] | None = None,
) -> str | None:
    """Newest final release among ``available``, optionally limited to series.

    Pre-releases, dev releases and anything that is not a plain CPython
    version string (``pypy3.10-7.3``, ``miniconda3-latest``) are ignored.
    """
    best: Version | None = None
    best_raw: str | None = None
    for raw in available:
        raw = raw.strip()
        try:
            v = Version(raw)
        except InvalidVersion:
            continue
        if v.is_prerelease or v.is_devrelease or v.local:
            continue
        if series and not any(versions_match(s, raw) for s in series):
            continue
        if best is None or v > best:
            best, best_raw = v, raw
    return best_raw
