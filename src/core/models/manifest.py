"""
Manifest models — the declarative dependency list and its diagnostics.

A Manifest is an ordered list of DependencyEntry values, loaded from the
manifest file, cleaned by the reconciler and written back atomically.
Entry identity is the canonical (lowercased, normalised) name; two
entries with the same identity but different specs are a conflict.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.utils import canonicalize_name
from pydantic import BaseModel, Field, field_validator


class DependencyEntry(BaseModel):
    """One declared dependency.

    ``version_spec`` is a PEP 440 specifier: ``==1.2.3`` for an exact pin,
    a range such as ``>=2.0,<3``, or empty for a floating entry. A bare
    version (``"1.2.3"``) is accepted and normalised to ``==1.2.3``.
    """

    name: str
    version_spec: str = ""
    source_line: int = 0
    comment: str | None = None
    extras: tuple[str, ...] = ()

    @field_validator("version_spec")
    @classmethod
    def _normalise_spec(cls, value: str) -> str:
        spec = value.replace(" ", "")
        if spec and spec[0].isdigit():
            spec = f"=={spec}"
        if spec:
            try:
                SpecifierSet(spec)
            except InvalidSpecifier as e:
                raise ValueError(f"invalid version specifier {value!r}") from e
        return spec

    @property
    def key(self) -> str:
        """Identity used for duplicate/conflict detection."""
        return canonicalize_name(self.name)

    @property
    def is_pinned(self) -> bool:
        """True when the spec is a single exact ``==`` clause."""
        specs = list(SpecifierSet(self.version_spec)) if self.version_spec else []
        return len(specs) == 1 and specs[0].operator in ("==", "===") and "*" not in specs[0].version

    @property
    def pinned_version(self) -> str | None:
        if not self.is_pinned:
            return None
        return next(iter(SpecifierSet(self.version_spec))).version

    def requirement(self) -> str:
        """Render as a requirement string (no comment)."""
        extras = f"[{','.join(self.extras)}]" if self.extras else ""
        return f"{self.name}{extras}{self.version_spec}"

    def render(self) -> str:
        """Render as a manifest line."""
        line = self.requirement()
        if self.comment:
            line = f"{line}  # {self.comment}"
        return line


class Manifest(BaseModel):
    """Ordered dependency list."""

    entries: list[DependencyEntry] = Field(default_factory=list)

    def names(self) -> list[str]:
        return [e.key for e in self.entries]

    def get(self, name: str) -> DependencyEntry | None:
        key = canonicalize_name(name)
        for entry in self.entries:
            if entry.key == key:
                return entry
        return None

    def pinned(self) -> list[DependencyEntry]:
        return [e for e in self.entries if e.is_pinned]

    def floating(self) -> list[DependencyEntry]:
        return [e for e in self.entries if not e.is_pinned]

    def render(self) -> str:
        return "".join(f"{e.render()}\n" for e in self.entries)


@dataclass
class DuplicateReport:
    """Same-spec repeats of one package were dropped.

    Extras declared only on a dropped repeat are carried over to the kept
    entry and listed in ``merged_extras``.
    """

    name: str
    kept: DependencyEntry
    dropped: list[DependencyEntry] = field(default_factory=list)
    merged_extras: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        lines = ", ".join(str(e.source_line) for e in self.dropped)
        text = f"{self.name}: removed {len(self.dropped)} duplicate(s) of '{self.kept.render()}' (lines {lines})"
        if self.merged_extras:
            text += f"; merged extras [{','.join(self.merged_extras)}]"
        return text

    def to_dict(self) -> dict:
        return {
            "kind": "duplicate",
            "name": self.name,
            "kept": self.kept.requirement(),
            "dropped": [e.requirement() for e in self.dropped],
            "merged_extras": self.merged_extras,
        }


@dataclass
class ConflictReport:
    """Differing specs for one package; all but one were dropped."""

    name: str
    kept: DependencyEntry
    dropped: list[DependencyEntry] = field(default_factory=list)
    reason: str = ""

    @property
    def message(self) -> str:
        dropped = ", ".join(
            f"{e.version_spec or '<floating>'} (line {e.source_line})" for e in self.dropped
        )
        return f"{self.name}: kept {self.kept.version_spec or '<floating>'}, dropped {dropped}; {self.reason}"

    def to_dict(self) -> dict:
        return {
            "kind": "conflict",
            "name": self.name,
            "kept": self.kept.requirement(),
            "dropped": [e.requirement() for e in self.dropped],
            "reason": self.reason,
        }


ReconcileReport = DuplicateReport | ConflictReport
