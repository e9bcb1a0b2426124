"""
IncompatibilitySignature — a known breakage and the interpreter that avoids it.

Signatures are static configuration: the built-in catalog plus an
optional user file, loaded once at startup and read-only afterwards.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from src.core.models.host import Arch, OsFamily


class IncompatibilitySignature(BaseModel):
    """Host characteristics mapped to a recommended interpreter version.

    The OS version range is inclusive of ``os_version_min`` and exclusive
    of ``os_version_max``. An empty ``os_version_max`` leaves the range
    open-ended.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    framework: str = ""
    os_family: OsFamily
    arch: Arch
    os_version_min: str = "0"
    os_version_max: str = ""
    recommended_interpreter: str
    reason: str = ""

    # distribution name → exact version known to work on this host class
    package_pins: dict[str, str] = Field(default_factory=dict)

    @property
    def os_version_range(self) -> tuple[str, str | None]:
        return self.os_version_min, self.os_version_max or None
