"""
HostProfile — an immutable snapshot of the machine being provisioned.

Collected once per run by the host profile collector and passed by
parameter to everything that needs host facts. Nothing mutates it.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class OsFamily(StrEnum):
    """Operating system families the planner distinguishes."""

    LINUX = "linux"
    MACOS = "macos"
    WINDOWS = "windows"


class Arch(StrEnum):
    """CPU architectures, normalised."""

    X86_64 = "x86_64"
    ARM64 = "arm64"
    OTHER = "other"


class HostProfile(BaseModel):
    """Host facts that drive compatibility rules and planning."""

    model_config = ConfigDict(frozen=True)

    os_family: OsFamily
    arch: Arch
    os_version: str = "0"
    cpu_cores: int = Field(default=1, ge=1)
    available_memory_gb: float = Field(default=0.0, ge=0)
    available_disk_gb: float = Field(default=0.0, ge=0)

    def summary(self) -> str:
        """One-line human description."""
        return (
            f"{self.os_family.value} {self.os_version} ({self.arch.value}), "
            f"{self.cpu_cores} cores, {self.available_memory_gb:.1f} GB RAM free, "
            f"{self.available_disk_gb:.1f} GB disk free"
        )
