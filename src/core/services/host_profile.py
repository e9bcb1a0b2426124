"""
Host profile collector — read-only probes of the local machine.

Queries the OS, CPU architecture, core count, free memory and free disk
space, and assembles them into an immutable HostProfile. Every probe is
individually guarded: a probe that fails yields its conservative default
(version ``0``, one core, zero memory or disk) and never aborts the run.
"""

from __future__ import annotations

import logging
import os
import platform
import re
import shutil
import subprocess
from pathlib import Path

from src.core.models.host import Arch, HostProfile, OsFamily

logger = logging.getLogger(__name__)

_GIB = 1024 ** 3

_ARCH_ALIASES: dict[str, Arch] = {
    "x86_64": Arch.X86_64,
    "amd64": Arch.X86_64,
    "x64": Arch.X86_64,
    "aarch64": Arch.ARM64,
    "arm64": Arch.ARM64,
    "armv8": Arch.ARM64,
}


# ── Normalisation ──────────────────────────────────────────

def normalise_os_family(system: str) -> OsFamily:
    """Map ``platform.system()`` output to an OsFamily.

    Unknown kernels are treated as Linux, the only family whose
    tooling (pyenv, POSIX venvs) they are likely to share.
    """
    lowered = system.strip().lower()
    if lowered == "darwin":
        return OsFamily.MACOS
    if lowered.startswith(("windows", "cygwin", "msys")):
        return OsFamily.WINDOWS
    return OsFamily.LINUX


def normalise_arch(machine: str) -> Arch:
    """Map ``platform.machine()`` output to an Arch."""
    return _ARCH_ALIASES.get(machine.strip().lower(), Arch.OTHER)


def clean_version(raw: str) -> str:
    """Keep the leading dotted-numeric part of a version string.

    ``"6.5.0-28-generic"`` → ``"6.5.0"``, ``"22.04"`` → ``"22.04"``,
    anything without a leading number → ``"0"``.
    """
    m = re.match(r"\s*v?(\d+(?:\.\d+)*)", raw or "")
    return m.group(1) if m else "0"


# ── Probes ─────────────────────────────────────────────────

def _read_os_release_version(path: Path = Path("/etc/os-release")) -> str | None:
    """VERSION_ID from os-release, if present."""
    try:
        with open(path, encoding="utf-8") as f:
            for line in f:
                if line.startswith("VERSION_ID="):
                    return line.split("=", 1)[1].strip().strip('"')
    except OSError:
        pass
    return None


def _os_version(family: OsFamily) -> str:
    if family == OsFamily.MACOS:
        raw = platform.mac_ver()[0]
    elif family == OsFamily.WINDOWS:
        raw = platform.version()
    else:
        raw = _read_os_release_version() or platform.release()
    return clean_version(raw)


def _read_available_memory_gb(path: Path = Path("/proc/meminfo")) -> float | None:
    """MemAvailable from /proc/meminfo, in GiB."""
    try:
        with open(path, encoding="utf-8") as f:
            for line in f:
                if line.startswith("MemAvailable:"):
                    return int(line.split()[1]) * 1024 / _GIB
    except (OSError, ValueError, IndexError):
        pass
    return None


def _sysctl_memory_gb() -> float | None:
    """Physical memory on macOS via sysctl (no cheap 'available' figure there)."""
    try:
        r = subprocess.run(
            ["sysctl", "-n", "hw.memsize"],
            capture_output=True, text=True, timeout=5,
        )
        if r.returncode == 0:
            return int(r.stdout.strip()) / _GIB
    except (OSError, ValueError, subprocess.TimeoutExpired):
        pass
    return None


def _available_memory_gb(family: OsFamily) -> float:
    if family == OsFamily.MACOS:
        value = _sysctl_memory_gb()
    else:
        value = _read_available_memory_gb()
    return round(value, 2) if value else 0.0


def _nearest_existing(path: Path) -> Path:
    current = path.resolve()
    while not current.exists() and current.parent != current:
        current = current.parent
    return current


def _available_disk_gb(target: Path) -> float:
    try:
        usage = shutil.disk_usage(_nearest_existing(target))
        return round(usage.free / _GIB, 2)
    except OSError:
        return 0.0


# ── Public API ─────────────────────────────────────────────

def collect(env_dir: Path | None = None) -> HostProfile:
    """Probe the host and return a HostProfile.

    Args:
        env_dir: Where the environment will live; disk space is measured
            on the filesystem holding it (default: cwd).

    Never raises.
    """
    try:
        family = normalise_os_family(platform.system())
    except Exception as e:  # platform probes should not fail, but must not abort
        logger.warning("OS family probe failed: %s", e)
        family = OsFamily.LINUX

    try:
        arch = normalise_arch(platform.machine())
    except Exception as e:
        logger.warning("Architecture probe failed: %s", e)
        arch = Arch.OTHER

    try:
        os_version = _os_version(family)
    except Exception as e:
        logger.warning("OS version probe failed: %s", e)
        os_version = "0"

    cores = os.cpu_count() or 1

    profile = HostProfile(
        os_family=family,
        arch=arch,
        os_version=os_version,
        cpu_cores=max(cores, 1),
        available_memory_gb=_available_memory_gb(family),
        available_disk_gb=_available_disk_gb(env_dir or Path.cwd()),
    )
    logger.info("Host profile: %s", profile.summary())
    return profile
