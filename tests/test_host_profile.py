"""
Tests for the host profile collector.
"""

from pathlib import Path

import pytest

from src.core.models.host import Arch, HostProfile, OsFamily
from src.core.services import host_profile
from src.core.services.host_profile import clean_version, collect, normalise_arch, normalise_os_family


class TestNormalisation:
    @pytest.mark.parametrize("system,expected", [
        ("Linux", OsFamily.LINUX),
        ("Darwin", OsFamily.MACOS),
        ("Windows", OsFamily.WINDOWS),
        ("CYGWIN_NT-10.0", OsFamily.WINDOWS),
        ("FreeBSD", OsFamily.LINUX),
    ])
    def test_os_family(self, system, expected):
        assert normalise_os_family(system) == expected

    @pytest.mark.parametrize("machine,expected", [
        ("x86_64", Arch.X86_64),
        ("AMD64", Arch.X86_64),
        ("aarch64", Arch.ARM64),
        ("arm64", Arch.ARM64),
        ("riscv64", Arch.OTHER),
        ("", Arch.OTHER),
    ])
    def test_arch(self, machine, expected):
        assert normalise_arch(machine) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("6.5.0-28-generic", "6.5.0"),
        ("22.04", "22.04"),
        ("14.4.1", "14.4.1"),
        ("10.0.22631", "10.0.22631"),
        ("rolling", "0"),
        ("", "0"),
    ])
    def test_clean_version(self, raw, expected):
        assert clean_version(raw) == expected


class TestProbes:
    def test_meminfo(self, tmp_path: Path):
        meminfo = tmp_path / "meminfo"
        meminfo.write_text("MemTotal:       32000000 kB\nMemAvailable:    8388608 kB\n")
        assert host_profile._read_available_memory_gb(meminfo) == pytest.approx(8.0)

    def test_meminfo_missing(self, tmp_path: Path):
        assert host_profile._read_available_memory_gb(tmp_path / "nope") is None

    def test_os_release(self, tmp_path: Path):
        release = tmp_path / "os-release"
        release.write_text('NAME="Ubuntu"\nVERSION_ID="22.04"\n')
        assert host_profile._read_os_release_version(release) == "22.04"


class TestCollect:
    def test_returns_profile(self, tmp_path: Path):
        profile = collect(tmp_path)
        assert isinstance(profile, HostProfile)
        assert profile.cpu_cores >= 1
        assert profile.available_memory_gb >= 0
        assert profile.available_disk_gb >= 0

    def test_failing_probes_fall_back(self, monkeypatch, tmp_path: Path):
        def boom(*args, **kwargs):
            raise OSError("probe failed")

        monkeypatch.setattr(host_profile.os, "cpu_count", lambda: None)
        monkeypatch.setattr(host_profile.shutil, "disk_usage", boom)
        monkeypatch.setattr(host_profile, "_read_available_memory_gb", lambda *a: None)
        monkeypatch.setattr(host_profile, "_sysctl_memory_gb", lambda: None)

        profile = collect(tmp_path / "missing" / ".venv")
        assert profile.cpu_cores == 1
        assert profile.available_memory_gb == 0.0
        assert profile.available_disk_gb == 0.0

    def test_profile_is_frozen(self, linux_profile):
        with pytest.raises(Exception):
            linux_profile.cpu_cores = 2  # type: ignore[misc]
