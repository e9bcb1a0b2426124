"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from src.adapters.mock import MockHost
from src.adapters.registry import AdapterRegistry
from src.core.models.config import ProvisionConfig
from src.core.models.host import Arch, HostProfile, OsFamily
from src.core.models.manifest import DependencyEntry, Manifest
from src.core.models.plan import EnvAction, InstallationPlan, RetryPolicy


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def tmp_state_dir(tmp_path: Path) -> Path:
    """Return a temporary directory for state files."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def config(tmp_path: Path) -> ProvisionConfig:
    """Defaults rooted in a temporary project directory."""
    return ProvisionConfig(root=tmp_path)


@pytest.fixture
def host() -> MockHost:
    return MockHost()


@pytest.fixture
def registry(host: MockHost) -> AdapterRegistry:
    return AdapterRegistry.mock(host)


@pytest.fixture
def linux_profile() -> HostProfile:
    return HostProfile(
        os_family=OsFamily.LINUX,
        arch=Arch.X86_64,
        os_version="22.04",
        cpu_cores=8,
        available_memory_gb=16.0,
        available_disk_gb=100.0,
    )


@pytest.fixture
def sleeps() -> list[float]:
    """Records backoff delays instead of sleeping."""
    return []


def _entry(name: str, spec: str = "", line: int = 0) -> DependencyEntry:
    return DependencyEntry(name=name, version_spec=spec, source_line=line)


def _manifest_of(*pairs: tuple[str, str]) -> Manifest:
    return Manifest(entries=[_entry(n, s, i + 1) for i, (n, s) in enumerate(pairs)])


def _make_plan(
    target: str = "3.12",
    action: EnvAction = EnvAction.CREATE,
    manifest: Manifest | None = None,
    parallelism: int = 2,
    max_attempts: int = 3,
) -> InstallationPlan:
    return InstallationPlan(
        target_interpreter=target,
        env_action=action,
        parallelism=parallelism,
        retry_policy=RetryPolicy(max_attempts=max_attempts, base_backoff_seconds=2.0),
        reconciled_manifest=manifest or _manifest_of(("numpy", "==1.26.4"), ("requests", "")),
    )


@pytest.fixture
def manifest_of():
    """Build a Manifest from (name, spec) pairs; line numbers start at 1."""
    return _manifest_of


@pytest.fixture
def make_plan():
    """Build an InstallationPlan with test-friendly defaults."""
    return _make_plan
