"""
Mock adapters — test doubles for every adapter role.

Used by the test suite and by ``--mock`` runs to exercise the whole
engine without touching pyenv, pip, the network or the disk. All mocks
share one ``MockHost``, an in-memory picture of the machine, so that an
environment "created" by the interpreter mock is seen by the filesystem
mock and "installed" packages are seen by the resolver mock.

Every mock succeeds by default and records its calls. Failures are
configured per operation (optionally per target) with ``set_failure``.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path

from packaging.specifiers import SpecifierSet
from packaging.version import InvalidVersion, Version

from src.adapters.base import (
    CompileResult,
    DependencyResolver,
    Filesystem,
    InterpreterManager,
    LivenessChecker,
    NetworkProbe,
)
from src.core.models.manifest import DependencyEntry, Manifest
from src.core.models.receipt import ErrorKind, Receipt
from src.core.services.versions import latest_stable

DEFAULT_INTERPRETERS = ["3.11.9", "3.12.7", "3.13.0rc1", "3.13.9"]
DEFAULT_PACKAGE_VERSION = "1.0.0"


@dataclass
class MockHost:
    """In-memory machine state shared by the mock adapters."""

    interpreters: list[str] = field(default_factory=lambda: list(DEFAULT_INTERPRETERS))
    # env dir → interpreter version
    environments: dict[str, str] = field(default_factory=dict)
    # env dir → {canonical name: version}
    packages: dict[str, dict[str, str]] = field(default_factory=dict)
    # plain files (lock, freeze) that "exist"
    files: set[str] = field(default_factory=set)
    free_disk_gb: float = 100.0

    def add_environment(self, env_dir: Path, version: str, packages: dict[str, str] | None = None) -> None:
        self.environments[str(env_dir)] = version
        self.packages[str(env_dir)] = dict(packages or {})


@dataclass
class _Failure:
    error: str
    kind: ErrorKind
    remaining: int | None  # None: fail forever


class _MockBase:
    """Call log and failure injection shared by every mock."""

    _name = "mock"

    def __init__(self, host: MockHost | None = None):
        self.host = host or MockHost()
        self._lock = threading.Lock()
        self._failures: dict[str, _Failure] = {}
        self._call_log: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return True

    @property
    def call_log(self) -> list[tuple[str, str]]:
        """(operation, target) for every call received."""
        return self._call_log

    def calls(self, operation: str) -> list[str]:
        """Targets of every call to ``operation``."""
        return [t for op, t in self._call_log if op == operation]

    def set_failure(
        self,
        operation: str,
        error: str = "Mock failure",
        kind: ErrorKind = ErrorKind.FATAL,
        *,
        target: str | None = None,
        times: int | None = None,
    ) -> None:
        """Make ``operation`` fail (for ``target`` only, when given).

        ``times`` limits how many calls fail before succeeding again.
        """
        key = f"{operation}:{target}" if target is not None else operation
        self._failures[key] = _Failure(error=error, kind=kind, remaining=times)

    def reset(self) -> None:
        """Clear call log and configured failures."""
        self._call_log.clear()
        self._failures.clear()

    def _record(self, operation: str, target: str = "") -> Receipt | None:
        """Log the call; return a failure Receipt if one is configured."""
        with self._lock:
            self._call_log.append((operation, target))
            for key in (f"{operation}:{target}", operation):
                failure = self._failures.get(key)
                if failure is None:
                    continue
                if failure.remaining is not None:
                    if failure.remaining <= 0:
                        continue
                    failure.remaining -= 1
                return Receipt.failure(
                    self.name, operation, failure.error,
                    kind=failure.kind, target=target, metadata={"mock": True},
                )
        return None

    def _ok(self, operation: str, target: str = "", output: str = "", **metadata) -> Receipt:
        return Receipt.success(
            self.name, operation, output or f"[mock] {operation} {target}".strip(),
            target=target, metadata={"mock": True, **metadata},
        )


# ── Interpreter manager ─────────────────────────────────────────


class MockInterpreterManager(_MockBase, InterpreterManager):
    _name = "mock-interpreter"

    def list_available(self) -> list[str]:
        self._record("list")
        return list(self.host.interpreters)

    def install(self, version: str) -> Receipt:
        failure = self._record("install", version)
        if failure:
            return failure
        full = latest_stable(self.host.interpreters, [version])
        if full is None:
            return Receipt.failure(
                self.name, "install", f"No interpreter matching {version}",
                kind=ErrorKind.CONFLICT, target=version,
            )
        return self._ok("install", version, version=full)

    def create_environment(self, version: str, env_dir: Path) -> Receipt:
        failure = self._record("create_environment", str(env_dir))
        if failure:
            return failure
        self.host.add_environment(env_dir, version)
        return self._ok("create_environment", str(env_dir))

    def active_version(self, env_dir: Path) -> str | None:
        self._record("active_version", str(env_dir))
        return self.host.environments.get(str(env_dir))


# ── Dependency resolver ─────────────────────────────────────────


def _mock_pin(entry: DependencyEntry, versions: dict[str, str]) -> str:
    """A version satisfying ``entry``: catalog, else the best mentioned bound."""
    if entry.pinned_version:
        return entry.pinned_version
    spec = SpecifierSet(entry.version_spec)
    preferred = versions.get(entry.key)
    if preferred and spec.contains(preferred, prereleases=True):
        return preferred

    candidates = [DEFAULT_PACKAGE_VERSION]
    for clause in spec:
        candidates.append(clause.version.removesuffix(".*"))
    valid = []
    for c in candidates:
        try:
            valid.append(Version(c))
        except InvalidVersion:
            continue
    for v in sorted(valid, reverse=True):
        if spec.contains(v, prereleases=True):
            return str(v)
    return "0.0.1"


class MockResolver(_MockBase, DependencyResolver):
    """Locks each entry to a version satisfying its spec; installs into MockHost."""

    _name = "mock-resolver"

    def __init__(self, host: MockHost | None = None, versions: dict[str, str] | None = None):
        super().__init__(host)
        self.versions = dict(versions or {})
        # pretend these are installed whatever install_package did
        self.phantom: dict[str, str] = {}

    def bootstrap(self, env_dir: Path) -> Receipt:
        return self._record("bootstrap", str(env_dir)) or self._ok("bootstrap", str(env_dir))

    def compile(
        self,
        manifest: Manifest,
        env_dir: Path,
        lock_path: Path,
        *,
        upgrade: bool = False,
    ) -> CompileResult:
        failure = self._record("compile", str(lock_path))
        if failure:
            return CompileResult.failure(failure.error or "", failure.error_kind or ErrorKind.FATAL)
        lock = Manifest(entries=[
            DependencyEntry(name=e.key, version_spec=f"=={_mock_pin(e, self.versions)}")
            for e in manifest.entries
        ])
        self.host.files.add(str(lock_path))
        return CompileResult(lock=lock, output=f"[mock] compiled {len(lock.entries)} pins")

    def install_package(self, pin: DependencyEntry, env_dir: Path) -> Receipt:
        failure = self._record("install_package", pin.key)
        if failure:
            return failure
        with self._lock:
            self.host.packages.setdefault(str(env_dir), {})[pin.key] = pin.pinned_version or ""
        return self._ok("install_package", pin.key)

    def installed_packages(self, env_dir: Path) -> dict[str, str] | None:
        self._record("installed_packages", str(env_dir))
        if str(env_dir) not in self.host.environments:
            return None
        return {**self.host.packages.get(str(env_dir), {}), **self.phantom}

    def check(self, env_dir: Path) -> Receipt:
        return self._record("check", str(env_dir)) or self._ok("check", str(env_dir), "No broken requirements found.")

    def freeze(self, env_dir: Path, path: Path) -> Receipt:
        failure = self._record("freeze", str(path))
        if failure:
            return failure
        self.host.files.add(str(path))
        return self._ok("freeze", str(path))


# ── Liveness ────────────────────────────────────────────────────


class MockLivenessChecker(_MockBase, LivenessChecker):
    """Imports succeed unless the module is listed in ``broken``."""

    _name = "mock-liveness"

    def __init__(self, host: MockHost | None = None, broken: set[str] | None = None):
        super().__init__(host)
        self.broken = set(broken or ())

    def check(self, env_dir: Path, import_name: str) -> Receipt:
        failure = self._record("import", import_name)
        if failure:
            return failure
        if import_name in self.broken:
            return Receipt.failure(
                self.name, "import", f"ModuleNotFoundError: No module named '{import_name}'",
                kind=ErrorKind.FATAL, target=import_name, metadata={"mock": True},
            )
        return self._ok("import", import_name)


# ── Filesystem ──────────────────────────────────────────────────


class MockFilesystem(_MockBase, Filesystem):
    """Environments and files live in MockHost.

    With ``refuse_delete`` set, removals report success but leave the
    path in place, like a tree with a file held open by another process.
    Moves are unaffected.
    """

    _name = "mock-fs"

    def __init__(self, host: MockHost | None = None, refuse_delete: bool = False):
        super().__init__(host)
        self.refuse_delete = refuse_delete

    def exists(self, path: Path) -> bool:
        key = str(path)
        return key in self.host.environments or key in self.host.files

    def is_empty(self, path: Path) -> bool:
        return not self.exists(path)

    def remove_tree(self, path: Path) -> Receipt:
        failure = self._record("remove_tree", str(path))
        if failure:
            return failure
        if not self.refuse_delete:
            key = str(path)
            self.host.environments.pop(key, None)
            self.host.packages.pop(key, None)
            self.host.files.discard(key)
        return self._ok("remove_tree", str(path))

    def move(self, source: Path, destination: Path) -> Receipt:
        failure = self._record("move", str(source))
        if failure:
            return failure
        src, dst = str(source), str(destination)
        if src in self.host.environments:
            self.host.environments[dst] = self.host.environments.pop(src)
            self.host.packages[dst] = self.host.packages.pop(src, {})
        elif src in self.host.files:
            self.host.files.discard(src)
            self.host.files.add(dst)
        else:
            return Receipt.skip(self.name, "move", f"{source} does not exist", target=src)
        return self._ok("move", src)

    def free_disk_gb(self, path: Path) -> float:
        return self.host.free_disk_gb


# ── Network ─────────────────────────────────────────────────────


class MockNetworkProbe(_MockBase, NetworkProbe):
    _name = "mock-network"

    def reachable(self, url: str, timeout: float) -> Receipt:
        return self._record("reachable", url) or self._ok("reachable", url)
