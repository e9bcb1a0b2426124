"""
Adapter base — the protocol contract between engine and tools.

This defines the abstract interfaces every adapter implements, one per
role (interpreter manager, dependency resolver, liveness checker,
filesystem, network probe). The engine only talks to adapters through
these interfaces, never directly to pyenv, pip or the disk.

Adapters perform external side effects and return Receipts. They NEVER
raise for tool failures: the failure and its ErrorKind are captured in
the Receipt, decided here at the boundary from whatever the tool said.
Queries with a natural "unknown" answer return None instead.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from src.core.models.manifest import DependencyEntry, Manifest
from src.core.models.receipt import ErrorKind, Receipt


class Adapter(ABC):
    """Abstract base class for all adapters."""

    #: Registry slot this adapter fills.
    role: str = ""

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'pyenv', 'pip-tools')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this adapter's underlying tool is available.

        Should be fast and never raise.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


# ── Interpreter manager ─────────────────────────────────────────


class InterpreterManager(Adapter):
    """Installs interpreters and creates environments from them."""

    role = "interpreter"

    @abstractmethod
    def list_available(self) -> list[str]:
        """Versions that can be installed. Empty when unknown."""

    @abstractmethod
    def install(self, version: str) -> Receipt:
        """Install ``version`` (a full version or a series prefix).

        On success ``metadata["version"]`` holds the full version installed.
        """

    @abstractmethod
    def create_environment(self, version: str, env_dir: Path) -> Receipt:
        """Create an isolated environment at ``env_dir`` using ``version``."""

    @abstractmethod
    def active_version(self, env_dir: Path) -> str | None:
        """Interpreter version of the environment, queried live. None if unusable."""


# ── Dependency resolver ─────────────────────────────────────────


@dataclass
class CompileResult:
    """Outcome of compiling a manifest into a fully pinned lock."""

    lock: Manifest | None = None
    error: str | None = None
    kind: ErrorKind | None = None
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.lock is not None and self.error is None

    @property
    def transient(self) -> bool:
        return not self.ok and self.kind == ErrorKind.TRANSIENT

    @classmethod
    def failure(cls, error: str, kind: ErrorKind, output: str = "") -> CompileResult:
        return cls(lock=None, error=error, kind=kind, output=output)


class DependencyResolver(Adapter):
    """Compiles manifests into locks and installs locked packages."""

    role = "resolver"

    @abstractmethod
    def bootstrap(self, env_dir: Path) -> Receipt:
        """Install the resolver's own tooling into the environment."""

    @abstractmethod
    def compile(
        self,
        manifest: Manifest,
        env_dir: Path,
        lock_path: Path,
        *,
        upgrade: bool = False,
    ) -> CompileResult:
        """Resolve ``manifest`` into exact pins, written to ``lock_path``."""

    @abstractmethod
    def install_package(self, pin: DependencyEntry, env_dir: Path) -> Receipt:
        """Install one locked package. Safe to call concurrently."""

    @abstractmethod
    def installed_packages(self, env_dir: Path) -> dict[str, str] | None:
        """Canonical name → version of everything installed. None if unknown."""

    @abstractmethod
    def check(self, env_dir: Path) -> Receipt:
        """The resolver's own consistency check of installed metadata."""

    @abstractmethod
    def freeze(self, env_dir: Path, path: Path) -> Receipt:
        """Write the exact installed set to ``path``."""


# ── Liveness ────────────────────────────────────────────────────


class LivenessChecker(Adapter):
    """Proves a package works by importing it inside the environment."""

    role = "liveness"

    @abstractmethod
    def check(self, env_dir: Path, import_name: str) -> Receipt:
        """Import ``import_name`` with the environment's interpreter."""


# ── Filesystem ──────────────────────────────────────────────────


class Filesystem(Adapter):
    """The directory operations the engine needs."""

    role = "filesystem"

    @abstractmethod
    def exists(self, path: Path) -> bool: ...

    @abstractmethod
    def is_empty(self, path: Path) -> bool:
        """True for a missing path or an empty directory."""

    @abstractmethod
    def remove_tree(self, path: Path) -> Receipt:
        """Remove a file or a directory tree."""

    @abstractmethod
    def move(self, source: Path, destination: Path) -> Receipt:
        """Rename ``source`` to ``destination``, which must not exist."""

    @abstractmethod
    def free_disk_gb(self, path: Path) -> float:
        """Free space on the filesystem that holds (or would hold) ``path``."""


# ── Network ─────────────────────────────────────────────────────


class NetworkProbe(Adapter):
    """Reachability check for the package index."""

    role = "network"

    @abstractmethod
    def reachable(self, url: str, timeout: float) -> Receipt: ...
