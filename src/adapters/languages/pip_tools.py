"""
pip-tools adapter — compile manifests into locks and install pins.

Everything runs with the environment's own interpreter (``python -m pip``
and ``python -m piptools``), with a persistent pip cache and a local
wheel directory so rebuilds do not re-download the world.
"""

from __future__ import annotations

import json
import logging
import shlex
from pathlib import Path

from packaging.utils import canonicalize_name

from src.adapters.base import CompileResult, DependencyResolver
from src.adapters.languages.python import env_python
from src.adapters.shell.command import run_command
from src.core.errors import ManifestError
from src.core.models.manifest import DependencyEntry, Manifest
from src.core.models.receipt import ErrorKind, Receipt
from src.core.persistence.manifest_file import atomic_write_text, parse_lock

logger = logging.getLogger(__name__)

# pip-tools 7.x breaks on newer pip
BOOTSTRAP_PACKAGES = ("pip<25.2", "setuptools", "wheel", "pip-tools")

COMPILE_TIMEOUT = 1800
INSTALL_TIMEOUT = 1800

CONFLICT_PATTERNS: tuple[str, ...] = (
    r"ResolutionImpossible",
    r"conflicting dependencies",
    r"Could not find a version that satisfies",
    r"No matching distribution found",
    r"Cannot install .* because these package versions have conflicting",
    r"versions have conflicting dependencies",
)


class PipToolsResolver(DependencyResolver):
    """pip-compile for locking, pip for installing."""

    def __init__(
        self,
        cache_dir: Path,
        wheel_dir: Path,
        pip_timeout: int = 15,
        pip_retries: int = 2,
    ):
        self._cache_dir = cache_dir
        self._wheel_dir = wheel_dir
        self._pip_timeout = pip_timeout
        self._pip_retries = pip_retries

    @property
    def name(self) -> str:
        return "pip-tools"

    def is_available(self) -> bool:
        return True  # installed into each environment by bootstrap()

    # ── Helpers ─────────────────────────────────────────────────

    def _network_flags(self) -> list[str]:
        self._cache_dir.mkdir(parents=True, exist_ok=True)
        return [
            "--timeout", str(self._pip_timeout),
            "--retries", str(self._pip_retries),
            "--cache-dir", str(self._cache_dir),
        ]

    def _find_links(self) -> list[str]:
        if self._wheel_dir.is_dir():
            return ["--find-links", str(self._wheel_dir)]
        return []

    def _pip(self, env_dir: Path, *args: str) -> list[str]:
        return [str(env_python(env_dir)), "-m", "pip", *args]

    # ── Operations ──────────────────────────────────────────────

    def bootstrap(self, env_dir: Path) -> Receipt:
        logger.info("Bootstrapping %s into %s", ", ".join(BOOTSTRAP_PACKAGES), env_dir)
        return run_command(
            self._pip(env_dir, "install", "--upgrade", *self._network_flags(), *BOOTSTRAP_PACKAGES),
            adapter=self.name, operation="bootstrap", target=str(env_dir),
            timeout=INSTALL_TIMEOUT,
        )

    def compile(
        self,
        manifest: Manifest,
        env_dir: Path,
        lock_path: Path,
        *,
        upgrade: bool = False,
    ) -> CompileResult:
        # Compile the reconciled manifest, not whatever is on disk
        source = lock_path.with_name(f".{lock_path.stem}.envplan.in")
        atomic_write_text(source, manifest.render())

        cmd = [
            str(env_python(env_dir)), "-m", "piptools", "compile",
            "--quiet", "--strip-extras", "--no-header",
            "--output-file", str(lock_path),
            "--pip-args", shlex.join([*self._network_flags(), *self._find_links()]),
        ]
        if upgrade:
            cmd.append("--upgrade")
        cmd.append(str(source))

        try:
            receipt = run_command(
                cmd, adapter=self.name, operation="compile",
                cwd=lock_path.parent, timeout=COMPILE_TIMEOUT,
                conflict_patterns=CONFLICT_PATTERNS,
            )
        finally:
            source.unlink(missing_ok=True)

        if not receipt.ok:
            return CompileResult.failure(
                receipt.error or "pip-compile failed",
                receipt.error_kind or ErrorKind.FATAL,
                output=receipt.metadata.get("stdout", ""),
            )

        try:
            lock = parse_lock(lock_path.read_text(encoding="utf-8"))
        except (OSError, ManifestError) as e:
            return CompileResult.failure(f"Cannot read compiled lock {lock_path}: {e}", ErrorKind.FATAL)

        logger.info("Compiled %d pins into %s", len(lock.entries), lock_path)
        return CompileResult(lock=lock, output=receipt.output)

    def install_package(self, pin: DependencyEntry, env_dir: Path) -> Receipt:
        # The lock is complete, so each pin installs without resolving deps
        return run_command(
            self._pip(
                env_dir, "install", "--no-deps",
                *self._network_flags(), *self._find_links(), pin.requirement(),
            ),
            adapter=self.name, operation="install_package", target=pin.key,
            timeout=INSTALL_TIMEOUT, conflict_patterns=CONFLICT_PATTERNS,
        )

    def installed_packages(self, env_dir: Path) -> dict[str, str] | None:
        receipt = run_command(
            self._pip(env_dir, "list", "--format=json", "--disable-pip-version-check"),
            adapter=self.name, operation="list", timeout=120,
        )
        if not receipt.ok:
            logger.warning("pip list failed: %s", receipt.error)
            return None
        try:
            rows = json.loads(receipt.output or "[]")
        except json.JSONDecodeError as e:
            logger.warning("Unparseable pip list output: %s", e)
            return None
        return {canonicalize_name(row["name"]): row["version"] for row in rows}

    def check(self, env_dir: Path) -> Receipt:
        return run_command(
            self._pip(env_dir, "check", "--disable-pip-version-check"),
            adapter=self.name, operation="check", timeout=120,
        )

    def freeze(self, env_dir: Path, path: Path) -> Receipt:
        receipt = run_command(
            self._pip(env_dir, "freeze", "--disable-pip-version-check"),
            adapter=self.name, operation="freeze", target=str(path), timeout=120,
        )
        if not receipt.ok:
            return receipt
        try:
            atomic_write_text(path, receipt.output + "\n")
        except OSError as e:
            return Receipt.failure(
                self.name, "freeze", f"Cannot write {path}: {e}",
                kind=ErrorKind.FATAL, target=str(path),
            )
        return receipt
