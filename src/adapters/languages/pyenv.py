"""
Pyenv adapter — interpreter installation and environment creation.

Versions may be requested as a series (``3.12``); they are resolved to
the newest matching full version, preferring one pyenv already has.
"""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path

from src.adapters.base import InterpreterManager
from src.adapters.languages.python import interpreter_version
from src.adapters.shell.command import run_command
from src.core.models.receipt import ErrorKind, Receipt
from src.core.services.versions import latest_stable

logger = logging.getLogger(__name__)

INSTALL_TIMEOUT = 3600
_PLAIN_VERSION = re.compile(r"^\d+\.\d+\.\d+$")


class PyenvInterpreterManager(InterpreterManager):
    """Interpreters from pyenv; environments via ``python -m venv``."""

    def __init__(self, pyenv: str = "pyenv"):
        self._pyenv = pyenv

    @property
    def name(self) -> str:
        return "pyenv"

    def is_available(self) -> bool:
        return shutil.which(self._pyenv) is not None

    # ── Queries ─────────────────────────────────────────────────

    def list_available(self) -> list[str]:
        receipt = run_command(
            [self._pyenv, "install", "--list"],
            adapter=self.name, operation="list", timeout=60,
        )
        if not receipt.ok:
            logger.warning("pyenv install --list failed: %s", receipt.error)
            return []
        return [v for v in (line.strip() for line in receipt.output.splitlines()) if _PLAIN_VERSION.match(v)]

    def installed_versions(self) -> list[str]:
        receipt = run_command(
            [self._pyenv, "versions", "--bare"],
            adapter=self.name, operation="versions", timeout=30,
        )
        if not receipt.ok:
            return []
        return [v for v in (line.strip() for line in receipt.output.splitlines()) if _PLAIN_VERSION.match(v)]

    def resolve(self, version: str) -> str | None:
        """Full version for ``version``: installed first, then installable."""
        return (
            latest_stable(self.installed_versions(), [version])
            or latest_stable(self.list_available(), [version])
        )

    def active_version(self, env_dir: Path) -> str | None:
        return interpreter_version(env_dir)

    # ── Operations ──────────────────────────────────────────────

    def install(self, version: str) -> Receipt:
        full = self.resolve(version)
        if full is None:
            return Receipt.failure(
                self.name, "install", f"pyenv has no version matching {version}",
                kind=ErrorKind.CONFLICT, target=version,
            )

        logger.info("Installing Python %s with pyenv (skipped if present)", full)
        receipt = run_command(
            [self._pyenv, "install", "-s", full],
            adapter=self.name, operation="install", target=version,
            timeout=INSTALL_TIMEOUT,
        )
        receipt.metadata["version"] = full
        return receipt

    def create_environment(self, version: str, env_dir: Path) -> Receipt:
        prefix = run_command(
            [self._pyenv, "prefix", version],
            adapter=self.name, operation="prefix", target=version, timeout=30,
        )
        if not prefix.ok:
            return prefix
        if not prefix.output.strip():
            return Receipt.failure(
                self.name, "create_environment", f"pyenv printed no prefix for {version}",
                kind=ErrorKind.FATAL, target=str(env_dir),
            )

        python = Path(prefix.output.splitlines()[-1].strip()) / "bin" / "python"
        logger.info("Creating environment %s with %s", env_dir, python)
        return run_command(
            [str(python), "-m", "venv", str(env_dir)],
            adapter=self.name, operation="create_environment", target=str(env_dir),
            timeout=300,
        )
