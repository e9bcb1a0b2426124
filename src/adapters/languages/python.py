"""
Python adapter — operations run with an environment's own interpreter.

Locates the interpreter inside a virtual environment, queries its
version, and proves packages are usable by importing them. A package
being listed by pip is not evidence that it imports.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from src.adapters.base import LivenessChecker
from src.adapters.shell.command import run_command
from src.core.models.receipt import ErrorKind, Receipt

logger = logging.getLogger(__name__)

IMPORT_TIMEOUT = 120
_IMPORT_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")


def env_python(env_dir: Path) -> Path:
    """Path of the interpreter inside a virtual environment."""
    if os.name == "nt":
        return env_dir / "Scripts" / "python.exe"
    return env_dir / "bin" / "python"


def interpreter_version(env_dir: Path) -> str | None:
    """Ask the environment's interpreter for its version ("3.12.7")."""
    python = env_python(env_dir)
    if not python.exists():
        return None

    receipt = run_command(
        [str(python), "-c", "import platform; print(platform.python_version())"],
        adapter="python", operation="version", timeout=30,
    )
    if not receipt.ok:
        logger.warning("Cannot query interpreter in %s: %s", env_dir, receipt.error)
        return None

    match = re.search(r"(\d+\.\d+\.\d+)", receipt.output)
    return match.group(1) if match else None


class PythonImportProbe(LivenessChecker):
    """Import a module with the environment's interpreter."""

    @property
    def name(self) -> str:
        return "python-import"

    def is_available(self) -> bool:
        return True  # uses the environment's own interpreter

    def check(self, env_dir: Path, import_name: str) -> Receipt:
        if not _IMPORT_NAME.match(import_name):
            return Receipt.failure(
                self.name, "import", f"Not a module name: {import_name!r}",
                kind=ErrorKind.FATAL, target=import_name,
            )

        python = env_python(env_dir)
        if not python.exists():
            return Receipt.failure(
                self.name, "import", f"No interpreter at {python}",
                kind=ErrorKind.FATAL, target=import_name,
            )

        receipt = run_command(
            [str(python), "-c", f"import {import_name}"],
            adapter=self.name, operation="import", target=import_name,
            timeout=IMPORT_TIMEOUT,
        )
        if receipt.ok:
            logger.debug("import %s: ok", import_name)
        else:
            logger.warning("import %s failed: %s", import_name, receipt.error)
        return receipt
