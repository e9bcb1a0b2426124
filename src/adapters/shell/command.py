"""
Shell command runner — execute a tool and capture its output as a Receipt.

This is the most fundamental adapter building block: every real adapter
runs its tool through ``run_command`` and then decides, from the exit
status and output, which ErrorKind a failure is.
"""

from __future__ import annotations

import logging
import re
import subprocess
import time
from collections.abc import Iterable
from pathlib import Path

from src.core.models.receipt import ErrorKind, Receipt

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300

# Output fragments that mean "the network let us down", not "the request is wrong"
TRANSIENT_PATTERNS: tuple[str, ...] = (
    r"timed? ?out",
    r"Connection (?:reset|refused|aborted|broken)",
    r"ConnectionError",
    r"NewConnectionError",
    r"Max retries exceeded",
    r"Temporary failure in name resolution",
    r"Could not resolve host",
    r"Name or service not known",
    r"Network is unreachable",
    r"Could not fetch URL",
    r"HTTP error 5\d\d",
    r"\b50[234]\b.*(?:Gateway|Unavailable)",
    r"SSLError",
    r"IncompleteRead",
)


def matches_any(text: str, patterns: Iterable[str]) -> bool:
    """Case-insensitive search for any pattern in ``text``."""
    return any(re.search(p, text, re.IGNORECASE) for p in patterns)


def classify(text: str, conflict_patterns: Iterable[str] = ()) -> ErrorKind:
    """ErrorKind for a failed tool run, from its combined output.

    Transient patterns are checked first: a resolver that could not
    reach the index also reports that no version was found.
    """
    if matches_any(text, TRANSIENT_PATTERNS):
        return ErrorKind.TRANSIENT
    if matches_any(text, conflict_patterns):
        return ErrorKind.CONFLICT
    return ErrorKind.FATAL


def run_command(
    cmd: list[str],
    *,
    adapter: str = "shell",
    operation: str = "run",
    target: str = "",
    cwd: Path | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    env: dict[str, str] | None = None,
    conflict_patterns: Iterable[str] = (),
) -> Receipt:
    """Run ``cmd`` (no shell) and return a Receipt.

    Never raises. A timeout is a transient failure; a missing executable
    is fatal; a non-zero exit is classified from the output.
    """
    command = " ".join(cmd)
    logger.debug("Executing: %s (cwd=%s)", command, cwd)
    start = time.monotonic()

    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
        )
    except subprocess.TimeoutExpired:
        return Receipt.failure(
            adapter=adapter,
            operation=operation,
            target=target,
            error=f"Command timed out after {timeout}s: {command}",
            kind=ErrorKind.TRANSIENT,
            metadata={"command": command, "timeout": timeout},
        )
    except FileNotFoundError:
        return Receipt.failure(
            adapter=adapter,
            operation=operation,
            target=target,
            error=f"Command not found: {cmd[0]}",
            kind=ErrorKind.FATAL,
            metadata={"command": command},
        )
    except OSError as e:
        return Receipt.failure(
            adapter=adapter,
            operation=operation,
            target=target,
            error=f"Command execution error: {e}",
            kind=ErrorKind.FATAL,
            metadata={"command": command},
        )

    elapsed_ms = int((time.monotonic() - start) * 1000)
    output = result.stdout.strip()
    stderr = result.stderr.strip()

    if result.returncode == 0:
        return Receipt.success(
            adapter=adapter,
            operation=operation,
            target=target,
            output=output,
            duration_ms=elapsed_ms,
            metadata={"command": command, "return_code": 0, "stderr": stderr},
        )

    return Receipt.failure(
        adapter=adapter,
        operation=operation,
        target=target,
        error=_last_lines(stderr or output) or f"Command exited with code {result.returncode}",
        kind=classify(f"{stderr}\n{output}", conflict_patterns),
        duration_ms=elapsed_ms,
        metadata={"command": command, "return_code": result.returncode, "stdout": output},
    )


def _last_lines(text: str, n: int = 15) -> str:
    """Tail of tool output; the cause is usually at the end."""
    lines = [line for line in text.splitlines() if line.strip()]
    return "\n".join(lines[-n:])
