"""
Receipt model — the result contract between adapters and the engine.

Adapters perform external side effects (pyenv, pip, the filesystem) and
return Receipts. They NEVER raise for tool failures; a failed Receipt
says what went wrong and which kind of failure it was, so the engine
can decide between retrying and failing without reading tool output.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class ErrorKind(StrEnum):
    """How a failed operation should be treated."""

    TRANSIENT = "transient"   # network, timeout: worth retrying
    CONFLICT = "conflict"     # deterministic: retrying cannot help
    FATAL = "fatal"           # anything else


class Receipt(BaseModel):
    """Result of one adapter operation."""

    adapter: str
    operation: str
    target: str = ""
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None
    error_kind: ErrorKind | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the operation succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the operation failed."""
        return self.status == "failed"

    @property
    def transient(self) -> bool:
        return self.failed and self.error_kind == ErrorKind.TRANSIENT

    @classmethod
    def success(
        cls,
        adapter: str,
        operation: str,
        output: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a success receipt."""
        return cls(
            adapter=adapter,
            operation=operation,
            status="ok",
            output=output,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        adapter: str,
        operation: str,
        error: str,
        kind: ErrorKind = ErrorKind.FATAL,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(
            adapter=adapter,
            operation=operation,
            status="failed",
            error=error,
            error_kind=kind,
            **kwargs,
        )

    @classmethod
    def skip(
        cls,
        adapter: str,
        operation: str,
        reason: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a skip receipt."""
        return cls(
            adapter=adapter,
            operation=operation,
            status="skipped",
            output=reason,
            **kwargs,
        )
