"""
History use case — recent runs from the ledger.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from src.core.config.loader import ConfigError, load_config
from src.core.persistence.audit import AuditEntry, AuditWriter


@dataclass
class HistoryResult:
    entries: list[AuditEntry] = field(default_factory=list)
    total: int = 0
    ledger: Path | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "ledger": str(self.ledger) if self.ledger else None,
            "total": self.total,
            "entries": [e.model_dump(mode="json") for e in self.entries],
        }


def get_history(config_path: Path | None = None, n: int = 10) -> HistoryResult:
    """The ``n`` most recent ledger entries, oldest first."""
    try:
        config = load_config(config_path)
    except ConfigError as e:
        return HistoryResult(error=str(e))

    writer = AuditWriter(state_dir=config.state_path)
    return HistoryResult(
        entries=writer.read_recent(n),
        total=writer.entry_count(),
        ledger=writer.path,
    )
