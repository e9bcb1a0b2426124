"""
InstallationPlan — the planner's output and the engine's only input.

A plan is produced fresh each run and never persisted beyond the run
ledger. Once emitted, ``target_interpreter`` is final: the engine
installs exactly that version or fails.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from src.core.models.manifest import Manifest

MIN_PARALLELISM = 1
MAX_PARALLELISM = 8


class EnvAction(StrEnum):
    """What to do with the target environment directory."""

    REUSE = "reuse"
    CREATE = "create"
    FORCE_REBUILD = "force_rebuild"


class RetryPolicy(BaseModel):
    """Bounded retry with exponential doubling.

    Attempt ``n`` (1-based) that fails transiently waits
    ``base_backoff_seconds * 2 ** (n - 1)`` seconds, capped at
    ``max_backoff_seconds``, before attempt ``n + 1``.
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    base_backoff_seconds: float = Field(default=2.0, ge=0)
    max_backoff_seconds: float = Field(default=60.0, ge=0)

    def delay_for(self, attempt: int) -> float:
        """Backoff to sleep after failed attempt number ``attempt``."""
        delay = self.base_backoff_seconds * (2 ** (max(attempt, 1) - 1))
        return min(delay, self.max_backoff_seconds)


class InstallationPlan(BaseModel):
    """Everything the execution engine needs to provision one environment."""

    model_config = ConfigDict(frozen=True)

    target_interpreter: str
    env_action: EnvAction
    parallelism: int = Field(ge=MIN_PARALLELISM, le=MAX_PARALLELISM)
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    reconciled_manifest: Manifest = Field(default_factory=Manifest)

    allow_upgrades: bool = False
    recommendation_source: str | None = None   # signature id, if any
    existing_interpreter: str | None = None

    def to_dict(self) -> dict:
        return {
            "target_interpreter": self.target_interpreter,
            "env_action": self.env_action.value,
            "parallelism": self.parallelism,
            "retry_policy": self.retry_policy.model_dump(mode="json"),
            "allow_upgrades": self.allow_upgrades,
            "recommendation_source": self.recommendation_source,
            "existing_interpreter": self.existing_interpreter,
            "packages": [e.requirement() for e in self.reconciled_manifest.entries],
        }
