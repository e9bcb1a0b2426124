"""
ExecutionResult — the terminal value of a provisioning run.

Every failure path of the engine ends here with the step that failed and
the specific diagnostics; a bare "failed" is never reported.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum

from pydantic import BaseModel, Field


class ProvisionState(StrEnum):
    """States of the execution engine."""

    PREFLIGHT = "preflight"
    ENV_RECONCILE = "env_reconcile"
    ENV_CREATE = "env_create"
    ENV_REBUILD = "env_rebuild"
    DEPENDENCY_RESOLVE = "dependency_resolve"
    DEPENDENCY_INSTALL = "dependency_install"
    VERIFY = "verify"
    DONE = "done"
    FAILED = "failed"


class FailedStep(StrEnum):
    """Failure categories reported to callers."""

    PREFLIGHT = "preflight"
    ENVIRONMENT = "environment"
    RESOLVE = "resolve"
    INSTALL = "install"
    VERIFY = "verify"
    CANCELLED = "cancelled"


class ExitCode(IntEnum):
    """Process exit codes, one per failure category."""

    OK = 0
    CONFIG = 1
    PREFLIGHT = 3
    ENVIRONMENT = 4
    RESOLVE = 5
    INSTALL = 6
    VERIFY = 7
    CANCELLED = 8


_STEP_EXIT_CODES: dict[FailedStep, ExitCode] = {
    FailedStep.PREFLIGHT: ExitCode.PREFLIGHT,
    FailedStep.ENVIRONMENT: ExitCode.ENVIRONMENT,
    FailedStep.RESOLVE: ExitCode.RESOLVE,
    FailedStep.INSTALL: ExitCode.INSTALL,
    FailedStep.VERIFY: ExitCode.VERIFY,
    FailedStep.CANCELLED: ExitCode.CANCELLED,
}


def exit_code_for(step: FailedStep | None) -> ExitCode:
    """Map a failed step to its exit code (``OK`` for no failure)."""
    if step is None:
        return ExitCode.OK
    return _STEP_EXIT_CODES[step]


class ExecutionResult(BaseModel):
    """Outcome of executing an InstallationPlan."""

    success: bool
    interpreter_verified: str | None = None
    failed_step: FailedStep | None = None
    error_type: str | None = None
    diagnostics: list[str] = Field(default_factory=list)

    states: list[ProvisionState] = Field(default_factory=list)
    installed: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    failed_packages: list[str] = Field(default_factory=list)

    @property
    def exit_code(self) -> int:
        return int(exit_code_for(self.failed_step))

    @property
    def final_state(self) -> ProvisionState | None:
        return self.states[-1] if self.states else None

    def to_dict(self) -> dict:
        data = self.model_dump(mode="json")
        data["exit_code"] = self.exit_code
        return data
