"""
Error taxonomy for provisioning.

Every failure the engine can report is one of these. Retry decisions are
made on the class alone: only ``TransientError`` is ever retried.
"""

from __future__ import annotations

from src.core.models.result import FailedStep


class ProvisionError(Exception):
    """Base class for provisioning failures.

    Args:
        detail: Human-readable diagnostic.
        step: The failed step, when known at raise time.
    """

    default_step: FailedStep | None = None

    def __init__(self, detail: str, step: FailedStep | None = None):
        super().__init__(detail)
        self.detail = detail
        self.step = step or self.default_step


class TransientError(ProvisionError):
    """Network or timeout failure. Retried with backoff."""


class ConflictError(ProvisionError):
    """Deterministic dependency or version conflict. Never retried."""


class PlanningError(ConflictError):
    """No interpreter version can be chosen for the plan."""


class PartialStateError(ProvisionError):
    """On-disk state is inconsistent. Needs manual or forced rebuild."""

    default_step = FailedStep.ENVIRONMENT


class PartialCleanupError(PartialStateError):
    """Removing the previous environment left a non-empty directory."""


class VerificationError(ProvisionError):
    """Installed state does not match the plan. Environment kept for inspection."""

    default_step = FailedStep.VERIFY


class PreflightError(ProvisionError):
    """Disk or network precondition failed."""

    default_step = FailedStep.PREFLIGHT


class LockError(PreflightError):
    """Another run holds the environment lock."""


class CancelledError(ProvisionError):
    """Cancellation was requested at a state boundary."""

    default_step = FailedStep.CANCELLED


class ManifestError(Exception):
    """Raised when the manifest file cannot be read or parsed."""
