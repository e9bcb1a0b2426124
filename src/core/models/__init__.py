"""
Domain models — Pydantic types for the provisioning planner.

All models are re-exported here for convenient access:

    from src.core.models import HostProfile, Manifest, InstallationPlan, Receipt
"""

from src.core.models.config import ProvisionConfig
from src.core.models.host import Arch, HostProfile, OsFamily
from src.core.models.manifest import (
    ConflictReport,
    DependencyEntry,
    DuplicateReport,
    Manifest,
    ReconcileReport,
)
from src.core.models.plan import EnvAction, InstallationPlan, RetryPolicy
from src.core.models.receipt import ErrorKind, Receipt
from src.core.models.result import (
    ExecutionResult,
    ExitCode,
    FailedStep,
    ProvisionState,
)
from src.core.models.signature import IncompatibilitySignature

__all__ = [
    # host.py
    "Arch",
    # manifest.py
    "ConflictReport",
    "DependencyEntry",
    "DuplicateReport",
    # plan.py
    "EnvAction",
    # receipt.py
    "ErrorKind",
    # result.py
    "ExecutionResult",
    "ExitCode",
    "FailedStep",
    "HostProfile",
    # signature.py
    "IncompatibilitySignature",
    "InstallationPlan",
    "Manifest",
    "OsFamily",
    # config.py
    "ProvisionConfig",
    "ProvisionState",
    "Receipt",
    "ReconcileReport",
    "RetryPolicy",
]
