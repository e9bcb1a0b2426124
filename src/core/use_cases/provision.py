"""
Provision use case — from flags to a verified environment.

This is the top-level orchestrator: it loads config, profiles the host,
asks the compatibility rules for an interpreter, reconciles the
manifest, plans, executes, and records the run in the ledger.

    config → profile → rules → reconcile → plan → execute → ledger
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from src.adapters.registry import AdapterRegistry
from src.core.config.loader import ConfigError, load_config
from src.core.engine.executor import ExecutionEngine
from src.core.errors import ManifestError, PlanningError
from src.core.models.config import ProvisionConfig
from src.core.models.host import HostProfile
from src.core.models.plan import EnvAction, InstallationPlan
from src.core.models.result import ExecutionResult, ExitCode
from src.core.persistence.audit import AuditEntry, AuditWriter
from src.core.services import host_profile
from src.core.services import planner
from src.core.use_cases.profile import Recommendation, recommendation
from src.core.use_cases.reconcile import ReconcileResult, persist, reconcile_inputs

logger = logging.getLogger(__name__)


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"


def build_registry(config: ProvisionConfig, mock_mode: bool) -> AdapterRegistry:
    if mock_mode:
        return AdapterRegistry.mock()
    return AdapterRegistry.default(config)


@dataclass
class ProvisionResult:
    """Everything a provisioning run decided and did."""

    operation_id: str = ""
    config: ProvisionConfig | None = None
    profile: HostProfile | None = None
    recommendation: Recommendation = field(default_factory=Recommendation)
    reconcile: ReconcileResult | None = None
    plan: InstallationPlan | None = None
    result: ExecutionResult | None = None
    dry_run: bool = False
    duration_ms: int = 0
    error: str | None = None
    error_type: str | None = None

    @property
    def exit_code(self) -> int:
        if self.error:
            return int(ExitCode.CONFIG)
        if self.result is not None:
            return self.result.exit_code
        return int(ExitCode.OK)

    @property
    def status(self) -> str:
        if self.error or (self.result is not None and not self.result.success):
            return "failed"
        if self.dry_run:
            return "dry-run"
        return "ok"

    def to_dict(self) -> dict:
        data: dict = {
            "operation_id": self.operation_id,
            "status": self.status,
            "exit_code": self.exit_code,
        }
        if self.error:
            data["error"] = self.error
            data["error_type"] = self.error_type
        if self.profile:
            data["profile"] = self.profile.model_dump(mode="json")
        data["recommendation"] = self.recommendation.to_dict()
        if self.reconcile and not self.reconcile.error:
            data["reconcile"] = self.reconcile.to_dict()
        if self.plan:
            data["plan"] = self.plan.to_dict()
        if self.result:
            data["result"] = self.result.to_dict()
        data["duration_ms"] = self.duration_ms
        return data


def provision(
    config_path: Path | None = None,
    *,
    adaptive: bool | None = None,
    update: bool = False,
    force_reinstall: bool = False,
    parallelism: int | None = None,
    dry_run: bool = False,
    mock_mode: bool = False,
    registry: AdapterRegistry | None = None,
    profile: HostProfile | None = None,
    cancel: threading.Event | None = None,
    sleep: Callable[[float], None] = time.sleep,
    start_dir: Path | None = None,
) -> ProvisionResult:
    """Provision the project environment.

    Args:
        config_path: Optional explicit path to envplan.yml.
        adaptive: Enable the compatibility rules; None defers to
            ENVPLAN_ADAPTIVE.
        update: Move to the newest stable interpreter and let the
            resolver upgrade pins.
        force_reinstall: Discard the existing environment first.
        parallelism: Worker count override (1..8).
        dry_run: Plan, print, stop. Nothing on disk changes.
        mock_mode: Use the in-memory adapters.
        registry: Optional pre-configured adapter registry.
        profile: Optional host profile (probed when omitted).
        cancel: Set to stop at the next state boundary.
        sleep: Retry backoff sleep.
        start_dir: Where config discovery begins (default: cwd).

    Returns:
        ProvisionResult; ``exit_code`` is what the CLI exits with.
    """
    started = time.monotonic()
    out = ProvisionResult(operation_id=generate_operation_id(), dry_run=dry_run)
    flags = {
        "adaptive": adaptive,
        "update": update,
        "force_reinstall": force_reinstall,
        "parallelism": parallelism,
        "dry_run": dry_run,
        "mock": mock_mode,
    }

    # ── Inputs ───────────────────────────────────────────────────
    try:
        config = load_config(config_path, start_dir=start_dir)
        out.config = config
        registry = registry or build_registry(config, mock_mode)

        out.profile = profile or host_profile.collect(config.env_path)
        logger.info("Host: %s", out.profile.summary())

        out.recommendation = recommendation(config, out.profile, adaptive)
        out.reconcile = reconcile_inputs(config, out.recommendation)
    except (ConfigError, ManifestError) as e:
        out.error, out.error_type = str(e), type(e).__name__
        return _finish(out, started, flags)

    if not dry_run:
        try:
            persist(out.reconcile, config)
        except OSError as e:
            out.error, out.error_type = f"Cannot write {config.manifest_path}: {e}", type(e).__name__
            return _finish(out, started, flags)

    # ── Plan ─────────────────────────────────────────────────────
    interpreter = registry.interpreter
    env_dir = config.env_path
    env_exists = registry.filesystem.exists(env_dir)
    existing = interpreter.active_version(env_dir) if env_exists else None

    try:
        out.plan = planner.plan(
            out.profile,
            out.recommendation.interpreter,
            out.reconcile.manifest,
            force_reinstall,
            existing_interpreter=existing,
            available_versions=interpreter.list_available(),
            env_exists=env_exists,
            allow_upgrades=update,
            parallelism_override=parallelism if parallelism is not None else config.parallelism,
            interpreter_series=config.interpreter_series,
            recommendation_source=out.recommendation.signature_id,
        )
    except PlanningError as e:
        out.error, out.error_type = e.detail, type(e).__name__
        return _finish(out, started, flags)

    logger.info(
        "Plan: Python %s, %s, %d worker(s)",
        out.plan.target_interpreter, out.plan.env_action.value, out.plan.parallelism,
    )

    if dry_run:
        return _finish(out, started, flags, record=False)

    # ── Execute ──────────────────────────────────────────────────
    engine = ExecutionEngine(registry, config, sleep=sleep)
    out.result = engine.execute(out.plan, cancel=cancel)
    return _finish(out, started, flags)


def _finish(
    out: ProvisionResult,
    started: float,
    flags: dict,
    record: bool = True,
) -> ProvisionResult:
    out.duration_ms = int((time.monotonic() - started) * 1000)
    if record and out.config is not None:
        write_ledger_entry(out, out.config, "provision", flags)
    return out


def write_ledger_entry(
    out: ProvisionResult,
    config: ProvisionConfig,
    operation_type: str,
    flags: dict,
) -> None:
    """Append this run to the project's ledger."""
    plan, result = out.plan, out.result

    errors = []
    if out.error:
        errors.append(out.error)
    if result is not None:
        errors.extend(result.diagnostics if not result.success else [])

    entry = AuditEntry(
        operation_id=out.operation_id,
        operation_type=operation_type,
        flags=flags,
        target_interpreter=plan.target_interpreter if plan else None,
        env_action=plan.env_action.value if plan else None,
        parallelism=plan.parallelism if plan else None,
        recommendation_source=plan.recommendation_source if plan else None,
        status=out.status,
        failed_step=result.failed_step.value if result and result.failed_step else None,
        exit_code=out.exit_code,
        packages_installed=len(result.installed) if result else 0,
        packages_skipped=len(result.skipped) if result else 0,
        duration_ms=out.duration_ms,
        errors=errors,
        context={
            "env_dir": str(config.env_path),
            "interpreter_verified": result.interpreter_verified if result else None,
        },
    )
    AuditWriter(state_dir=config.state_path).write(entry)


# ── Verification only ──────────────────────────────────────────


def _last_target(config: ProvisionConfig) -> str | None:
    for entry in reversed(AuditWriter(state_dir=config.state_path).read_all()):
        if entry.status == "ok" and entry.target_interpreter:
            return entry.target_interpreter
    return None


def verify_environment(
    config_path: Path | None = None,
    *,
    mock_mode: bool = False,
    registry: AdapterRegistry | None = None,
    start_dir: Path | None = None,
) -> ProvisionResult:
    """Check the existing environment without changing it.

    The interpreter is checked against the last successful run's target
    when the ledger has one, otherwise against whatever the environment
    runs now.
    """
    started = time.monotonic()
    out = ProvisionResult(operation_id=generate_operation_id())
    flags = {"mock": mock_mode}

    try:
        config = load_config(config_path, start_dir=start_dir)
        out.config = config
        registry = registry or build_registry(config, mock_mode)
        out.reconcile = reconcile_inputs(config, Recommendation())
    except (ConfigError, ManifestError) as e:
        out.error, out.error_type = str(e), type(e).__name__
        return out

    target = _last_target(config) or registry.interpreter.active_version(config.env_path) or "unknown"
    out.plan = InstallationPlan(
        target_interpreter=target,
        env_action=EnvAction.REUSE,
        parallelism=1,
        reconciled_manifest=out.reconcile.manifest,
    )

    out.result = ExecutionEngine(registry, config).verify(out.plan)
    out.duration_ms = int((time.monotonic() - started) * 1000)
    write_ledger_entry(out, config, "verify", flags)
    return out
