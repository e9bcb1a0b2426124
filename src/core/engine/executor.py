"""
Engine executor — the provisioning state machine.

The engine takes a frozen InstallationPlan and drives the adapters
through it. It never decides anything the planner already decided: the
target interpreter, the env action and the worker count come from the
plan and are used as-is.

Flow:
    PREFLIGHT → ENV_RECONCILE | ENV_CREATE | ENV_REBUILD
              → DEPENDENCY_RESOLVE → DEPENDENCY_INSTALL → VERIFY → DONE

Any failure moves to FAILED, which is absorbing. The environment lock
taken at PREFLIGHT is released however the run ends.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path

from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, Version

from src.adapters.registry import AdapterRegistry
from src.core.data import DataRegistry, get_registry
from src.core.errors import (
    CancelledError,
    ConflictError,
    ManifestError,
    PartialCleanupError,
    PartialStateError,
    PreflightError,
    ProvisionError,
    TransientError,
    VerificationError,
)
from src.core.models.config import ProvisionConfig
from src.core.models.manifest import DependencyEntry, Manifest
from src.core.models.plan import EnvAction, InstallationPlan
from src.core.models.receipt import ErrorKind, Receipt
from src.core.models.result import ExecutionResult, FailedStep, ProvisionState
from src.core.persistence.env_lock import EnvLock, acquire_env_lock
from src.core.persistence.manifest_file import parse_lock
from src.core.reliability.retry import run_with_retry
from src.core.services.versions import versions_match

logger = logging.getLogger(__name__)

PREVIOUS_ENV_SUFFIX = ".previous"


_ENV_STATES: dict[EnvAction, ProvisionState] = {
    EnvAction.REUSE: ProvisionState.ENV_RECONCILE,
    EnvAction.CREATE: ProvisionState.ENV_CREATE,
    EnvAction.FORCE_REBUILD: ProvisionState.ENV_REBUILD,
}

_STATE_STEPS: dict[ProvisionState, FailedStep] = {
    ProvisionState.PREFLIGHT: FailedStep.PREFLIGHT,
    ProvisionState.ENV_RECONCILE: FailedStep.ENVIRONMENT,
    ProvisionState.ENV_CREATE: FailedStep.ENVIRONMENT,
    ProvisionState.ENV_REBUILD: FailedStep.ENVIRONMENT,
    ProvisionState.DEPENDENCY_RESOLVE: FailedStep.RESOLVE,
    ProvisionState.DEPENDENCY_INSTALL: FailedStep.INSTALL,
    ProvisionState.VERIFY: FailedStep.VERIFY,
}


def _error_for(receipt_error: str | None, kind: ErrorKind | None, context: str) -> ProvisionError:
    """Turn an adapter failure into the matching exception."""
    detail = f"{context}: {receipt_error or 'unknown error'}"
    if kind == ErrorKind.TRANSIENT:
        return TransientError(detail)
    if kind == ErrorKind.CONFLICT:
        return ConflictError(detail)
    return ProvisionError(detail)


def _same_version(a: str, b: str) -> bool:
    try:
        return Version(a) == Version(b)
    except InvalidVersion:
        return a.strip() == b.strip()


@dataclass
class _Run:
    """Mutable bookkeeping for one execute() call."""

    plan: InstallationPlan
    states: list[ProvisionState] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)
    installed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed_packages: list[str] = field(default_factory=list)
    lock: Manifest | None = None
    fresh_env: bool = False
    interpreter_verified: str | None = None

    @property
    def current(self) -> ProvisionState | None:
        return self.states[-1] if self.states else None


class ExecutionEngine:
    """Runs an InstallationPlan against the adapters in a registry.

    Args:
        registry: Adapters for every role.
        config: Paths and thresholds for this project.
        sleep: Backoff sleep between retry attempts.
        data: Built-in catalogs (critical packages, import names).
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        config: ProvisionConfig,
        sleep: Callable[[float], None] = time.sleep,
        data: DataRegistry | None = None,
    ):
        self.registry = registry
        self.config = config
        self._sleep = sleep
        self._data = data or get_registry()

    # ── Entry points ────────────────────────────────────────────

    def execute(
        self,
        plan: InstallationPlan,
        cancel: threading.Event | None = None,
    ) -> ExecutionResult:
        """Provision the environment described by ``plan``."""
        run = _Run(plan=plan)
        env_lock: EnvLock | None = None
        logger.info(
            "Executing plan: Python %s, env %s, %d worker(s)",
            plan.target_interpreter, plan.env_action.value, plan.parallelism,
        )

        try:
            self._enter(run, ProvisionState.PREFLIGHT, cancel)
            env_lock = acquire_env_lock(self.config.lock_marker_path)
            self._preflight(run)

            env_state = _ENV_STATES[plan.env_action]
            self._enter(run, env_state, cancel)
            if env_state == ProvisionState.ENV_REBUILD:
                self._rebuild_environment(run)
            elif env_state == ProvisionState.ENV_CREATE:
                self._create_environment(run)
            else:
                self._reconcile_environment(run)
            self._bootstrap(run)

            self._enter(run, ProvisionState.DEPENDENCY_RESOLVE, cancel)
            self._resolve(run)

            self._enter(run, ProvisionState.DEPENDENCY_INSTALL, cancel)
            self._install(run)

            self._enter(run, ProvisionState.VERIFY, cancel)
            self._verify(run, run.lock or Manifest())
            self._write_freeze(run)

            self._enter(run, ProvisionState.DONE)
            return self._result(run, success=True)

        except ProvisionError as e:
            return self._fail(run, e)

        finally:
            if env_lock is not None:
                env_lock.release()

    def verify(self, plan: InstallationPlan) -> ExecutionResult:
        """Run only the VERIFY step against the existing environment.

        Checks against the compiled lock file when one exists, otherwise
        against the plan's manifest (floating entries need only be present).
        """
        run = _Run(plan=plan)
        env_lock: EnvLock | None = None
        try:
            self._enter(run, ProvisionState.VERIFY)
            env_lock = acquire_env_lock(self.config.lock_marker_path)
            self._verify(run, self._expected_packages(plan))
            self._enter(run, ProvisionState.DONE)
            return self._result(run, success=True)
        except ProvisionError as e:
            return self._fail(run, e)
        finally:
            if env_lock is not None:
                env_lock.release()

    # ── State bookkeeping ───────────────────────────────────────

    def _enter(
        self,
        run: _Run,
        state: ProvisionState,
        cancel: threading.Event | None = None,
    ) -> None:
        if cancel is not None and cancel.is_set():
            where = run.current.value if run.current else "start"
            raise CancelledError(f"Cancelled before {state.value} (after {where})")
        previous = run.current
        run.states.append(state)
        if previous is None:
            logger.info("→ %s", state.value)
        else:
            logger.info("%s → %s", previous.value, state.value)

    def _fail(self, run: _Run, error: ProvisionError) -> ExecutionResult:
        step = error.step
        if step is None and run.current is not None:
            step = _STATE_STEPS.get(run.current)
        if step is None:
            step = FailedStep.PREFLIGHT

        run.diagnostics.insert(0, error.detail)
        failed_in = run.current.value if run.current else "start"
        run.states.append(ProvisionState.FAILED)
        logger.error("%s → failed [%s] %s: %s", failed_in, step.value, type(error).__name__, error.detail)
        return self._result(run, success=False, failed_step=step, error_type=type(error).__name__)

    def _result(
        self,
        run: _Run,
        *,
        success: bool,
        failed_step: FailedStep | None = None,
        error_type: str | None = None,
    ) -> ExecutionResult:
        return ExecutionResult(
            success=success,
            interpreter_verified=run.interpreter_verified if success else None,
            failed_step=failed_step,
            error_type=error_type,
            diagnostics=run.diagnostics,
            states=run.states,
            installed=sorted(run.installed),
            skipped=sorted(run.skipped),
            failed_packages=sorted(run.failed_packages),
        )

    def _retry(self, operation: Callable[[], Receipt], run: _Run, label: str) -> Receipt:
        receipt, attempts = run_with_retry(
            operation, run.plan.retry_policy, label=label, sleep=self._sleep,
        )
        if receipt.failed and attempts > 1:
            receipt.error = f"{receipt.error} (after {attempts} attempts)"
        return receipt

    # ── PREFLIGHT ───────────────────────────────────────────────

    def _preflight(self, run: _Run) -> None:
        fs = self.registry.filesystem
        env_dir = self.config.env_path

        free = fs.free_disk_gb(env_dir)
        if free < self.config.min_disk_gb:
            raise PreflightError(
                f"Only {free:.1f} GB free near {env_dir}; {self.config.min_disk_gb:.1f} GB required"
            )
        logger.debug("Disk OK: %.1f GB free", free)

        url = self.config.network_probe_url
        probe = self.registry.network.reachable(url, self.config.network_timeout_seconds)
        if probe.failed:
            raise PreflightError(f"Package index not reachable: {probe.error}")
        logger.debug("Network OK: %s", url)

    # ── ENV_* ───────────────────────────────────────────────────

    def _install_interpreter(self, run: _Run) -> str:
        """Install the plan's interpreter; returns the full version provided."""
        target = run.plan.target_interpreter
        interpreter = self.registry.interpreter
        receipt = self._retry(lambda: interpreter.install(target), run, f"install Python {target}")
        if receipt.failed:
            raise _error_for(receipt.error, receipt.error_kind, f"Installing Python {target} failed")

        full_version = receipt.metadata.get("version") or target
        if not versions_match(target, full_version):
            raise ConflictError(f"Asked for Python {target}, interpreter manager provided {full_version}")
        return full_version

    def _make_environment(self, run: _Run, full_version: str) -> None:
        env_dir = self.config.env_path
        created = self.registry.interpreter.create_environment(full_version, env_dir)
        if created.failed:
            raise PartialStateError(f"Creating environment {env_dir} failed: {created.error}")

        run.fresh_env = True
        logger.info("Created environment %s with Python %s", env_dir, full_version)

    def _create_environment(self, run: _Run) -> None:
        self._make_environment(run, self._install_interpreter(run))

    def _rebuild_environment(self, run: _Run) -> None:
        """Replace the environment, keeping the old one until the new one exists.

        The interpreter is installed first, then the old directory is moved
        aside. If the new environment cannot be created the old one is moved
        back; otherwise it is deleted.
        """
        fs = self.registry.filesystem
        env_dir = self.config.env_path
        aside = env_dir.with_name(f"{env_dir.name}{PREVIOUS_ENV_SUFFIX}")

        full_version = self._install_interpreter(run)

        if fs.exists(aside):
            logger.warning("Removing %s left by an interrupted rebuild", aside)
            self._discard(run, aside)

        moved = fs.move(env_dir, aside)
        if moved.failed:
            run.diagnostics.append(f"move {env_dir}: {moved.error}")
        if fs.exists(env_dir) and not fs.is_empty(env_dir):
            raise PartialCleanupError(
                f"{env_dir} could not be moved aside for the rebuild; "
                "remove it by hand before rebuilding"
            )

        try:
            self._make_environment(run, full_version)
        except ProvisionError:
            self._restore(run, aside, env_dir)
            raise

        self._discard(run, aside)
        lock_removal = fs.remove_tree(self.config.lock_path)
        if lock_removal.failed:
            run.diagnostics.append(f"remove {self.config.lock_path}: {lock_removal.error}")
        logger.info("Replaced previous environment %s", env_dir)

    def _discard(self, run: _Run, path: Path) -> None:
        fs = self.registry.filesystem
        removal = fs.remove_tree(path)
        if removal.failed:
            run.diagnostics.append(f"remove {path}: {removal.error}")
        if fs.exists(path) and not fs.is_empty(path):
            raise PartialCleanupError(
                f"{path} still exists and is not empty after removal; "
                "remove it by hand before rebuilding"
            )

    def _restore(self, run: _Run, aside: Path, env_dir: Path) -> None:
        fs = self.registry.filesystem
        if not fs.exists(aside):
            return
        leftover = fs.remove_tree(env_dir)
        if leftover.failed:
            run.diagnostics.append(f"remove {env_dir}: {leftover.error}")
        restored = fs.move(aside, env_dir)
        if restored.failed:
            run.diagnostics.append(f"restore {env_dir} from {aside}: {restored.error}")
            logger.error("Previous environment left at %s: %s", aside, restored.error)
        else:
            logger.warning("Rebuild failed; restored previous environment %s", env_dir)

    def _reconcile_environment(self, run: _Run) -> None:
        target = run.plan.target_interpreter
        env_dir = self.config.env_path

        if not self.registry.filesystem.exists(env_dir):
            raise PartialStateError(f"Environment {env_dir} is missing; cannot reuse it")

        active = self.registry.interpreter.active_version(env_dir)
        if active is None or not versions_match(target, active):
            raise PartialStateError(
                f"Environment {env_dir} runs Python {active or 'unknown'}, plan targets {target}; "
                "rerun with --force-reinstall"
            )
        logger.info("Reusing environment %s (Python %s)", env_dir, active)

    def _bootstrap(self, run: _Run) -> None:
        resolver = self.registry.resolver
        env_dir = self.config.env_path
        receipt = self._retry(lambda: resolver.bootstrap(env_dir), run, "bootstrap resolver tooling")
        if receipt.failed:
            raise _error_for(receipt.error, receipt.error_kind, "Bootstrapping resolver tooling failed")

    # ── DEPENDENCY_RESOLVE ──────────────────────────────────────

    def _resolve(self, run: _Run) -> None:
        resolver = self.registry.resolver
        plan = run.plan

        result, attempts = run_with_retry(
            lambda: resolver.compile(
                plan.reconciled_manifest,
                self.config.env_path,
                self.config.lock_path,
                upgrade=plan.allow_upgrades,
            ),
            plan.retry_policy,
            label="compile lock",
            sleep=self._sleep,
        )
        if not result.ok or result.lock is None:
            suffix = f" (after {attempts} attempts)" if attempts > 1 else ""
            raise _error_for(result.error, result.kind, f"Resolving dependencies failed{suffix}")

        unpinned = [e.name for e in result.lock.entries if not e.is_pinned]
        if unpinned:
            raise ConflictError(f"Lock is not fully pinned: {', '.join(unpinned)}")

        run.lock = result.lock
        logger.info("Resolved %d pinned package(s) into %s", len(result.lock.entries), self.config.lock_path)

    # ── DEPENDENCY_INSTALL ──────────────────────────────────────

    def _install(self, run: _Run) -> None:
        pins = list(run.lock.entries) if run.lock else []
        env_dir = self.config.env_path

        if not run.fresh_env:
            present = self.registry.resolver.installed_packages(env_dir) or {}
            todo = []
            for pin in pins:
                have = present.get(pin.key)
                if have is not None and _same_version(have, pin.pinned_version or ""):
                    run.skipped.append(pin.key)
                else:
                    todo.append(pin)
            pins = todo
            if run.skipped:
                logger.info("%d package(s) already at the locked version", len(run.skipped))

        if not pins:
            logger.info("Nothing to install")
            return

        logger.info("Installing %d package(s) with %d worker(s)", len(pins), run.plan.parallelism)
        failures: list[Receipt] = []
        with ThreadPoolExecutor(max_workers=run.plan.parallelism) as pool:
            futures = {pool.submit(self._install_one, pin, run): pin for pin in pins}
            for future in as_completed(futures):
                pin = futures[future]
                receipt = future.result()
                if receipt.ok:
                    run.installed.append(pin.key)
                else:
                    run.failed_packages.append(pin.key)
                    run.diagnostics.append(f"{pin.requirement()}: {receipt.error}")
                    failures.append(receipt)

        if failures:
            kinds = {r.error_kind for r in failures}
            detail = (
                f"{len(failures)} of {len(pins)} package(s) failed to install: "
                f"{', '.join(sorted(run.failed_packages))}"
            )
            if ErrorKind.CONFLICT in kinds:
                raise ConflictError(detail)
            if kinds == {ErrorKind.TRANSIENT}:
                raise TransientError(detail)
            raise ProvisionError(detail)

    def _install_one(self, pin: DependencyEntry, run: _Run) -> Receipt:
        resolver = self.registry.resolver
        env_dir = self.config.env_path
        try:
            receipt, attempts = run_with_retry(
                lambda: resolver.install_package(pin, env_dir),
                run.plan.retry_policy,
                label=f"install {pin.requirement()}",
                sleep=self._sleep,
            )
        except Exception as e:
            logger.exception("Installer crashed on %s", pin.requirement())
            return Receipt.failure(resolver.name, "install_package", f"Unexpected error: {e}", target=pin.key)
        if receipt.failed and attempts > 1:
            receipt.error = f"{receipt.error} (after {attempts} attempts)"
        return receipt

    # ── VERIFY ──────────────────────────────────────────────────

    def _expected_packages(self, plan: InstallationPlan) -> Manifest:
        lock_path = self.config.lock_path
        if lock_path.is_file():
            try:
                return parse_lock(lock_path.read_text(encoding="utf-8"))
            except (OSError, ManifestError) as e:
                logger.warning("Cannot read lock %s, checking the manifest instead: %s", lock_path, e)
        return plan.reconciled_manifest

    def critical_imports(self, manifest: Manifest) -> list[tuple[str, str]]:
        """(distribution, import name) pairs to probe after installation.

        Configured critical packages are always probed. Without
        configuration the built-in list applies, limited to what the
        manifest declares.
        """
        if self.config.critical_packages:
            names = [canonicalize_name(n) for n in self.config.critical_packages]
        else:
            declared = {e.key for e in manifest.entries}
            names = [n for n in self._data.critical_packages if n in declared]
        return [(n, self._data.import_name(n)) for n in names]

    def _verify(self, run: _Run, expected: Manifest) -> None:
        target = run.plan.target_interpreter
        env_dir = self.config.env_path
        problems: list[str] = []

        active = self.registry.interpreter.active_version(env_dir)
        if active is None or not versions_match(target, active):
            problems.append(f"interpreter is {active or 'missing'}, expected {target}")

        resolver = self.registry.resolver
        installed = resolver.installed_packages(env_dir)
        if installed is None:
            problems.append(f"cannot list installed packages in {env_dir}")
            installed = {}
        else:
            for entry in expected.entries:
                have = installed.get(entry.key)
                if have is None:
                    problems.append(f"{entry.name} is not installed")
                elif entry.pinned_version and not _same_version(have, entry.pinned_version):
                    problems.append(f"{entry.name} is {have}, locked at {entry.pinned_version}")

            check = resolver.check(env_dir)
            if check.failed:
                problems.append(f"resolver consistency check failed: {check.error}")
            elif check.output:
                run.diagnostics.append(f"resolver check: {check.output.strip()}")

        manifest = run.plan.reconciled_manifest
        liveness = self.registry.liveness
        for dist, module in self.critical_imports(manifest if manifest.entries else expected):
            probe = liveness.check(env_dir, module)
            if probe.failed:
                reported = " (reported installed)" if dist in installed else ""
                problems.append(f"cannot import {module} for {dist}{reported}: {probe.error}")
            else:
                logger.debug("import %s OK", module)

        if problems:
            run.diagnostics.extend(problems)
            raise VerificationError(
                f"Environment {env_dir} failed verification ({len(problems)} problem(s)); left in place for inspection"
            )

        run.interpreter_verified = active
        logger.info("Verified %s: Python %s, %d package(s)", env_dir, active, len(expected.entries))

    def _write_freeze(self, run: _Run) -> None:
        path = self.config.freeze_path
        receipt = self.registry.resolver.freeze(self.config.env_path, path)
        if receipt.failed:
            logger.warning("Could not write freeze file %s: %s", path, receipt.error)
            run.diagnostics.append(f"freeze: {receipt.error}")
        else:
            logger.info("Wrote freeze file %s", path)
