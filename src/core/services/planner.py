"""
Installation planner — decide interpreter, environment action and parallelism.

The one contract that matters most: when the compatibility rules return
a recommendation, ``target_interpreter`` IS that recommendation, no
matter how much newer the newest available interpreter is. Nothing
downstream may substitute another version.
"""

from __future__ import annotations

import logging

from src.core.errors import PlanningError
from src.core.models.host import HostProfile
from src.core.models.manifest import Manifest
from src.core.models.plan import (
    MAX_PARALLELISM,
    MIN_PARALLELISM,
    EnvAction,
    InstallationPlan,
    RetryPolicy,
)
from src.core.services.versions import latest_stable, versions_match

logger = logging.getLogger(__name__)

LOW_MEMORY_GB = 4.0


# ── Decisions ──────────────────────────────────────────────

def choose_parallelism(profile: HostProfile, override: int | None = None) -> int:
    """Worker count for DEPENDENCY_INSTALL.

    ``clamp(cpu_cores // 2, 1, 8)``. An override within [1, 8] replaces
    the formula. Hosts with less than 4 GB of free memory always get 1.
    """
    if profile.available_memory_gb < LOW_MEMORY_GB:
        if override is not None and override != MIN_PARALLELISM:
            logger.warning(
                "Ignoring parallelism override %d: only %.1f GB of memory free",
                override, profile.available_memory_gb,
            )
        return MIN_PARALLELISM

    if override is not None:
        if MIN_PARALLELISM <= override <= MAX_PARALLELISM:
            return override
        logger.warning(
            "Ignoring parallelism override %d (must be %d..%d)",
            override, MIN_PARALLELISM, MAX_PARALLELISM,
        )
    return max(MIN_PARALLELISM, min(profile.cpu_cores // 2, MAX_PARALLELISM))


def choose_target(
    recommended: str | None,
    existing_interpreter: str | None,
    available_versions: list[str],
    allow_upgrades: bool = False,
    interpreter_series: list[str] | None = None,
) -> str:
    """Interpreter version the plan will install.

    Raises:
        PlanningError: If there is nothing to choose from.
    """
    if recommended:
        return recommended
    if existing_interpreter and not allow_upgrades:
        return existing_interpreter

    latest = latest_stable(available_versions, interpreter_series)
    if latest is None:
        raise PlanningError(
            "No stable interpreter available"
            + (f" in series {', '.join(interpreter_series)}" if interpreter_series else "")
        )
    return latest


def choose_env_action(
    env_exists: bool,
    force_rebuild_requested: bool,
    existing_interpreter: str | None,
    target: str,
) -> EnvAction:
    """Decision table, first row that applies wins."""
    if not env_exists:
        return EnvAction.CREATE
    if force_rebuild_requested:
        return EnvAction.FORCE_REBUILD
    if existing_interpreter is None or not versions_match(target, existing_interpreter):
        return EnvAction.FORCE_REBUILD
    return EnvAction.REUSE


def plan(
    profile: HostProfile,
    recommended: str | None,
    manifest: Manifest,
    force_rebuild_requested: bool,
    *,
    existing_interpreter: str | None,
    available_versions: list[str],
    env_exists: bool | None = None,
    allow_upgrades: bool = False,
    parallelism_override: int | None = None,
    interpreter_series: list[str] | None = None,
    recommendation_source: str | None = None,
) -> InstallationPlan:
    """Build the InstallationPlan for this run.

    Args:
        profile: Host facts.
        recommended: Interpreter from the compatibility rules, or None.
        manifest: The reconciled manifest.
        force_rebuild_requested: ``--force-reinstall``.
        existing_interpreter: Version of the current environment's
            interpreter, or None when there is no usable environment.
        available_versions: What the interpreter manager can install.
        env_exists: Whether the environment directory exists. Defaults to
            ``existing_interpreter is not None``; pass it explicitly when a
            directory is present but its interpreter cannot be queried.
        allow_upgrades: ``--update``: move to the newest interpreter and
            let the resolver upgrade pins.
        parallelism_override: Caller-supplied worker count.
        interpreter_series: Series accepted as "latest stable".
        recommendation_source: Id of the signature behind ``recommended``.

    Raises:
        PlanningError: If no target interpreter can be chosen.
    """
    if env_exists is None:
        env_exists = existing_interpreter is not None

    target = choose_target(
        recommended, existing_interpreter, available_versions,
        allow_upgrades=allow_upgrades, interpreter_series=interpreter_series,
    )
    action = choose_env_action(env_exists, force_rebuild_requested, existing_interpreter, target)
    workers = choose_parallelism(profile, parallelism_override)

    result = InstallationPlan(
        target_interpreter=target,
        env_action=action,
        parallelism=workers,
        retry_policy=RetryPolicy(),
        reconciled_manifest=manifest,
        allow_upgrades=allow_upgrades,
        recommendation_source=recommendation_source,
        existing_interpreter=existing_interpreter,
    )
    logger.info(
        "Plan: Python %s, env %s, %d worker(s), %d package(s)",
        target, action.value, workers, len(manifest.entries),
    )
    return result
