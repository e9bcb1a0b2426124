"""
Retry — one bounded exponential-backoff loop for every transient operation.

Adapters report failures as structured results tagged with an ErrorKind.
Only ``transient`` failures are retried; conflicts and fatal errors come
back on the first attempt. The sleep function is injectable so callers
(and tests) control waiting.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Protocol, TypeVar

from src.core.models.plan import RetryPolicy

logger = logging.getLogger(__name__)


class Retryable(Protocol):
    """Anything an adapter returns that says whether it failed transiently."""

    @property
    def transient(self) -> bool: ...

    @property
    def error(self) -> str | None: ...


R = TypeVar("R", bound=Retryable)


def run_with_retry(
    operation: Callable[[], R],
    policy: RetryPolicy,
    *,
    label: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[R, int]:
    """Call ``operation`` until it succeeds, fails non-transiently, or attempts run out.

    Args:
        operation: Zero-argument callable returning a result.
        policy: Attempt budget and backoff schedule.
        label: What is being attempted, for log lines.
        sleep: Called with the backoff delay between attempts.

    Returns:
        (last result, number of attempts made)
    """
    attempt = 0
    while True:
        attempt += 1
        result = operation()

        if not result.transient:
            return result, attempt

        if attempt >= policy.max_attempts:
            logger.error("%s: giving up after %d attempt(s): %s", label, attempt, result.error)
            return result, attempt

        delay = policy.delay_for(attempt)
        logger.warning(
            "%s: transient failure (attempt %d/%d), retrying in %.1fs: %s",
            label, attempt, policy.max_attempts, delay, result.error,
        )
        sleep(delay)
