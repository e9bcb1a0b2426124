"""
Tests for the retry loop and the retry policy.
"""

from src.core.models.plan import RetryPolicy
from src.core.models.receipt import ErrorKind, Receipt
from src.core.reliability.retry import run_with_retry


def _flaky(outcomes: list[Receipt]):
    calls = []

    def op() -> Receipt:
        calls.append(1)
        return outcomes[min(len(calls), len(outcomes)) - 1]

    return op, calls


def _transient() -> Receipt:
    return Receipt.failure("test", "op", "Connection reset by peer", kind=ErrorKind.TRANSIENT)


class TestPolicy:
    def test_delays_double(self):
        policy = RetryPolicy(base_backoff_seconds=2.0)
        assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [2.0, 4.0, 8.0, 16.0]

    def test_delay_capped(self):
        policy = RetryPolicy(base_backoff_seconds=2.0, max_backoff_seconds=5.0)
        assert policy.delay_for(10) == 5.0

    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_attempts == 3
        assert policy.base_backoff_seconds == 2.0


class TestRunWithRetry:
    def test_success_first_try(self, sleeps):
        op, calls = _flaky([Receipt.success("test", "op")])
        result, attempts = run_with_retry(op, RetryPolicy(), sleep=sleeps.append)
        assert result.ok
        assert attempts == 1
        assert sleeps == []

    def test_transient_then_success(self, sleeps):
        op, calls = _flaky([_transient(), _transient(), Receipt.success("test", "op")])
        result, attempts = run_with_retry(op, RetryPolicy(), sleep=sleeps.append)
        assert result.ok
        assert attempts == 3
        assert sleeps == [2.0, 4.0]

    def test_gives_up_after_max_attempts(self, sleeps):
        op, calls = _flaky([_transient()])
        result, attempts = run_with_retry(op, RetryPolicy(max_attempts=4), sleep=sleeps.append)
        assert result.failed
        assert attempts == 4
        assert len(calls) == 4
        assert sleeps == [2.0, 4.0, 8.0]

    def test_conflict_not_retried(self, sleeps):
        conflict = Receipt.failure("test", "op", "ResolutionImpossible", kind=ErrorKind.CONFLICT)
        op, calls = _flaky([conflict, Receipt.success("test", "op")])
        result, attempts = run_with_retry(op, RetryPolicy(), sleep=sleeps.append)
        assert result.error_kind == ErrorKind.CONFLICT
        assert attempts == 1
        assert sleeps == []

    def test_fatal_not_retried(self, sleeps):
        fatal = Receipt.failure("test", "op", "boom")
        op, calls = _flaky([fatal])
        _, attempts = run_with_retry(op, RetryPolicy(), sleep=sleeps.append)
        assert attempts == 1
        assert len(calls) == 1
