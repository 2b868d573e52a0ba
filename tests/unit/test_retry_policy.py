"""
Unit tests for DatabaseRetryPolicy.

Verifies that transient database failures are retried with backoff, domain
errors propagate on the first attempt, and exhausted retries re-raise the
last error.
"""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from goosetap.core.database import DatabaseRetryConfig, DatabaseRetryPolicy
from goosetap.modules.shared.exceptions import AlreadyClaimedError

pytestmark = pytest.mark.unit


def _operational_error() -> OperationalError:
    return OperationalError("UPDATE players", {}, Exception("connection reset"))


class _FlakyOperation:
    """Fails with the given errors, then returns `result`."""

    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class TestDatabaseRetryPolicy:
    async def test_success_on_first_attempt(self, retry_policy):
        operation = _FlakyOperation([])

        result = await retry_policy.execute(operation, operation_name="test.noop")

        assert result == "ok"
        assert operation.calls == 1

    async def test_transient_errors_retried(self, retry_policy):
        """OperationalError and a stale version both re-run the unit of work."""
        operation = _FlakyOperation([_operational_error(), StaleDataError("version mismatch")])

        result = await retry_policy.execute(
            operation, operation_name="rewards.claim_daily", context={"telegram_id": 1}
        )

        assert result == "ok"
        assert operation.calls == 3

    async def test_domain_error_not_retried(self, retry_policy):
        operation = _FlakyOperation([AlreadyClaimedError("first-upgrade")])

        with pytest.raises(AlreadyClaimedError):
            await retry_policy.execute(operation, operation_name="rewards.claim_task")

        assert operation.calls == 1

    async def test_exhausted_retries_reraise(self, retry_policy):
        operation = _FlakyOperation([_operational_error() for _ in range(5)])

        with pytest.raises(OperationalError):
            await retry_policy.execute(operation, operation_name="ledger.tap")

        assert operation.calls == retry_policy.config.max_attempts

    def test_backoff_grows_and_caps(self):
        policy = DatabaseRetryPolicy(
            DatabaseRetryConfig(
                max_attempts=5, initial_backoff_ms=50, max_backoff_ms=150, jitter_ms=0
            )
        )

        assert [policy._compute_backoff_ms(n) for n in (1, 2, 3, 4)] == [50, 100, 150, 150]

    def test_jitter_bounded(self):
        policy = DatabaseRetryPolicy(
            DatabaseRetryConfig(
                max_attempts=3, initial_backoff_ms=10, max_backoff_ms=100, jitter_ms=5
            )
        )

        assert all(10 <= policy._compute_backoff_ms(1) <= 15 for _ in range(50))

    def test_from_config(self):
        policy = DatabaseRetryPolicy.from_config()

        assert policy.config.max_attempts >= 1
        assert StaleDataError in policy.config.retriable_exceptions
