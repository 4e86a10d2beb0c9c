"""
Failure Injection Tests.

Bounded retry with backoff for conflicting writes.
"""

import pytest

from backend.app.core.exceptions import ConflictError, ValidationError
from backend.app.core.reliability import RetryPolicy


@pytest.mark.asyncio
async def test_retry_recovers_from_transient_conflict():
    policy = RetryPolicy(max_attempts=3, base_delay=0, max_delay=0)
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise ConflictError()
        return "committed"

    assert await policy.run(flaky, operation="flaky") == "committed"
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_retry_gives_up_after_max_attempts():
    policy = RetryPolicy(max_attempts=2, base_delay=0, max_delay=0)
    attempts = []

    async def always_conflicts():
        attempts.append(1)
        raise ConflictError()

    with pytest.raises(ConflictError):
        await policy.run(always_conflicts)
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_other_errors_are_not_retried():
    policy = RetryPolicy(max_attempts=5, base_delay=0, max_delay=0)
    attempts = []

    async def invalid():
        attempts.append(1)
        raise ValidationError("bad input")

    with pytest.raises(ValidationError):
        await policy.run(invalid)
    assert len(attempts) == 1


def test_backoff_is_exponential_and_capped():
    policy = RetryPolicy(max_attempts=5, base_delay=0.1, max_delay=0.3)

    assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [0.1, 0.2, 0.3, 0.3]


def test_policy_requires_an_attempt():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
