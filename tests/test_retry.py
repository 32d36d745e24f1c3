import asyncio
from unittest.mock import AsyncMock

import pytest

from hmrc_categorizer.errors import AIClassifierError, ClassificationError
from hmrc_categorizer.services.retry import RetryPolicy


@pytest.mark.anyio
async def test_retry_recovers_after_failures() -> None:
    sleep = AsyncMock()
    operation = AsyncMock(side_effect=[AIClassifierError("503"), asyncio.TimeoutError(), "adminCosts"])
    policy = RetryPolicy(max_attempts=3, backoff_seconds=1.0, sleep=sleep)

    assert await policy.run(operation) == "adminCosts"
    assert operation.await_count == 3
    assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0]


@pytest.mark.anyio
async def test_retry_exhaustion_raises_classification_error() -> None:
    sleep = AsyncMock()
    operation = AsyncMock(side_effect=TimeoutError())
    policy = RetryPolicy(max_attempts=3, backoff_seconds=0.5, sleep=sleep)

    with pytest.raises(ClassificationError) as exc_info:
        await policy.run(operation, label="AI classification of t1")

    assert "3 attempts" in str(exc_info.value)
    assert operation.await_count == 3
    assert [call.args[0] for call in sleep.await_args_list] == [0.5, 1.0]


@pytest.mark.anyio
async def test_non_retryable_errors_propagate_immediately() -> None:
    sleep = AsyncMock()
    operation = AsyncMock(side_effect=ClassificationError("bad answer"))
    policy = RetryPolicy(sleep=sleep)

    with pytest.raises(ClassificationError, match="bad answer"):
        await policy.run(operation)

    assert operation.await_count == 1
    sleep.assert_not_awaited()


def test_delay_grows_linearly_with_attempt() -> None:
    policy = RetryPolicy(backoff_seconds=1.0)
    assert [policy.delay_for(attempt) for attempt in (1, 2, 3)] == [1.0, 2.0, 3.0]
