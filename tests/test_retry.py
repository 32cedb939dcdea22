import asyncio

import pytest

from upload_engine.client.cancellation import CancellationToken
from upload_engine.client.errors import Cancelled, ExhaustedRetries, NetworkFailure, Unauthorized
from upload_engine.client.retry import RetryPolicy


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def failing(times: int, error_factory=lambda: NetworkFailure("connection reset")):
    calls = {"count": 0}

    async def operation():
        calls["count"] += 1
        if calls["count"] <= times:
            raise error_factory()
        return "ok"

    return operation, calls


async def test_succeeds_on_last_allowed_attempt():
    sleep = RecordingSleep()
    policy = RetryPolicy(max_retries=3, base_delay=1.0, sleep=sleep)
    operation, calls = failing(3)

    assert await policy.run(operation, label="Chunk 5") == "ok"
    assert calls["count"] == 4
    assert sleep.delays == [1.0, 2.0, 4.0]


async def test_exhausted_retries_carry_last_error():
    sleep = RecordingSleep()
    policy = RetryPolicy(max_retries=3, base_delay=0.5, sleep=sleep)
    operation, calls = failing(10)

    with pytest.raises(ExhaustedRetries) as excinfo:
        await policy.run(operation, label="Chunk 7")

    assert calls["count"] == 4
    assert excinfo.value.attempts == 4
    assert excinfo.value.label == "Chunk 7"
    assert isinstance(excinfo.value.last_error, NetworkFailure)
    assert sum(sleep.delays) == pytest.approx(sum(policy.delays()))
    assert policy.delays() == [0.5, 1.0, 2.0]


async def test_non_retryable_errors_propagate_immediately():
    sleep = RecordingSleep()
    policy = RetryPolicy(max_retries=3, sleep=sleep)
    operation, calls = failing(1, lambda: Unauthorized("bad token", 401))

    with pytest.raises(Unauthorized):
        await policy.run(operation)

    assert calls["count"] == 1
    assert sleep.delays == []


async def test_jitter_stretches_delay_within_bounds():
    policy = RetryPolicy(max_retries=3, base_delay=1.0, jitter=0.5)
    for attempt in range(3):
        delay = policy.delay_for(attempt)
        assert 2 ** attempt <= delay <= 2 ** attempt * 1.5


async def test_cancelled_token_stops_before_first_attempt():
    token = CancellationToken()
    token.cancel("user pressed stop")
    operation, calls = failing(0)

    with pytest.raises(Cancelled):
        await RetryPolicy(sleep=RecordingSleep()).run(operation, token=token)
    assert calls["count"] == 0


async def test_cancel_during_backoff_aborts_without_further_attempts():
    token = CancellationToken()
    policy = RetryPolicy(max_retries=5, base_delay=30.0)
    operation, calls = failing(10)

    task = asyncio.create_task(policy.run(operation, label="Chunk 1", token=token))
    await asyncio.sleep(0.01)
    token.cancel()

    with pytest.raises(Cancelled):
        await asyncio.wait_for(task, timeout=2)
    assert calls["count"] == 1


def test_negative_retry_budget_is_rejected():
    with pytest.raises(ValueError):
        RetryPolicy(max_retries=-1)
