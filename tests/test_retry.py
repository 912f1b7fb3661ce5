"""Tests for the linear-backoff retry handler."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from imagegen.infrastructure.assets.retry import RetryHandler


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


def test_invalid_arguments():
    with pytest.raises(ValueError):
        RetryHandler(max_attempts=0)
    with pytest.raises(ValueError):
        RetryHandler(base_delay=-1)


def test_linear_delays():
    handler = RetryHandler(base_delay=1.5)
    assert [handler.calculate_delay(n) for n in (1, 2, 3)] == [1.5, 3.0, 4.5]


@pytest.mark.anyio
async def test_success_first_try(sleep):
    func = AsyncMock(return_value="ok")
    handler = RetryHandler(sleep=sleep)

    assert await handler.execute_with_retry(func, "a", key="b") == "ok"
    func.assert_awaited_once_with("a", key="b")
    assert sleep.delays == []


@pytest.mark.anyio
async def test_retries_then_succeeds(sleep):
    func = AsyncMock(side_effect=[ValueError("boom"), ValueError("boom"), "ok"])
    on_retry = MagicMock()
    handler = RetryHandler(max_attempts=3, base_delay=1.0, sleep=sleep)

    assert await handler.execute_with_retry(func, on_retry=on_retry) == "ok"
    assert func.await_count == 3
    assert sleep.delays == [1.0, 2.0]
    assert [c.args[0] for c in on_retry.call_args_list] == [1, 2]


@pytest.mark.anyio
async def test_raises_last_error_without_sleeping_after_final_attempt(sleep):
    errors = [ValueError("first"), ValueError("second"), ValueError("third")]
    func = AsyncMock(side_effect=errors)
    handler = RetryHandler(max_attempts=3, sleep=sleep)

    with pytest.raises(ValueError, match="third"):
        await handler.execute_with_retry(func)
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.anyio
async def test_non_retryable_error_propagates_immediately(sleep):
    func = AsyncMock(side_effect=KeyError("nope"))
    handler = RetryHandler(retry_on=(ValueError,), sleep=sleep)

    with pytest.raises(KeyError):
        await handler.execute_with_retry(func)
    assert func.await_count == 1
    assert sleep.delays == []
