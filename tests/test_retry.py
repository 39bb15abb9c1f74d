import asyncio

import pytest

from grabber.core.errors import NetworkError, SelectorError
from grabber.core.retry import RetryPolicy, is_retryable, retry_with_backoff


class Recorder:
    def __init__(self) -> None:
        self.sleeps: list[float] = []
        self.notices: list[tuple[int, int, int]] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)

    def on_retry(self, attempt: int, max_attempts: int, delay_ms: int, error: BaseException) -> None:
        self.notices.append((attempt, max_attempts, delay_ms))


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts_with_geometric_delays() -> None:
    rec = Recorder()
    calls = 0

    async def fn() -> None:
        nonlocal calls
        calls += 1
        raise RuntimeError("net::ERR_CONNECTION_RESET")

    policy = RetryPolicy(max_attempts=5, initial_delay_ms=1000, max_delay_ms=5000, multiplier=2)
    with pytest.raises(RuntimeError):
        await retry_with_backoff(fn, policy, on_retry=rec.on_retry, sleep=rec.sleep)
    assert calls == 5
    assert rec.sleeps == [1.0, 2.0, 4.0, 5.0]
    assert [n[0] for n in rec.notices] == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_non_retryable_error_is_attempted_once() -> None:
    rec = Recorder()
    calls = 0

    async def fn() -> None:
        nonlocal calls
        calls += 1
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        await retry_with_backoff(fn, sleep=rec.sleep)
    assert calls == 1
    assert rec.sleeps == []


@pytest.mark.asyncio
async def test_returns_first_success() -> None:
    rec = Recorder()
    results = iter([asyncio.TimeoutError(), "ok"])

    async def fn() -> str:
        r = next(results)
        if isinstance(r, BaseException):
            raise r
        return r

    assert await retry_with_backoff(fn, sleep=rec.sleep) == "ok"
    assert rec.sleeps == [1.0]


def test_retryable_classification_walks_the_cause_chain() -> None:
    class TimeoutError(Exception):  # same class name as Playwright's
        pass

    assert is_retryable(SelectorError("click", "#x", cause=TimeoutError("waited")))
    assert is_retryable(NetworkError("login", "https://x", RuntimeError("ECONNREFUSED")))
    assert is_retryable(RuntimeError("Navigation timeout of 30000 ms exceeded"))
    assert not is_retryable(SelectorError("click", "#x"))
    assert not is_retryable(RuntimeError("Timeout"))
