"""
Bounded exponential backoff for network-bound handlers (click, type, login).
"""
# @file purpose: Retry coordinator with a retryability predicate.

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator, Optional

RETRYABLE_MARKERS = (
    "timeout",
    "ETIMEDOUT",
    "ECONNRESET",
    "ENOTFOUND",
    "ECONNREFUSED",
    "net::ERR_",
    "Navigation timeout",
)


def _chain(error: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or getattr(current, "cause", None)


def is_retryable(error: BaseException) -> bool:
    """Network-category errors: marker text in the message, or a *TimeoutError in the chain."""
    for e in _chain(error):
        if type(e).__name__ == "TimeoutError":
            return True
        text = str(e)
        if any(marker in text for marker in RETRYABLE_MARKERS):
            return True
    return False


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 10_000
    multiplier: float = 2.0
    retry_on: Callable[[BaseException], bool] = is_retryable


OnRetry = Callable[[int, int, int, BaseException], Any]


async def retry_with_backoff(
    fn: Callable[[], Awaitable[Any]],
    policy: RetryPolicy = RetryPolicy(),
    *,
    on_retry: Optional[OnRetry] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Any:
    """
    Call `fn` until it succeeds, the error is not retryable, or attempts run out.
    on_retry(attempt, max_attempts, delay_ms, error) fires before each sleep.
    """
    delay = float(policy.initial_delay_ms)
    attempt = 0
    while True:
        attempt += 1
        try:
            return await fn()
        except Exception as e:  # noqa: BLE001
            if attempt >= policy.max_attempts or not policy.retry_on(e):
                raise
            wait_ms = int(min(delay, policy.max_delay_ms))
            if on_retry is not None:
                on_retry(attempt, policy.max_attempts, wait_ms, e)
            await sleep(wait_ms / 1000)
            delay *= policy.multiplier
