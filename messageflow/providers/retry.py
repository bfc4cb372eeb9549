"""Bounded retry with exponential backoff for vendor calls."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from messageflow.logging.audit import get_audit_logger

T = TypeVar("T")


class Retrier:
    """Retry an async call up to `attempts` times, doubling the delay.

    Cancellation (asyncio.CancelledError, including a surrounding
    timeout) is a BaseException and always propagates without retry;
    the backoff sleep is itself a cancellation point.
    """

    def __init__(self, attempts: int = 3, delay: float = 0.4):
        self.attempts = max(1, attempts)
        self.delay = delay if delay > 0 else 0.3

    async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
        delay = self.delay
        last_error: Exception | None = None
        for attempt in range(1, self.attempts + 1):
            try:
                return await fn()
            except Exception as e:
                last_error = e
                if attempt == self.attempts:
                    break
                get_audit_logger().debug(
                    "Retrying provider call",
                    extra={"audit_data": {
                        "attempt": attempt,
                        "delay_s": delay,
                        "error": str(e),
                    }},
                )
                await asyncio.sleep(delay)
                delay *= 2
        raise last_error
