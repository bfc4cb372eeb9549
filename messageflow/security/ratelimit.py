"""Per-provider request limits using in-memory sliding window counters.

Each provider config may set max_requests_per_minute; requests beyond
that are refused before the vendor is called. Timestamps of recent
requests are stored in a deque per key, and expired entries are pruned
on each check. A limit of 0 means unlimited.
"""

import time
from collections import defaultdict, deque
from dataclasses import dataclass

WINDOW_SECONDS = 60.0  # 1-minute sliding window


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_seconds: float


class SlidingWindowLimiter:

    def __init__(self, window_seconds: float = WINDOW_SECONDS):
        self.window_seconds = window_seconds
        self._windows: dict[str, deque[float]] = defaultdict(deque)

    async def check(self, key: str, limit: int) -> RateLimitResult:
        """Check and record one request for `key`.

        Args:
            key: Window identity, e.g. "<tenant>:<provider>".
            limit: Max requests per window; 0 or less disables limiting.
        """
        if limit <= 0:
            return RateLimitResult(allowed=True, limit=0, remaining=0, reset_seconds=0.0)

        now = time.monotonic()
        window_start = now - self.window_seconds
        window = self._windows[key]

        # Prune expired timestamps from the left
        while window and window[0] < window_start:
            window.popleft()

        if len(window) >= limit:
            reset = window[0] + self.window_seconds - now
            return RateLimitResult(
                allowed=False,
                limit=limit,
                remaining=0,
                reset_seconds=round(reset, 1),
            )

        window.append(now)
        remaining = max(0, limit - len(window))
        reset = window[0] + self.window_seconds - now

        return RateLimitResult(
            allowed=True,
            limit=limit,
            remaining=remaining,
            reset_seconds=round(reset, 1),
        )

    def reset(self, key: str) -> None:
        """Clear limiter state for a key."""
        self._windows.pop(key, None)

    def clear(self) -> None:
        self._windows.clear()


def provider_key(tenant_id: int, provider_id: int) -> str:
    return f"{tenant_id}:{provider_id}"
