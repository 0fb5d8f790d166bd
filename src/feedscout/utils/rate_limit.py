"""Rate limiting utilities using a sliding request window."""

import time
from collections import deque
from typing import Callable, Deque


class SlidingWindowRateLimiter:
    """Count request starts over a trailing window.

    Unlike a token bucket this never lets a burst exceed ``max_requests``
    inside any ``window`` seconds, which is what a per-minute provider quota
    actually enforces.
    """

    def __init__(
        self,
        max_requests: int,
        window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.max_requests = max_requests
        self.window = window
        self._clock = clock
        self._starts: Deque[float] = deque()

    def prune(self) -> None:
        cutoff = self._clock() - self.window
        while self._starts and self._starts[0] <= cutoff:
            self._starts.popleft()

    def can_acquire(self) -> bool:
        self.prune()
        return len(self._starts) < self.max_requests

    def record(self) -> None:
        self._starts.append(self._clock())

    def time_until_available(self) -> float:
        """Seconds until the oldest start leaves the window (0 if not full)."""
        self.prune()
        if len(self._starts) < self.max_requests:
            return 0.0
        return max(0.0, self.window - (self._clock() - self._starts[0]))

    @property
    def in_window(self) -> int:
        self.prune()
        return len(self._starts)
