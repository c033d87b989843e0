"""Fixed-window request counting per client and request class."""

import logging
import math
import time
from typing import Callable

from devotional.config import get_rate_limit, settings
from devotional.models import RateLimitWindow, RequestClass

logger = logging.getLogger(__name__)


class RateLimiter:
    """Load-shedding heuristic, not a security boundary.

    Keys are best-effort client identities, so clients behind one proxy
    share a budget. Counters live in this process only.
    """

    def __init__(
        self,
        window_seconds: float = settings.devotional_rate_window_seconds,
        limits: dict[RequestClass, int] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._window_seconds = window_seconds
        self._limits = limits or {cls: get_rate_limit(cls) for cls in RequestClass}
        self._clock = clock
        self._windows: dict[tuple[str, RequestClass], RateLimitWindow] = {}

    def check(self, key: str, request_class: RequestClass) -> bool:
        """Count one request and report whether it is within the ceiling."""
        now = self._clock()
        slot = (key, request_class)
        window = self._windows.get(slot)
        if window is None or window.is_expired(now, self._window_seconds):
            window = RateLimitWindow(window_start=now)
            self._windows[slot] = window

        window.count += 1
        ceiling = self._limits.get(request_class)
        if ceiling is None:
            ceiling = get_rate_limit(request_class)
        allowed = window.count <= ceiling
        if not allowed:
            logger.info(
                "Rate limit exceeded for %s (%s): %d requests in window",
                key,
                request_class.value,
                window.count,
            )
        return allowed

    def retry_after(self, key: str, request_class: RequestClass) -> int:
        """Whole seconds until the current window for this slot ends (at least 1)."""
        window = self._windows.get((key, request_class))
        if window is None:
            return 1
        remaining = window.seconds_remaining(self._clock(), self._window_seconds)
        return max(1, math.ceil(remaining))

    def purge_expired(self) -> int:
        """Drop windows that have already elapsed. Returns the number removed."""
        now = self._clock()
        expired = [
            slot
            for slot, window in self._windows.items()
            if window.is_expired(now, self._window_seconds)
        ]
        for slot in expired:
            del self._windows[slot]
        return len(expired)

    def reset(self) -> None:
        self._windows.clear()

    def __len__(self) -> int:
        return len(self._windows)


# Global singleton
rate_limiter = RateLimiter()
