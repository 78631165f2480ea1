"""Minimum-gap throttling for requests sent to the upstream site."""

from __future__ import annotations

import threading
import time
from typing import Callable


class RateLimiter:
    """Space successive calls to :meth:`wait` at least ``min_interval`` seconds apart.

    Safe to share between threads: callers queue on a lock, so concurrent
    lookups in a batch still hit the upstream site one gap at a time.
    """

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must not be negative")
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_request: float | None = None

    def wait(self) -> float:
        """Block until the next request may go out; return the time slept."""

        with self._lock:
            slept = 0.0
            if self._last_request is not None:
                remaining = self.min_interval - (self._clock() - self._last_request)
                if remaining > 0:
                    self._sleep(remaining)
                    slept = remaining
            self._last_request = self._clock()
            return slept


__all__ = ["RateLimiter"]
