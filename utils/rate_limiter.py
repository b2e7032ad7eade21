"""
Rate limiter shared by the API client and the scrapers.

An explicit instance is created by the application and injected wherever
outbound calls are made; there is no module-level scheduling state.
"""

import logging
import threading
import time
from typing import Callable, Optional, TypeVar

from utils.error_handler import RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimiter:
    """
    Bounds concurrent outbound calls and keeps a minimum spacing between starts.

    Args:
        min_interval: Minimum seconds between the start of two calls
        max_concurrent: Maximum number of calls running at the same time
        clock: Monotonic clock, injectable for tests
        sleep: Sleep function, injectable for tests

    Example:
        >>> limiter = RateLimiter(min_interval=2.0, max_concurrent=1)
        >>> limiter.schedule(fetch, "https://codeforces.com/api/user.info?handles=tourist")
    """

    def __init__(self, min_interval: float = 2.0, max_concurrent: int = 1,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.min_interval = min_interval
        self.max_concurrent = max_concurrent
        self._clock = clock
        self._sleep = sleep
        self._slots = threading.BoundedSemaphore(max_concurrent)
        self._lock = threading.Lock()
        self._last_start: Optional[float] = None
        self._active = 0

    def empty(self) -> bool:
        """True when no call is currently running."""
        with self._lock:
            return self._active == 0

    def wait(self) -> None:
        """Block until the minimum spacing since the previous start has elapsed."""
        with self._lock:
            now = self._clock()
            if self._last_start is not None:
                remaining = self.min_interval - (now - self._last_start)
                if remaining > 0:
                    logger.debug(f"Rate limiting: sleeping for {remaining:.2f} seconds")
                    self._sleep(remaining)
                    now = self._clock()
            self._last_start = now

    def schedule(self, func: Callable[..., T], *args, **kwargs) -> T:
        """Run ``func`` once a slot is free and the spacing allows it."""
        self._slots.acquire()
        try:
            return self._run(func, *args, **kwargs)
        finally:
            self._slots.release()

    def try_schedule(self, func: Callable[..., T], *args, **kwargs) -> T:
        """
        Like ``schedule`` but drops the call when every slot is busy.

        Raises:
            RateLimitError: If the limiter is saturated
        """
        if not self._slots.acquire(blocking=False):
            raise RateLimitError("Rate limiter busy, call dropped", retry_after=self.min_interval)
        try:
            return self._run(func, *args, **kwargs)
        finally:
            self._slots.release()

    def _run(self, func: Callable[..., T], *args, **kwargs) -> T:
        self.wait()
        with self._lock:
            self._active += 1
        try:
            return func(*args, **kwargs)
        finally:
            with self._lock:
                self._active -= 1
