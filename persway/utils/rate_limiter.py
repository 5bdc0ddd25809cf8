"""
Sliding-window rate limiter for outbound Shopify Admin API calls.

One limiter is built per process in create_app() and handed to every
ShopifyClient the app constructs. Tests build their own with a fake clock.
"""
import time
import threading
from collections import deque
from typing import Callable, Deque

from .exceptions import RateLimitError


class RateLimiter:
    """
    Allow at most ``max_requests`` calls in any ``window_seconds`` span.

    Usage:
        limiter = RateLimiter(max_requests=40, window_seconds=60)
        limiter.acquire()   # raises RateLimitError when the window is full
    """

    def __init__(self, max_requests: int = 40, window_seconds: float = 60.0,
                 clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: Deque[float] = deque()
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        while self._requests and now - self._requests[0] >= self.window_seconds:
            self._requests.popleft()

    def can_make_request(self) -> bool:
        with self._lock:
            self._prune(self._clock())
            return len(self._requests) < self.max_requests

    def record_request(self) -> None:
        with self._lock:
            self._requests.append(self._clock())

    def get_wait_time(self) -> float:
        """Seconds until the oldest request leaves the window."""
        with self._lock:
            now = self._clock()
            self._prune(now)
            if not self._requests:
                return 0.0
            return max(0.0, self.window_seconds - (now - self._requests[0]))

    def acquire(self) -> None:
        """Record a request or raise RateLimitError if the window is full."""
        with self._lock:
            now = self._clock()
            self._prune(now)
            if len(self._requests) >= self.max_requests:
                wait = self.window_seconds - (now - self._requests[0])
                wait_ms = int(max(0.0, wait) * 1000)
                raise RateLimitError(
                    f"Rate limit exceeded. Retry after {wait_ms}ms",
                    retry_after_ms=wait_ms
                )
            self._requests.append(now)
