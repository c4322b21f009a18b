import time
import threading
from collections import deque
from typing import Callable, Deque, Dict


class WindowExhausted(Exception):
    def __init__(self, key: str, retry_after: float):
        super().__init__(f'{key}: request window exhausted, retry in {retry_after:.2f}s')
        self.key = key
        self.retry_after = retry_after


class SlidingWindowRateLimiter:
    """Per-key sliding window request budget.

    One lock guards every key's window since concurrent requests may race on
    the same backend. The clock is injectable so tests can drive time.
    """

    def __init__(self, max_requests: int = 50, window_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        if max_requests < 1:
            raise ValueError('max_requests must be >= 1')
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._events: Dict[str, Deque[float]] = {}

    def _prune(self, events: Deque[float], now: float):
        while events and now - events[0] >= self.window_seconds:
            events.popleft()

    def acquire(self, key: str) -> None:
        """Record a request for key or raise WindowExhausted with the wait until a slot frees."""
        with self._lock:
            now = self._clock()
            events = self._events.setdefault(key, deque())
            self._prune(events, now)
            if len(events) >= self.max_requests:
                raise WindowExhausted(key, max(0.0, events[0] + self.window_seconds - now))
            events.append(now)

    def remaining(self, key: str) -> int:
        with self._lock:
            events = self._events.get(key)
            if not events:
                return self.max_requests
            self._prune(events, self._clock())
            return self.max_requests - len(events)
