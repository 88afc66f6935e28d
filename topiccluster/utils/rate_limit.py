"""Request pacing for upstream collaborators."""
import time
from typing import Callable, Optional


class RateLimiter:
    """
    Enforces a minimum interval between calls.

    The clock and sleep functions are injected so the limiter carries no
    module-level state and can be driven by a fake clock in tests.
    """

    def __init__(self, min_interval_seconds: float = 0.0,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        if min_interval_seconds < 0:
            raise ValueError("min_interval_seconds must not be negative")
        self.min_interval = min_interval_seconds
        self.clock = clock
        self.sleep = sleep
        self.last_request: Optional[float] = None

    @classmethod
    def per_minute(cls, requests_per_minute: int, **kwargs) -> 'RateLimiter':
        interval = 60.0 / requests_per_minute if requests_per_minute > 0 else 0.0
        return cls(interval, **kwargs)

    def wait(self) -> float:
        """Block until the next request is allowed; returns the seconds slept."""
        waited = 0.0
        if self.last_request is not None and self.min_interval > 0:
            elapsed = self.clock() - self.last_request
            if elapsed < self.min_interval:
                waited = self.min_interval - elapsed
                self.sleep(waited)
        self.last_request = self.clock()
        return waited
