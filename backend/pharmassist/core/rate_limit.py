"""
Per-capability-endpoint throttle.

One accepted request per window per endpoint key. Rejection is immediate:
the limiter never sleeps or queues, it raises ``RateLimited`` and the caller
decides what to tell the user.

The timestamp map is process-wide state. The service runs on a single asyncio
event loop, so no lock is taken here; a threaded deployment would need to
guard ``_last_accepted`` with a lock.
"""
import time
from typing import Callable, Dict, Optional

from pharmassist.core.errors import RateLimited
from pharmassist.core.logging import get_logger
from pharmassist.core.metrics import record_rate_limit_hit

logger = get_logger(__name__)

Clock = Callable[[], float]


class EndpointRateLimiter:
    """Fixed-window, one-request-per-window limiter keyed by endpoint."""

    def __init__(self, window_seconds: float = 2.0, clock: Clock = time.monotonic):
        self.window_seconds = window_seconds
        self._clock = clock
        self._last_accepted: Dict[str, float] = {}

    def allow(self, endpoint_key: str) -> bool:
        """
        Return True and record the call if the window for this key has elapsed.

        A rejected call does not move the window.
        """
        now = self._clock()
        last = self._last_accepted.get(endpoint_key)
        if last is not None and (now - last) < self.window_seconds:
            return False
        self._last_accepted[endpoint_key] = now
        return True

    def retry_after(self, endpoint_key: str) -> float:
        """Seconds until the next call for this key would be accepted."""
        last = self._last_accepted.get(endpoint_key)
        if last is None:
            return 0.0
        return max(0.0, self.window_seconds - (self._clock() - last))

    def check(self, endpoint_key: str) -> None:
        """
        Raise ``RateLimited`` if the call must not be sent.

        Raises:
            RateLimited: the endpoint was called inside the current window.
        """
        if self.allow(endpoint_key):
            return
        retry_after = self.retry_after(endpoint_key)
        record_rate_limit_hit(endpoint_key)
        logger.warning(
            "rate_limit_exceeded",
            endpoint=endpoint_key,
            retry_after=round(retry_after, 3),
        )
        raise RateLimited(endpoint_key, retry_after)

    def reset(self, endpoint_key: Optional[str] = None) -> None:
        """Forget one key, or every key when none is given."""
        if endpoint_key is None:
            self._last_accepted.clear()
        else:
            self._last_accepted.pop(endpoint_key, None)


_rate_limiter: Optional[EndpointRateLimiter] = None


def get_rate_limiter() -> EndpointRateLimiter:
    """Process-wide limiter, built from settings on first use."""
    global _rate_limiter
    if _rate_limiter is None:
        from pharmassist.core.config import get_settings

        _rate_limiter = EndpointRateLimiter(
            window_seconds=get_settings().rate_limit_window_seconds,
        )
    return _rate_limiter
