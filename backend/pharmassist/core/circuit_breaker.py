"""
Circuit breaker for the external AI and reference services.

Each upstream (workflow backend, completion API, vision, speech, drug
references) gets its own breaker. An open breaker rejects immediately with
``CircuitBreakerOpenError``, which the tiers treat as an ordinary failure so
the orchestrator moves on to the next tier without waiting on a dead host.

Defaults:
- Failure threshold: 50% error rate over 1 minute (min 10 requests)
- Open duration: 30 seconds
- Half-open: every Nth request is let through as a probe
"""
import time
from collections import deque
from enum import Enum
from threading import Lock
from typing import Any, Callable, Optional

from pharmassist.core.logging import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, bypass service
    HALF_OPEN = "half_open"  # Testing recovery


class CircuitBreakerOpenError(Exception):
    """Raised when circuit breaker is open and request is rejected."""

    def __init__(self, name: str, state: CircuitState):
        super().__init__(f"Circuit breaker {name} is {state.name}. Service unavailable.")
        self.name = name
        self.state = state


class CircuitBreaker:
    """
    Error-rate circuit breaker with an injectable clock.

    The clock is used for the sliding error window and the open duration, so
    tests can drive state transitions without sleeping.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: float = 0.5,
        time_window_seconds: float = 60,
        open_duration_seconds: float = 30,
        half_open_test_percentage: float = 0.1,
        min_requests_for_threshold: int = 10,
        half_open_probes: int = 5,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.time_window_seconds = time_window_seconds
        self.open_duration_seconds = open_duration_seconds
        self.half_open_test_percentage = half_open_test_percentage
        self.min_requests_for_threshold = min_requests_for_threshold
        self.half_open_probes = half_open_probes
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._lock = Lock()
        self._request_history: deque = deque()  # (timestamp, success)
        self._opened_at: Optional[float] = None
        self._half_open_seen = 0
        self._half_open_successes = 0
        self._half_open_failures = 0

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._update_state()
            return self._state

    def _open(self, now: float, **details: Any) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = now
        logger.warning("circuit_breaker_opened", circuit_breaker=self.name, **details)

    def _update_state(self) -> None:
        now = self._clock()

        cutoff_time = now - self.time_window_seconds
        while self._request_history and self._request_history[0][0] < cutoff_time:
            self._request_history.popleft()

        if self._state == CircuitState.OPEN:
            if self._opened_at is not None and (now - self._opened_at) >= self.open_duration_seconds:
                self._state = CircuitState.HALF_OPEN
                self._half_open_seen = 0
                self._half_open_successes = 0
                self._half_open_failures = 0
                logger.info("circuit_breaker_half_open", circuit_breaker=self.name)

        elif self._state == CircuitState.CLOSED:
            total = len(self._request_history)
            if total >= self.min_requests_for_threshold:
                failures = sum(1 for _, success in self._request_history if not success)
                error_rate = failures / total
                if error_rate >= self.failure_threshold:
                    self._open(now, error_rate=error_rate, failures=failures, total=total)

    def _admit(self) -> None:
        """Raise if the current state does not let this request through."""
        with self._lock:
            self._update_state()
            if self._state == CircuitState.OPEN:
                raise CircuitBreakerOpenError(self.name, self._state)
            if self._state == CircuitState.HALF_OPEN:
                self._half_open_seen += 1
                every = max(1, int(round(1 / self.half_open_test_percentage)))
                if self._half_open_seen % every != 0:
                    raise CircuitBreakerOpenError(self.name, self._state)

    def _record_result(self, success: bool) -> None:
        now = self._clock()
        with self._lock:
            if self._state != CircuitState.HALF_OPEN:
                self._request_history.append((now, success))
                return

            if success:
                self._half_open_successes += 1
            else:
                self._half_open_failures += 1

            probes = self._half_open_successes + self._half_open_failures
            if probes < self.half_open_probes:
                return
            if self._half_open_successes * 5 >= probes * 3:  # >= 60% of probes succeeded
                self._state = CircuitState.CLOSED
                self._opened_at = None
                self._request_history.clear()
                logger.info(
                    "circuit_breaker_closed",
                    circuit_breaker=self.name,
                    success_count=self._half_open_successes,
                    failure_count=self._half_open_failures,
                )
            else:
                self._open(
                    now,
                    success_count=self._half_open_successes,
                    failure_count=self._half_open_failures,
                    reopened=True,
                )

    def call(self, func: Callable, *args, **kwargs) -> Any:
        """Run a sync callable under breaker protection."""
        self._admit()
        try:
            result = func(*args, **kwargs)
        except Exception:
            self._record_result(False)
            raise
        self._record_result(True)
        return result

    async def call_async(self, func: Callable, *args, **kwargs) -> Any:
        """Await an async callable under breaker protection."""
        self._admit()
        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._record_result(False)
            raise
        self._record_result(True)
        return result

    def get_metrics(self) -> dict:
        """Snapshot for the health endpoint."""
        with self._lock:
            self._update_state()
            failures = sum(1 for _, success in self._request_history if not success)
            total = len(self._request_history)
            return {
                "name": self.name,
                "state": self._state.value,
                "recent_requests": total,
                "recent_failures": failures,
                "error_rate": failures / total if total else 0.0,
                "opened_at": self._opened_at,
            }


_breakers: dict = {}


def get_circuit_breaker(name: str) -> CircuitBreaker:
    """Shared breaker per upstream name."""
    breaker = _breakers.get(name)
    if breaker is None:
        breaker = CircuitBreaker(name=name)
        _breakers[name] = breaker
    return breaker


def all_circuit_breakers() -> list:
    return list(_breakers.values())
