"""
Circuit breaker guarding calls to the time-series backend.

closed    -> open       after `max_failures` consecutive failures
open      -> half_open  once `reset_timeout` seconds passed since the last failure
half_open -> closed     on the first success
half_open -> open       on any failure

One breaker belongs to one client instance. The lock only guards the state
fields and is never held while a request is in flight.
"""
import logging
import threading
import time
from typing import Callable, Optional

from models import CircuitBreakerState

logger = logging.getLogger(__name__)

STATE_CLOSED = 'closed'
STATE_OPEN = 'open'
STATE_HALF_OPEN = 'half_open'


class CircuitBreaker:
    """Consecutive-failure circuit breaker with a bounded half-open probe budget

    Args:
        max_failures: consecutive failures that trip the breaker
        reset_timeout: seconds to stay open before admitting probes
        half_open_max_calls: probes admitted concurrently while half-open
        clock: monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        max_failures: int = 5,
        reset_timeout: float = 60.0,
        half_open_max_calls: int = 2,
        clock: Callable[[], float] = time.monotonic
    ):
        if max_failures <= 0:
            raise ValueError("max_failures must be positive")
        if half_open_max_calls <= 0:
            raise ValueError("half_open_max_calls must be positive")
        self.max_failures = max_failures
        self.reset_timeout = reset_timeout
        self.half_open_max_calls = half_open_max_calls
        self._clock = clock
        self._lock = threading.Lock()
        self._state = STATE_CLOSED
        self._failures = 0
        self._last_failure_at: Optional[float] = None
        self._probes_in_flight = 0

    @property
    def state(self) -> str:
        with self._lock:
            self._maybe_half_open()
            return self._state

    def _maybe_half_open(self) -> None:
        # caller holds the lock
        if self._state != STATE_OPEN or self._last_failure_at is None:
            return
        if self._clock() - self._last_failure_at > self.reset_timeout:
            self._transition(STATE_HALF_OPEN)
            self._probes_in_flight = 0

    def _transition(self, new_state: str) -> None:
        if new_state != self._state:
            logger.warning(f"Circuit breaker {self._state} -> {new_state} (failures={self._failures})")
            self._state = new_state

    def allow_request(self) -> bool:
        """Return True when a call may proceed. Half-open admissions take a probe slot."""
        with self._lock:
            self._maybe_half_open()
            if self._state == STATE_CLOSED:
                return True
            if self._state == STATE_OPEN:
                return False
            if self._probes_in_flight >= self.half_open_max_calls:
                return False
            self._probes_in_flight += 1
            return True

    def record_success(self) -> None:
        """Late successes from calls admitted before the trip leave an open breaker open."""
        with self._lock:
            self._maybe_half_open()
            if self._state == STATE_OPEN:
                return
            self._failures = 0
            if self._state == STATE_HALF_OPEN:
                self._probes_in_flight = 0
            self._transition(STATE_CLOSED)

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            self._last_failure_at = self._clock()
            if self._state == STATE_HALF_OPEN:
                self._probes_in_flight = 0
                self._transition(STATE_OPEN)
            elif self._state == STATE_CLOSED and self._failures >= self.max_failures:
                self._transition(STATE_OPEN)

    def release(self) -> None:
        """Give back a half-open probe slot without judging backend health."""
        with self._lock:
            if self._state == STATE_HALF_OPEN and self._probes_in_flight > 0:
                self._probes_in_flight -= 1

    def snapshot(self) -> CircuitBreakerState:
        with self._lock:
            self._maybe_half_open()
            return CircuitBreakerState(
                state=self._state,
                consecutive_failures=self._failures,
                last_failure_at=self._last_failure_at,
                half_open_probes_issued=self._probes_in_flight,
            )
