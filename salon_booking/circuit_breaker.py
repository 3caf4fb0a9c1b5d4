"""Circuit breaker guarding the booking backend.

Purpose: Fail fast while the backend is down instead of letting every
month scan wait out its retries.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Backend failing, requests fail immediately
- HALF_OPEN: Probing recovery, one request allowed through

Month scans call the backend from worker threads, so counters are guarded
by a lock.
"""
import threading
import time
from enum import Enum
from typing import Any, Callable, Optional, Tuple, Type

from salon_booking.logging_config import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """Raised when the circuit is open (fail fast)."""
    pass


class CircuitBreaker:
    """Circuit breaker for backend calls."""

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: int = 60,
        ignored_exceptions: Tuple[Type[BaseException], ...] = (),
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Consecutive failures before opening
            timeout: Seconds to wait before allowing a half-open probe
            ignored_exceptions: Errors that prove the backend is healthy
                (e.g. a booking conflict) and must not count as failures
            clock: Monotonic time source
        """
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.ignored_exceptions = ignored_exceptions
        self._clock = clock
        self._lock = threading.Lock()
        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self._state = CircuitState.CLOSED

    @property
    def state(self) -> str:
        """Get current state as string."""
        return self._state.value

    def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Execute function with circuit breaker protection.

        Raises:
            CircuitBreakerOpen: If circuit is open
            Exception: Whatever the function raises
        """
        with self._lock:
            if self._state == CircuitState.OPEN:
                if self._retry_in() > 0:
                    raise CircuitBreakerOpen(
                        f"Booking backend circuit is OPEN. "
                        f"Retry after {self._retry_in():.1f}s"
                    )
                self._state = CircuitState.HALF_OPEN
                logger.info("circuit_half_open")

        try:
            result = func(*args, **kwargs)
        except self.ignored_exceptions:
            self._on_success()
            raise
        except Exception:
            self._on_failure()
            raise

        self._on_success()
        return result

    def reset(self):
        with self._lock:
            self.failure_count = 0
            self.last_failure_time = None
            self._state = CircuitState.CLOSED

    def _retry_in(self) -> float:
        if self.last_failure_time is None:
            return 0
        elapsed = self._clock() - self.last_failure_time
        return max(0.0, self.timeout - elapsed)

    def _on_success(self):
        with self._lock:
            self.failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                logger.info("circuit_closed")

    def _on_failure(self):
        with self._lock:
            self.failure_count += 1
            self.last_failure_time = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                logger.warning("circuit_reopened")
            elif self.failure_count >= self.failure_threshold:
                self._state = CircuitState.OPEN
                logger.error(
                    "circuit_opened",
                    failures=self.failure_count,
                    timeout=self.timeout
                )
