"""Tests for the backend circuit breaker."""
import pytest

from salon_booking.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from salon_booking.errors import BookingConflictError


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def failing_call():
    raise RuntimeError("Backend failed")


class TestCircuitBreaker:
    """Test circuit breaker behavior."""

    def test_allows_requests_when_closed(self):
        """Should allow requests when circuit is closed."""
        cb = CircuitBreaker(failure_threshold=3, timeout=1)

        assert cb.call(lambda: "success") == "success"
        assert cb.state == "closed"

    def test_opens_after_threshold_failures(self):
        """Should open circuit after 3 consecutive failures."""
        cb = CircuitBreaker(failure_threshold=3, timeout=1)

        for _ in range(3):
            with pytest.raises(RuntimeError):
                cb.call(failing_call)

        assert cb.state == "open"

        # Next call fails immediately without attempting
        attempted = []
        with pytest.raises(CircuitBreakerOpen):
            cb.call(lambda: attempted.append(True))
        assert attempted == []

    def test_half_open_failure_reopens(self):
        """A failed probe after the timeout opens the circuit again."""
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=3, timeout=60, clock=clock)
        for _ in range(3):
            with pytest.raises(RuntimeError):
                cb.call(failing_call)

        clock.advance(61)
        with pytest.raises(RuntimeError):
            cb.call(failing_call)

        assert cb.state == "open"

    def test_closes_on_successful_half_open_attempt(self):
        """Should close circuit on successful half-open attempt."""
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=3, timeout=60, clock=clock)
        for _ in range(3):
            with pytest.raises(RuntimeError):
                cb.call(failing_call)

        clock.advance(30)
        with pytest.raises(CircuitBreakerOpen):
            cb.call(lambda: "too early")

        clock.advance(31)
        assert cb.call(lambda: "success") == "success"
        assert cb.state == "closed"

    def test_resets_failure_count_on_success(self):
        """Should reset failure count after successful call."""
        cb = CircuitBreaker(failure_threshold=3, timeout=1)

        for _ in range(2):
            with pytest.raises(RuntimeError):
                cb.call(failing_call)
        cb.call(lambda: "success")
        for _ in range(2):
            with pytest.raises(RuntimeError):
                cb.call(failing_call)

        assert cb.state == "closed"

    def test_ignored_exceptions_do_not_count(self):
        """A booking conflict means the backend is up."""
        cb = CircuitBreaker(failure_threshold=2, timeout=1, ignored_exceptions=(BookingConflictError,))

        def conflict():
            raise BookingConflictError("taken", status_code=409)

        for _ in range(5):
            with pytest.raises(BookingConflictError):
                cb.call(conflict)

        assert cb.state == "closed"
        assert cb.failure_count == 0

    def test_reset(self):
        cb = CircuitBreaker(failure_threshold=1, timeout=60)
        with pytest.raises(RuntimeError):
            cb.call(failing_call)
        assert cb.state == "open"

        cb.reset()

        assert cb.state == "closed"
