# dlm_agent/resilience/circuit_breaker.py

"""Circuit breaker guarding the downstream chunk processor."""

from collections.abc import Callable
from enum import Enum
import logging
import time
from typing import Any

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # chunks flow to the processor
    OPEN = "open"  # submissions refused until open_until
    HALF_OPEN = "half_open"  # a single trial chunk is admitted


class CircuitBreaker:
    """
    Three-state breaker driven by explicit outcome reports.

    Callers ask ``can_execute()`` before doing work and report the result with
    ``on_success()`` or ``on_failure()``. In HALF_OPEN exactly one trial is
    admitted; further checks are refused until that trial reports back.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 300.0,
        name: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the circuit breaker.

        Args:
            failure_threshold: Number of failures before opening circuit
            recovery_timeout: Seconds to stay open before allowing a trial
            name: Name for logging and identification
            clock: Monotonic time source, replaceable in tests
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if recovery_timeout < 0:
            raise ValueError("recovery_timeout must not be negative")

        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.name = name or "CircuitBreaker"
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._open_until: float | None = None
        self._trial_in_flight = False

        # Lifetime totals
        self._total_successes = 0
        self._total_failures = 0
        self._total_rejections = 0
        self._circuit_opened_count = 0

    @property
    def state(self) -> CircuitState:
        """Current breaker state."""
        return self._state

    @property
    def failure_count(self) -> int:
        """Consecutive failures since the last success."""
        return self._failure_count

    @property
    def open_until(self) -> float | None:
        return self._open_until

    def can_execute(self) -> bool:
        """Return whether a request may proceed right now."""
        if self._state == CircuitState.CLOSED:
            return True

        if self._state == CircuitState.OPEN:
            if self._open_until is not None and self._clock() < self._open_until:
                self._total_rejections += 1
                return False
            self._half_open_circuit()

        # HALF_OPEN
        if self._trial_in_flight:
            self._total_rejections += 1
            return False
        self._trial_in_flight = True
        return True

    def on_success(self) -> None:
        """Record a successful downstream call; closes the circuit from any state."""
        self._total_successes += 1
        if self._state != CircuitState.CLOSED:
            self._close_circuit()
        self._failure_count = 0

    def on_failure(self) -> None:
        """Record a failed downstream call."""
        self._total_failures += 1
        self._failure_count += 1

        logger.debug(
            f"Circuit breaker '{self.name}' failure count: {self._failure_count}/"
            f"{self.failure_threshold}"
        )

        if self._failure_count >= self.failure_threshold:
            self._open_circuit()

    def _open_circuit(self) -> None:
        self._state = CircuitState.OPEN
        self._open_until = self._clock() + self.recovery_timeout
        self._trial_in_flight = False
        self._circuit_opened_count += 1

        logger.warning(
            f"Circuit breaker '{self.name}' opened after {self._failure_count} failures; "
            f"retrying in {self.recovery_timeout:.0f}s"
        )

    def _half_open_circuit(self) -> None:
        self._state = CircuitState.HALF_OPEN
        self._trial_in_flight = False

        logger.info(f"Circuit breaker '{self.name}' moved to HALF_OPEN state")

    def _close_circuit(self, reason: str = "downstream recovered") -> None:
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._open_until = None
        self._trial_in_flight = False

        logger.info(f"Circuit breaker '{self.name}' closed: {reason}")

    def reset(self) -> None:
        """Force the breaker back to CLOSED, keeping lifetime totals."""
        self._close_circuit("manual reset")

    def get_stats(self) -> dict[str, Any]:
        """Snapshot of state and lifetime totals for status reporting."""
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout,
            "open_until": self._open_until,
            "total_successes": self._total_successes,
            "total_failures": self._total_failures,
            "total_rejections": self._total_rejections,
            "circuit_opened_count": self._circuit_opened_count,
            "is_healthy": self._state == CircuitState.CLOSED,
        }
