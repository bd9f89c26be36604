"""
Circuit breaker guarding the live clone provider.
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

import structlog

from ..errors import ProviderRejectedError, ProviderUnavailableError, RateLimitedError

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states"""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, rejecting requests
    HALF_OPEN = "half_open"  # Testing if service recovered


@dataclass
class CircuitConfig:
    """Circuit breaker configuration"""

    failure_threshold: int = 3  # Consecutive failures before opening
    success_threshold: int = 1  # Successes to close from half-open
    timeout_seconds: float = 60.0  # Time in open state before half-open
    half_open_max_calls: int = 1  # Probes allowed while half-open
    # Caller errors say nothing about provider health
    ignored_exceptions: Tuple[Type[BaseException], ...] = field(
        default_factory=lambda: (ProviderRejectedError, RateLimitedError)
    )


@dataclass
class CircuitMetrics:
    """Metrics for a circuit breaker"""

    total_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0
    last_failure_time: Optional[datetime] = None


class CircuitBreaker:
    """
    Circuit breaker for provider calls.

    States:
    - CLOSED: calls pass through, consecutive failures are counted
    - OPEN: calls are rejected with ProviderUnavailableError
    - HALF_OPEN: a limited number of probe calls decide recovery
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitConfig()
        self.metrics = CircuitMetrics()
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._lock = threading.RLock()
        self._logger = structlog.get_logger(f"circuit.{name}")

        self._consecutive_failures = 0
        self._half_open_calls = 0
        self._half_open_successes = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._check_state_transition()
            return self._state

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def retry_after(self) -> float:
        """Seconds until the circuit may let a probe through."""
        with self._lock:
            if self._opened_at is None:
                return 0.0
            remaining = self.config.timeout_seconds - (self._clock() - self._opened_at)
            return max(0.0, remaining)

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """
        Execute an async callable through the breaker.

        Raises:
            ProviderUnavailableError: if the circuit is open
        """
        with self._lock:
            self._check_state_transition()

            if self._state == CircuitState.OPEN:
                self.metrics.rejected_calls += 1
                raise ProviderUnavailableError(
                    f"Circuit {self.name} is open",
                    provider=self.name,
                    retry_after=self.retry_after(),
                )

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_calls >= self.config.half_open_max_calls:
                    self.metrics.rejected_calls += 1
                    raise ProviderUnavailableError(
                        f"Circuit {self.name} is half-open at capacity",
                        provider=self.name,
                        retry_after=1.0,
                    )
                self._half_open_calls += 1

        try:
            result = await func(*args, **kwargs)
        except self.config.ignored_exceptions:
            self._record_success()
            raise
        except Exception as e:
            self._record_failure(e)
            raise

        self._record_success()
        return result

    def _record_success(self) -> None:
        with self._lock:
            self.metrics.total_calls += 1
            self._consecutive_failures = 0
            if self._state == CircuitState.HALF_OPEN:
                self._half_open_successes += 1
                if self._half_open_successes >= self.config.success_threshold:
                    self._transition_to(CircuitState.CLOSED)

    def _record_failure(self, error: Exception) -> None:
        with self._lock:
            self.metrics.total_calls += 1
            self.metrics.failed_calls += 1
            self.metrics.last_failure_time = datetime.utcnow()
            self._consecutive_failures += 1

            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
            elif (
                self._state == CircuitState.CLOSED
                and self._consecutive_failures >= self.config.failure_threshold
            ):
                self._transition_to(CircuitState.OPEN)

            self._logger.warning(
                "circuit_call_failed",
                circuit=self.name,
                error=str(error),
                state=self._state.value,
            )

    def _check_state_transition(self) -> None:
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if self._clock() - self._opened_at >= self.config.timeout_seconds:
                self._transition_to(CircuitState.HALF_OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self.metrics.state_changes += 1

        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
        elif new_state == CircuitState.HALF_OPEN:
            self._half_open_calls = 0
            self._half_open_successes = 0
        elif new_state == CircuitState.CLOSED:
            self._consecutive_failures = 0
            self._opened_at = None

        self._logger.info(
            "circuit_state_change",
            circuit=self.name,
            old_state=old_state.value,
            new_state=new_state.value,
        )

    def reset(self) -> None:
        """Force reset the circuit to closed state"""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
