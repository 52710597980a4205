"""
Circuit Breaker Pattern Implementation

Guards the outbound gateway and partner calls so a dead upstream fails fast
instead of holding a per-phone lock for the full retry budget.
"""
import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar
from dataclasses import dataclass

from app.core.logging import get_logger
from app.core.exceptions import CircuitBreakerOpenError

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states"""
    CLOSED = "closed"      # Normal operation, requests pass through
    OPEN = "open"          # Failing, requests blocked
    HALF_OPEN = "half_open"  # Testing if service recovered


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5         # Failures before opening
    success_threshold: int = 2          # Successes in half-open to close
    timeout_seconds: float = 30.0       # Time before trying half-open
    half_open_max_calls: int = 3        # Max calls in half-open state


@dataclass
class CircuitBreakerState:
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_time: float = 0.0
    half_open_calls: int = 0


class CircuitBreaker:
    """
    Circuit breaker for external service protection.

    States:
    - CLOSED: Normal operation, tracking failures
    - OPEN: Service is failing, block all requests
    - HALF_OPEN: Testing if service recovered

    All state changes happen between awaits on a single event loop, so no
    lock is needed around the counters.
    """

    _instances: dict[str, "CircuitBreaker"] = {}

    def __init__(
        self,
        service_name: str,
        config: CircuitBreakerConfig | None = None
    ):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self._state = CircuitBreakerState()

    @classmethod
    def get_instance(
        cls,
        service_name: str,
        config: CircuitBreakerConfig | None = None
    ) -> "CircuitBreaker":
        """Get or create the breaker for a service"""
        if service_name not in cls._instances:
            cls._instances[service_name] = cls(service_name, config)
        return cls._instances[service_name]

    @classmethod
    def all_instances(cls) -> dict[str, "CircuitBreaker"]:
        return dict(cls._instances)

    @classmethod
    def reset_all(cls) -> None:
        """Drop every breaker (tests, admin reset)"""
        cls._instances.clear()

    @property
    def state(self) -> CircuitState:
        return self._state.state

    @property
    def is_closed(self) -> bool:
        return self._state.state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self._state.state == CircuitState.OPEN

    @property
    def is_half_open(self) -> bool:
        return self._state.state == CircuitState.HALF_OPEN

    def _should_attempt_reset(self) -> bool:
        if self._state.state != CircuitState.OPEN:
            return False
        return time.time() - self._state.last_failure_time >= self.config.timeout_seconds

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state.state
        self._state.state = new_state

        if new_state == CircuitState.HALF_OPEN:
            self._state.half_open_calls = 0
            self._state.success_count = 0

        if new_state == CircuitState.CLOSED:
            self._state.failure_count = 0
            self._state.success_count = 0

        logger.info(
            f"Circuit breaker '{self.service_name}' transitioned",
            extra_data={
                "service": self.service_name,
                "old_state": old_state.value,
                "new_state": new_state.value
            }
        )

    def record_success(self) -> None:
        if self._state.state == CircuitState.HALF_OPEN:
            self._state.success_count += 1
            if self._state.success_count >= self.config.success_threshold:
                self._transition_to(CircuitState.CLOSED)
        elif self._state.state == CircuitState.CLOSED:
            self._state.failure_count = 0

    def record_failure(self, error: Exception | None = None) -> None:
        self._state.failure_count += 1
        self._state.last_failure_time = time.time()

        logger.warning(
            f"Circuit breaker '{self.service_name}' recorded failure",
            extra_data={
                "service": self.service_name,
                "failure_count": self._state.failure_count,
                "threshold": self.config.failure_threshold,
                "error": str(error) if error else None
            }
        )

        if self._state.state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.OPEN)
        elif self._state.failure_count >= self.config.failure_threshold:
            self._transition_to(CircuitState.OPEN)

    def can_execute(self) -> bool:
        if self._state.state == CircuitState.CLOSED:
            return True

        if self._state.state == CircuitState.OPEN:
            if self._should_attempt_reset():
                self._transition_to(CircuitState.HALF_OPEN)
                self._state.half_open_calls = 1
                return True
            return False

        if self._state.half_open_calls < self.config.half_open_max_calls:
            self._state.half_open_calls += 1
            return True
        return False

    def get_retry_after(self) -> float:
        """Seconds until the breaker will let a probe through"""
        if self._state.state != CircuitState.OPEN:
            return 0.0
        remaining = self.config.timeout_seconds - (time.time() - self._state.last_failure_time)
        return max(0.0, remaining)

    def snapshot(self) -> dict[str, Any]:
        return {
            "service": self.service_name,
            "state": self._state.state.value,
            "failure_count": self._state.failure_count,
            "failure_threshold": self.config.failure_threshold,
            "retry_after_seconds": round(self.get_retry_after(), 2),
        }

    async def execute(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any
    ) -> T:
        """
        Run ``func`` under breaker protection.

        Raises:
            CircuitBreakerOpenError: If circuit is open
        """
        if not self.can_execute():
            raise CircuitBreakerOpenError(self.service_name, self.get_retry_after())

        try:
            result = func(*args, **kwargs)
            if asyncio.iscoroutine(result):
                result = await result
        except Exception as e:
            self.record_failure(e)
            raise

        self.record_success()
        return result


def get_zapi_circuit_breaker() -> CircuitBreaker:
    """Breaker for the Z-API messaging gateway"""
    return CircuitBreaker.get_instance(
        "zapi",
        CircuitBreakerConfig(failure_threshold=5, success_threshold=2, timeout_seconds=30.0)
    )


def get_partner_circuit_breaker() -> CircuitBreaker:
    """Breaker for the partner backend (customers, cohorts, charges)"""
    return CircuitBreaker.get_instance(
        "partner_api",
        CircuitBreakerConfig(failure_threshold=5, success_threshold=1, timeout_seconds=20.0)
    )
