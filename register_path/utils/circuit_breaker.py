"""
Circuit breaker for calls to the payment provider and the mail server.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, Union
from dataclasses import dataclass, field

from ..config import get_settings
from .exceptions import ExternalServiceError, PaymentProviderUnavailableError, NotificationDeliveryError

logger = logging.getLogger(__name__)

ErrorFactory = Callable[[str, Dict[str, Any]], Exception]


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


def _external_error(service_name: str) -> ErrorFactory:
    def factory(message: str, details: Dict[str, Any]) -> Exception:
        return ExternalServiceError(service_name, message, details=details)
    return factory


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""
    failure_threshold: int = 5
    recovery_timeout: int = 60
    expected_exception: Union[Type[BaseException], Tuple[Type[BaseException], ...]] = Exception
    success_threshold: int = 1
    timeout: float = 30.0
    # Builds the exception raised when the call fails, times out or is short-circuited
    error_factory: Optional[ErrorFactory] = None


@dataclass
class CircuitBreakerStats:
    """Circuit breaker statistics."""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_time: Optional[float] = None
    total_requests: int = 0
    total_failures: int = 0
    state_changes: Dict[str, int] = field(default_factory=lambda: {
        "closed_to_open": 0,
        "open_to_half_open": 0,
        "half_open_to_closed": 0,
        "half_open_to_open": 0
    })


class CircuitBreaker:
    """Fail fast once an external service keeps failing, and bound every call with a timeout."""

    def __init__(self, name: str, config: CircuitBreakerConfig):
        self.name = name
        self.config = config
        self.stats = CircuitBreakerStats()
        self._lock = asyncio.Lock()
        self._make_error = config.error_factory or _external_error(name)

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Await ``func(*args, **kwargs)`` under circuit breaker protection."""
        async with self._lock:
            self.stats.total_requests += 1

            if self._should_attempt_reset():
                self._transition(CircuitState.HALF_OPEN)

            if self.stats.state == CircuitState.OPEN:
                raise self._make_error(
                    f"Circuit breaker is open for {self.name}",
                    {
                        "state": self.stats.state.value,
                        "failure_count": self.stats.failure_count,
                    }
                )

        try:
            result = await asyncio.wait_for(func(*args, **kwargs), timeout=self.config.timeout)
        except asyncio.TimeoutError:
            await self._record_failure()
            raise self._make_error(
                f"Request timeout after {self.config.timeout}s",
                {"timeout": self.config.timeout}
            )
        except self.config.expected_exception as e:
            await self._record_failure()
            raise self._make_error(f"Service call failed: {e}", {"original_error": str(e)}) from e

        await self._record_success()
        return result

    async def _record_success(self):
        async with self._lock:
            self.stats.success_count += 1
            if self.stats.state == CircuitState.CLOSED:
                self.stats.failure_count = 0
            elif self.stats.success_count >= self.config.success_threshold:
                self._transition(CircuitState.CLOSED)

    async def _record_failure(self):
        async with self._lock:
            self.stats.failure_count += 1
            self.stats.total_failures += 1
            self.stats.last_failure_time = time.monotonic()

            if self.stats.state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN)
            elif (self.stats.state == CircuitState.CLOSED and
                  self.stats.failure_count >= self.config.failure_threshold):
                self._transition(CircuitState.OPEN)

            logger.warning(f"Circuit breaker {self.name}: failure recorded ({self.stats.failure_count})")

    def _should_attempt_reset(self) -> bool:
        if self.stats.state != CircuitState.OPEN or self.stats.last_failure_time is None:
            return False
        return time.monotonic() - self.stats.last_failure_time >= self.config.recovery_timeout

    def _transition(self, new_state: CircuitState):
        old_state = self.stats.state
        self.stats.state = new_state
        self.stats.success_count = 0
        if new_state == CircuitState.CLOSED:
            self.stats.failure_count = 0
        key = f"{old_state.value}_to_{new_state.value}"
        if key in self.stats.state_changes:
            self.stats.state_changes[key] += 1

        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(f"Circuit breaker {self.name}: {old_state.value} -> {new_state.value}")

    def reset(self):
        self.stats = CircuitBreakerStats()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.stats.state.value,
            "failure_count": self.stats.failure_count,
            "total_requests": self.stats.total_requests,
            "total_failures": self.stats.total_failures,
            "state_changes": self.stats.state_changes.copy(),
        }


_breakers: Dict[str, CircuitBreaker] = {}


def get_circuit_breaker(name: str, config: Optional[CircuitBreakerConfig] = None) -> CircuitBreaker:
    """Get or create a named circuit breaker."""
    if name not in _breakers:
        _breakers[name] = CircuitBreaker(name, config or CircuitBreakerConfig())
    return _breakers[name]


def get_all_circuit_stats() -> Dict[str, Dict[str, Any]]:
    return {name: breaker.get_stats() for name, breaker in _breakers.items()}


def get_payment_circuit_breaker(
    expected_exception: Union[Type[BaseException], Tuple[Type[BaseException], ...]] = Exception
) -> CircuitBreaker:
    """Circuit breaker guarding payment provider calls."""
    settings = get_settings()
    config = CircuitBreakerConfig(
        failure_threshold=settings.circuit_breaker_failure_threshold,
        recovery_timeout=settings.circuit_breaker_recovery_timeout,
        expected_exception=expected_exception,
        timeout=settings.payment_timeout_seconds,
        error_factory=lambda message, details: PaymentProviderUnavailableError(message, details=details),
    )
    return get_circuit_breaker("payment_provider", config)


def get_email_circuit_breaker() -> CircuitBreaker:
    """Circuit breaker guarding SMTP delivery."""
    settings = get_settings()
    config = CircuitBreakerConfig(
        failure_threshold=settings.circuit_breaker_failure_threshold,
        recovery_timeout=settings.circuit_breaker_recovery_timeout,
        timeout=settings.notification_timeout_seconds,
        error_factory=lambda message, details: NotificationDeliveryError(message, details=details),
    )
    return get_circuit_breaker("email", config)
