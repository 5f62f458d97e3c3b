"""Circuit Breaker guarding the OCR recognition service.

This module implements the Circuit Breaker pattern for calls to the external
recognition service. The same breaker instance is shared by every stage that
talks to the service, so once it opens no stage issues further requests.

The circuit breaker has three states:
- CLOSED: Normal operation, requests pass through
- OPEN: Service is unusable, requests are blocked
- HALF_OPEN: Testing if service has recovered

Only failures of the configured exception types are counted. The harvest
pipeline uses ``CircuitBreakerConfig.quota_latch()``: the first
OutOfCreditError opens the circuit and it never recovers during the run.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Type

from ..config.logger import logger
from ..errors import OutOfCreditError


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"  # Normal operation, allows calls
    OPEN = "open"      # Failure detected, blocks calls
    HALF_OPEN = "half_open"  # Testing if service has recovered


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker behavior.

    These parameters control which failures count, when the circuit opens
    and whether it may close again.
    """
    failure_threshold: int = 5  # Number of failures to open the circuit
    recovery_timeout: Optional[timedelta] = timedelta(seconds=60)  # None: stay open
    success_threshold: int = 3  # Successes needed to close from half-open state
    max_consecutive_failures: int = 3  # Consecutive failures allowed before opening
    tracked_exceptions: Tuple[Type[BaseException], ...] = (Exception,)

    @classmethod
    def quota_latch(cls) -> "CircuitBreakerConfig":
        """Open on the first quota exhaustion and stay open."""
        return cls(
            failure_threshold=1,
            recovery_timeout=None,
            success_threshold=1,
            max_consecutive_failures=1,
            tracked_exceptions=(OutOfCreditError,),
        )


@dataclass
class CircuitBreakerState:
    """Internal state of the circuit breaker."""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    consecutive_failures: int = 0
    last_failure_time: Optional[datetime] = None
    last_failure: Optional[str] = None
    last_state_change: datetime = field(default_factory=datetime.now)


class CircuitBreaker:
    """Circuit breaker for the recognition service.

    Stages either wrap a request with ``call`` (failures are recorded) or
    only check the circuit with ``guard`` before issuing a request whose
    failures must not count.
    """

    def __init__(self, name: str, config: Optional[CircuitBreakerConfig] = None):
        """Initialize the circuit breaker.

        Args:
            name: Name of the protected service (for logging and identification).
            config: Circuit breaker configuration. Uses defaults if not provided.
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._state = CircuitBreakerState()
        self._lock = asyncio.Lock()
        self.logger = logger.bind(circuit_breaker=name)

    @property
    def current_state(self) -> CircuitState:
        """Get the current state of the circuit breaker."""
        return self._state.state

    def is_open(self) -> bool:
        """Check if the circuit is open (blocking calls)."""
        return self._state.state == CircuitState.OPEN

    def is_closed(self) -> bool:
        """Check if the circuit is closed (allowing calls)."""
        return self._state.state == CircuitState.CLOSED

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state.state
        self._state.state = new_state
        self._state.last_state_change = datetime.now()

        # Reset counters based on new state
        if new_state == CircuitState.CLOSED:
            self._state.failure_count = 0
            self._state.consecutive_failures = 0
        elif new_state == CircuitState.HALF_OPEN:
            self._state.success_count = 0

        self.logger.info(
            "circuit_breaker_state_change",
            old_state=old_state.value,
            new_state=new_state.value
        )

    def _should_attempt_reset(self) -> bool:
        if self.config.recovery_timeout is None:
            return False
        return bool(
            self._state.last_failure_time and
            datetime.now() - self._state.last_failure_time >= self.config.recovery_timeout
        )

    async def _record_success(self) -> None:
        async with self._lock:
            self._state.consecutive_failures = 0

            if self._state.state == CircuitState.HALF_OPEN:
                self._state.success_count += 1
                if self._state.success_count >= self.config.success_threshold:
                    self._transition_to(CircuitState.CLOSED)

    async def _record_failure(self, error: BaseException) -> None:
        async with self._lock:
            self._state.failure_count += 1
            self._state.consecutive_failures += 1
            self._state.last_failure_time = datetime.now()
            self._state.last_failure = str(error)

            if self._state.state == CircuitState.CLOSED:
                if (self._state.failure_count >= self.config.failure_threshold or
                        self._state.consecutive_failures >= self.config.max_consecutive_failures):
                    self._transition_to(CircuitState.OPEN)
            elif self._state.state == CircuitState.HALF_OPEN:
                # Any failure in half-open state reopens the circuit
                self._transition_to(CircuitState.OPEN)

    async def guard(self) -> None:
        """Check that a request may be issued.

        Moves an open circuit to half-open once the recovery timeout elapsed.

        Raises:
            CircuitBreakerOpen: If the circuit is open.
        """
        async with self._lock:
            if self._state.state == CircuitState.OPEN:
                if self._should_attempt_reset():
                    self._transition_to(CircuitState.HALF_OPEN)
                else:
                    raise CircuitBreakerOpen(
                        f"Circuit breaker '{self.name}' is open"
                    )

    async def call(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        """Execute a coroutine function protected by the circuit breaker.

        Args:
            func: The async function to execute.
            *args: Positional arguments for the function.
            **kwargs: Keyword arguments for the function.

        Returns:
            The result of the function call if successful.

        Raises:
            CircuitBreakerOpen: If the circuit is open and not ready for reset.
            Any exception raised by the wrapped function.
        """
        await self.guard()

        try:
            result = await func(*args, **kwargs)
        except self.config.tracked_exceptions as e:
            await self._record_failure(e)
            raise
        await self._record_success()
        return result

    def get_status(self) -> Dict[str, Any]:
        """Get the current status of the circuit breaker.

        Returns:
            Dictionary containing current state information including:
            - name: Circuit breaker name
            - state: Current state (closed/open/half_open)
            - failure_count: Tracked failures since last reset
            - success_count: Successes in half-open state
            - consecutive_failures: Current consecutive failure streak
            - last_failure: Message of the last tracked failure
            - last_failure_time: ISO timestamp of last failure
            - last_state_change: ISO timestamp of last state transition
        """
        return {
            "name": self.name,
            "state": self._state.state.value,
            "failure_count": self._state.failure_count,
            "success_count": self._state.success_count,
            "consecutive_failures": self._state.consecutive_failures,
            "last_failure": self._state.last_failure,
            "last_failure_time": self._state.last_failure_time.isoformat() if self._state.last_failure_time else None,
            "last_state_change": self._state.last_state_change.isoformat()
        }


class CircuitBreakerOpen(Exception):
    """Exception raised when the circuit breaker is open.

    Raised when a request is attempted through an open circuit, meaning the
    protected service must not be called any more.
    """
    pass
