"""Error classification and circuit breaking for external analyzer calls."""

import asyncio
from enum import Enum
from typing import Optional, Callable, Any, Dict
from datetime import datetime
import httpx

from ..utils.logging import get_logger

logger = get_logger(__name__)


class ErrorType(Enum):
    """Classification of error types for appropriate handling."""
    RATE_LIMIT = "rate_limit"      # 429 errors - need backoff
    NETWORK = "network"            # Connection, timeout - transient
    API_ERROR = "api_error"        # 4xx/5xx errors - may be persistent
    PARSE_ERROR = "parse_error"    # Malformed response - don't retry
    UNKNOWN = "unknown"            # Unclassified


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"          # Normal operation
    OPEN = "open"              # Failing, reject requests immediately
    HALF_OPEN = "half_open"    # Testing recovery


class CircuitOpenError(RuntimeError):
    """Raised instead of calling a service whose circuit is open."""


class CircuitBreaker:
    """
    Circuit breaker pattern for failing services.
    
    After ``failure_threshold`` consecutive failures the circuit opens
    and calls are rejected with :class:`CircuitOpenError` until
    ``recovery_timeout`` seconds have passed.  The next call is then a
    trial (HALF_OPEN); ``success_threshold`` successes close it again,
    a single failure reopens it.
    
    Example:
        >>> breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=30.0)
        >>> result = await breaker.call(client.moderate, text)
    """
    
    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        success_threshold: int = 1,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold
        
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[datetime] = None
        self._lock = asyncio.Lock()
    
    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Execute ``func`` with circuit breaker protection.
        
        Raises:
            CircuitOpenError: If the circuit is OPEN
            Exception: Whatever ``func`` raises
        """
        async with self._lock:
            if self.state == CircuitState.OPEN:
                if self._should_attempt_reset():
                    logger.info("Circuit breaker transitioning to HALF_OPEN")
                    self.state = CircuitState.HALF_OPEN
                    self.success_count = 0
                else:
                    raise CircuitOpenError(
                        f"Circuit breaker is OPEN. Retry in {self._time_until_reset():.1f}s"
                    )
        
        try:
            result = await func(*args, **kwargs)
        except Exception:
            await self._on_failure()
            raise
        await self._on_success()
        return result
    
    async def _on_success(self):
        async with self._lock:
            self.failure_count = 0
            
            if self.state == CircuitState.HALF_OPEN:
                self.success_count += 1
                if self.success_count >= self.success_threshold:
                    logger.info("Circuit breaker closing - service recovered")
                    self.state = CircuitState.CLOSED
                    self.success_count = 0
    
    async def _on_failure(self):
        async with self._lock:
            self.failure_count += 1
            self.last_failure_time = datetime.now()
            
            if self.state == CircuitState.HALF_OPEN:
                logger.warning("Circuit breaker opening - recovery failed")
                self.state = CircuitState.OPEN
            elif self.failure_count >= self.failure_threshold:
                logger.warning(
                    f"Circuit breaker opening - {self.failure_count} consecutive failures"
                )
                self.state = CircuitState.OPEN
    
    def _should_attempt_reset(self) -> bool:
        if not self.last_failure_time:
            return True
        elapsed = (datetime.now() - self.last_failure_time).total_seconds()
        return elapsed >= self.recovery_timeout
    
    def _time_until_reset(self) -> float:
        if not self.last_failure_time:
            return 0.0
        elapsed = (datetime.now() - self.last_failure_time).total_seconds()
        return max(0.0, self.recovery_timeout - elapsed)
    
    def get_state(self) -> str:
        """Get current circuit state."""
        return self.state.value


def classify_error(error: BaseException) -> ErrorType:
    """Classify an exception raised by an external call."""
    if isinstance(error, httpx.HTTPStatusError):
        if error.response.status_code == 429:
            return ErrorType.RATE_LIMIT
        return ErrorType.API_ERROR
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError, asyncio.TimeoutError)):
        return ErrorType.NETWORK
    if isinstance(error, (ValueError, KeyError, AttributeError, TypeError)):
        return ErrorType.PARSE_ERROR
    return ErrorType.UNKNOWN


def is_transient(error: BaseException) -> bool:
    """True for failures worth retrying: network trouble, 429 and 5xx."""
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status == 429 or 500 <= status < 600
    return classify_error(error) == ErrorType.NETWORK


class ErrorHandler:
    """Per-service circuit breakers shared by the analyzers of one worker."""
    
    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60.0):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.circuit_breakers: Dict[str, CircuitBreaker] = {}
    
    def get_circuit_breaker(self, service: str) -> CircuitBreaker:
        """Get or create the circuit breaker for ``service``."""
        if service not in self.circuit_breakers:
            self.circuit_breakers[service] = CircuitBreaker(
                failure_threshold=self.failure_threshold,
                recovery_timeout=self.recovery_timeout,
            )
        return self.circuit_breakers[service]
    
    def get_circuit_states(self) -> Dict[str, str]:
        """Map each service name to its circuit state."""
        return {
            service: breaker.get_state()
            for service, breaker in self.circuit_breakers.items()
        }
