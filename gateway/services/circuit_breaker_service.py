"""Circuit breakers isolating each backend route."""

import asyncio
import logging
import time
from enum import Enum
from typing import Callable, Dict, Iterable, Optional

from gateway.models.response import BreakerStatus

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # Single probe testing recovery


class CallPermit:
    """Admission ticket handed out by :meth:`CircuitBreaker.acquire`.

    The permit is passed back with the outcome so the breaker can tell the
    half-open probe apart from calls admitted earlier while closed.
    """

    __slots__ = ("breaker_id", "probe", "settled")

    def __init__(self, breaker_id: str, probe: bool = False):
        self.breaker_id = breaker_id
        self.probe = probe
        self.settled = False


class CircuitBreaker:
    """Circuit breaker for a single backend route."""

    def __init__(
        self,
        breaker_id: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60,
        failure_window: Optional[float] = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize circuit breaker.

        Args:
            breaker_id: Name of the breaker
            failure_threshold: Consecutive failures before opening
            recovery_timeout: Seconds in open state before a probe is allowed
            failure_window: Failures further apart than this many seconds
                restart the count (None disables the window)
            clock: Monotonic time source
        """
        self.breaker_id = breaker_id
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_window = failure_window
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.last_failure_time: Optional[float] = None
        self.half_open_probe_in_flight = False
        self._lock = asyncio.Lock()

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self.state
        self.state = new_state
        log = logger.error if new_state == CircuitState.OPEN else logger.info
        log(
            f"Circuit breaker {self.breaker_id} transition: "
            f"{old_state.value} -> {new_state.value}"
        )

    def _cooldown_elapsed(self, now: float) -> bool:
        if self.last_failure_time is None:
            return True
        return now - self.last_failure_time >= self.recovery_timeout

    async def acquire(self) -> Optional[CallPermit]:
        """Ask for permission to call the backend.

        Returns:
            A permit if the call may proceed, None if it must be served by
            the fallback instead
        """
        async with self._lock:
            if self.state == CircuitState.CLOSED:
                return CallPermit(self.breaker_id)

            if self.state == CircuitState.OPEN:
                if not self._cooldown_elapsed(self._clock()):
                    return None
                self._transition(CircuitState.HALF_OPEN)
                self.half_open_probe_in_flight = False

            # HALF_OPEN: compare-and-set on the probe flag
            if self.half_open_probe_in_flight:
                return None
            self.half_open_probe_in_flight = True
            logger.info(f"Circuit breaker {self.breaker_id} admitting probe request")
            return CallPermit(self.breaker_id, probe=True)

    async def record_success(self, permit: CallPermit) -> None:
        """Record a successful backend call."""
        async with self._lock:
            if permit.settled:
                return
            permit.settled = True

            if permit.probe:
                if self.state == CircuitState.HALF_OPEN:
                    self.half_open_probe_in_flight = False
                    self.consecutive_failures = 0
                    self.last_failure_time = None
                    self._transition(CircuitState.CLOSED)
            elif self.state == CircuitState.CLOSED:
                self.consecutive_failures = 0

    async def record_failure(self, permit: CallPermit) -> None:
        """Record a failed backend call (5xx, timeout or connection error)."""
        async with self._lock:
            if permit.settled:
                return
            permit.settled = True
            now = self._clock()

            if permit.probe:
                if self.state == CircuitState.HALF_OPEN:
                    self.half_open_probe_in_flight = False
                    self.last_failure_time = now
                    logger.warning(f"Circuit breaker {self.breaker_id} probe failed")
                    self._transition(CircuitState.OPEN)
                return

            if self.state != CircuitState.CLOSED:
                # admitted before the breaker opened; outcome is stale
                return

            if (
                self.failure_window is not None
                and self.last_failure_time is not None
                and now - self.last_failure_time > self.failure_window
            ):
                self.consecutive_failures = 0

            self.consecutive_failures += 1
            self.last_failure_time = now
            if self.consecutive_failures >= self.failure_threshold:
                logger.error(
                    f"Circuit breaker {self.breaker_id} opening "
                    f"(threshold: {self.failure_threshold})"
                )
                self._transition(CircuitState.OPEN)

    async def release(self, permit: CallPermit) -> None:
        """Give back a permit whose call was abandoned without an outcome."""
        async with self._lock:
            if permit.settled:
                return
            permit.settled = True
            if permit.probe and self.state == CircuitState.HALF_OPEN:
                self.half_open_probe_in_flight = False
                logger.info(f"Circuit breaker {self.breaker_id} probe abandoned")

    def get_state(self) -> BreakerStatus:
        since_failure = None
        if self.last_failure_time is not None:
            since_failure = round(self._clock() - self.last_failure_time, 3)
        return BreakerStatus(
            breaker_id=self.breaker_id,
            state=self.state.value,
            consecutive_failures=self.consecutive_failures,
            seconds_since_last_failure=since_failure,
            half_open_probe_in_flight=self.half_open_probe_in_flight,
        )


class CircuitBreakerRegistry:
    """Explicit mapping from breaker id to breaker, built once at startup."""

    def __init__(
        self,
        breaker_ids: Iterable[str],
        failure_threshold: int = 5,
        recovery_timeout: float = 60,
        failure_window: Optional[float] = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize circuit breaker registry.

        Args:
            breaker_ids: One breaker is created per distinct id
            failure_threshold: Consecutive failures before opening
            recovery_timeout: Seconds in open state before a probe is allowed
            failure_window: Seconds after which a stale failure streak resets
            clock: Monotonic time source shared by all breakers
        """
        self._breakers: Dict[str, CircuitBreaker] = {}
        for breaker_id in breaker_ids:
            if breaker_id in self._breakers:
                continue
            self._breakers[breaker_id] = CircuitBreaker(
                breaker_id=breaker_id,
                failure_threshold=failure_threshold,
                recovery_timeout=recovery_timeout,
                failure_window=failure_window,
                clock=clock,
            )

    def __contains__(self, breaker_id: str) -> bool:
        return breaker_id in self._breakers

    def get_breaker(self, breaker_id: str) -> CircuitBreaker:
        """Get the breaker registered under ``breaker_id``.

        Raises:
            KeyError: If no route declared this breaker
        """
        return self._breakers[breaker_id]

    def get_all_states(self) -> Dict[str, BreakerStatus]:
        return {name: breaker.get_state() for name, breaker in self._breakers.items()}
