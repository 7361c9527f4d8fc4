"""
Per-channel circuit breaker.

Opens after a run of consecutive failures, half-opens after a cooldown and
closes again on the first success. State changes happen in plain synchronous
methods, so on the event loop each outcome is applied atomically.
"""
import logging
import time
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing, reject attempts
    HALF_OPEN = "half_open"  # Testing recovery


class CircuitBreaker:
    """Consecutive-failure circuit breaker shared by every alert using a channel"""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        cooldown_seconds: float = 60.0,
        half_open_max_calls: int = 1,
        clock: Callable[[], float] = time.monotonic
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self.half_open_max_calls = half_open_max_calls
        self.clock = clock

        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.opened_at = 0.0
        self.half_open_calls = 0

    def can_attempt(self) -> bool:
        """Check (and reserve) an attempt"""
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            if self.clock() - self.opened_at >= self.cooldown_seconds:
                self.state = CircuitState.HALF_OPEN
                self.half_open_calls = 0
                logger.info(f"Circuit {self.name} half-open (testing recovery)")
            else:
                return False

        if self.half_open_calls < self.half_open_max_calls:
            self.half_open_calls += 1
            return True
        return False

    def record_success(self):
        if self.state != CircuitState.CLOSED:
            logger.info(f"Circuit {self.name} closed (recovered)")
        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.half_open_calls = 0

    def record_failure(self):
        self.consecutive_failures += 1

        if self.state == CircuitState.HALF_OPEN:
            self._open()
        elif self.state == CircuitState.CLOSED and self.consecutive_failures >= self.failure_threshold:
            self._open()

    def _open(self):
        self.state = CircuitState.OPEN
        self.opened_at = self.clock()
        self.half_open_calls = 0
        logger.warning(
            f"Circuit {self.name} opened after {self.consecutive_failures} consecutive failures"
        )

    def release(self):
        """Return a reserved half-open slot when the attempt ends without an outcome"""
        if self.state == CircuitState.HALF_OPEN and self.half_open_calls > 0:
            self.half_open_calls -= 1
