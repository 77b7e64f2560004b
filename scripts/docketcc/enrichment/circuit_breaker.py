"""
Circuit breaker around the AI summarization call.

After `threshold` consecutive failures the breaker opens and calls fail fast
with CircuitOpenError. Once `reset_timeout` seconds have passed, one trial
call is let through (half-open); success closes the breaker, failure opens it
again.
"""

import logging
import threading
import time
from typing import Any, Callable, Optional

from ..exceptions import CircuitOpenError

logger = logging.getLogger(__name__)


class CircuitBreaker:
    def __init__(
        self,
        threshold: int = 3,
        reset_timeout: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.threshold = threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self.failures = 0
        self.opened_at: Optional[float] = None

    @property
    def state(self) -> str:
        if self.opened_at is None:
            return "closed"
        if self._clock() - self.opened_at >= self.reset_timeout:
            return "half_open"
        return "open"

    def call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Invoke func through the breaker, recording success or failure."""
        with self._lock:
            if self.state == "open":
                raise CircuitOpenError("AI processing temporarily unavailable (circuit open)", "CIRCUIT_OPEN")

        try:
            result = func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def record_success(self) -> None:
        with self._lock:
            if self.opened_at is not None:
                logger.info("Circuit breaker closed")
            self.failures = 0
            self.opened_at = None

    def record_failure(self) -> None:
        with self._lock:
            self.failures += 1
            if self.failures >= self.threshold:
                if self.opened_at is None or self.state == "half_open":
                    logger.warning("Circuit breaker opened after %d failures", self.failures)
                self.opened_at = self._clock()

    def reset(self) -> None:
        with self._lock:
            self.failures = 0
            self.opened_at = None
