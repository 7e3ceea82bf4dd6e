"""
Propodocs Backend — Per-Provider Circuit Breaker
==================================================

What:  Stops calling an AI provider that keeps failing, for a cool-down period.
Why:   When a vendor is down, every generation request would otherwise burn
       the full retry budget on it before falling back. With the breaker open
       the chain moves to the next provider in under a millisecond.
How:   One CircuitBreaker per provider instance, owned by that provider. The
       chain treats CircuitBreakerOpenError like any other provider failure.

Thread Safety:
    Plain counters, not thread-safe. Acceptable because uvicorn async workers
    share one event loop per process; each worker process has its own breakers.
"""

import logging
import time
from typing import Optional

from propodocs.exceptions import CircuitBreakerOpenError

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """
    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Calls are let through until the first of them reports back;
              concurrent calls in that window are not held back
            → First success: transition to CLOSED (reset failure_count)
            → First failure: transition back to OPEN (reset timer)
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, name: str, failure_threshold: int = 5, recovery_timeout: int = 60):
        """
        Args:
            name: Provider name, used in logs and in CircuitBreakerOpenError
            failure_threshold: Consecutive failures before opening circuit
            recovery_timeout: Seconds to wait before testing recovery
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    @property
    def is_open(self) -> bool:
        """True while calls would be rejected (OPEN and still inside the recovery window)."""
        if self.state != self.OPEN:
            return False
        return time.time() - (self.last_failure_time or 0) < self.recovery_timeout

    def can_execute(self) -> bool:
        """
        Check if a request is allowed through the circuit breaker.

        Raises:
            CircuitBreakerOpenError if circuit is OPEN and recovery timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker [%s] transitioning to HALF_OPEN after %.1fs",
                    self.name,
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(provider=self.name, recovery_time=remaining)

        # HALF_OPEN: calls pass until one of them records an outcome
        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker [%s] transitioning to CLOSED (service recovered)", self.name)
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker [%s] returning to OPEN (test request failed)", self.name)
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker [%s] OPENING after %d consecutive failures",
                self.name,
                self.failure_count,
            )
            self.state = self.OPEN
