"""
Reliability utilities for writes to external collaborators.

Includes the Circuit Breaker used by the persistence gateway and a retry
helper with exponential backoff.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Any

logger = logging.getLogger(__name__)


class CircuitOpenError(Exception):
    pass


class CircuitBreaker:
    """
    Simple Circuit Breaker implementation.
    After 'failure_threshold' consecutive failures the circuit opens and
    rejects calls until 'reset_timeout' seconds have passed; the next call
    then probes in HALF_OPEN state.
    """
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"

    def __init__(self, name: str, failure_threshold: int = 5, reset_timeout: float = 60):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.failures = 0
        self.last_failure_time = 0.0
        self.state = self.CLOSED

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        if self.state == self.OPEN:
            if time.monotonic() - self.last_failure_time > self.reset_timeout:
                self.state = self.HALF_OPEN
            else:
                raise CircuitOpenError(f"Circuit '{self.name}' is OPEN")

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise

        if self.state == self.HALF_OPEN or self.failures:
            self.reset_state()
        return result

    def record_failure(self):
        self.failures += 1
        self.last_failure_time = time.monotonic()
        if self.failures >= self.failure_threshold and self.state != self.OPEN:
            logger.warning("Circuit opened", extra={"circuit": self.name, "failures": self.failures})
            self.state = self.OPEN

    def reset_state(self):
        self.failures = 0
        self.state = self.CLOSED


async def retry_async(
    func: Callable[[], Awaitable[Any]],
    max_retries: int,
    base_delay: float,
    description: str = "operation",
) -> Any:
    """
    Call func, retrying on failure with exponential backoff.

    CircuitOpenError is not retried. The last error is re-raised once
    max_retries retries have failed.
    """
    attempt = 0
    while True:
        try:
            return await func()
        except CircuitOpenError:
            raise
        except Exception as e:
            if attempt >= max_retries:
                raise
            delay = base_delay * (2 ** attempt)
            attempt += 1
            logger.warning(
                "%s failed, retrying", description,
                extra={"attempt": attempt, "delay_seconds": delay, "error": str(e)}
            )
            await asyncio.sleep(delay)
