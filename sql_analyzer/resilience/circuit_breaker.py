"""
Circuit Breaker

CLOSED -> OPEN after ``failure_threshold`` consecutive failures. While OPEN,
calls are rejected with CircuitOpenError. Once ``recovery_timeout`` has
elapsed the breaker admits trial calls in HALF_OPEN: any failure reopens it,
``success_threshold`` consecutive successes close it.

State is shared by every caller using the same operation key, so all
transitions happen under an asyncio.Lock.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, TypeVar

from sql_analyzer.models.errors import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Per-operation circuit breaker.

    Args:
        name: Operation key shared by all callers
        failure_threshold: Consecutive failures that open the circuit
        recovery_timeout: Seconds to stay OPEN before probing
        success_threshold: Consecutive HALF_OPEN successes that close it
        half_open_max_calls: Concurrent trial calls admitted in HALF_OPEN
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        success_threshold: int = 3,
        half_open_max_calls: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold < 1 or success_threshold < 1 or half_open_max_calls < 1:
            raise ValueError("Circuit breaker thresholds must be at least 1")
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold
        self.half_open_max_calls = half_open_max_calls
        self._clock = clock
        self._lock = asyncio.Lock()

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.half_open_calls = 0
        self.opened_at: float | None = None
        self.total_calls = 0
        self.total_failures = 0
        self.rejected_calls = 0

    async def acquire(self) -> None:
        """
        Admit one call or raise CircuitOpenError.

        Every admitted call must be followed by record_success or
        record_failure.
        """
        async with self._lock:
            if self.state == CircuitState.OPEN:
                remaining = self._remaining_open_time()
                if remaining > 0:
                    self.rejected_calls += 1
                    raise CircuitOpenError(self.name, remaining)
                self._transition(CircuitState.HALF_OPEN)

            if self.state == CircuitState.HALF_OPEN:
                if self.half_open_calls >= self.half_open_max_calls:
                    self.rejected_calls += 1
                    raise CircuitOpenError(self.name, 0.0)
                self.half_open_calls += 1

            self.total_calls += 1

    async def record_success(self) -> None:
        async with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                self.half_open_calls = max(0, self.half_open_calls - 1)
                self.success_count += 1
                if self.success_count >= self.success_threshold:
                    self._transition(CircuitState.CLOSED)
            else:
                self.failure_count = 0

    async def record_failure(self) -> None:
        async with self._lock:
            self.total_failures += 1
            if self.state == CircuitState.HALF_OPEN:
                self.half_open_calls = max(0, self.half_open_calls - 1)
                self._transition(CircuitState.OPEN)
                return

            self.failure_count += 1
            if self.state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
                self._transition(CircuitState.OPEN)

    async def release(self) -> None:
        """Give back an admitted call that ended without an outcome (cancelled)."""
        async with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                self.half_open_calls = max(0, self.half_open_calls - 1)

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run ``fn`` through the breaker."""
        await self.acquire()
        try:
            result = await fn(*args, **kwargs)
        except Exception:
            await self.record_failure()
            raise
        await self.record_success()
        return result

    async def reset(self) -> None:
        async with self._lock:
            self._transition(CircuitState.CLOSED)

    def stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "total_calls": self.total_calls,
            "total_failures": self.total_failures,
            "rejected_calls": self.rejected_calls,
            "retry_after": self._remaining_open_time() if self.state == CircuitState.OPEN else 0.0,
        }

    def _remaining_open_time(self) -> float:
        if self.opened_at is None:
            return 0.0
        return max(0.0, self.opened_at + self.recovery_timeout - self._clock())

    def _transition(self, new_state: CircuitState) -> None:
        # Caller holds the lock.
        if new_state == self.state and new_state != CircuitState.OPEN:
            return
        old_state = self.state
        self.state = new_state
        self.failure_count = 0
        self.success_count = 0
        self.half_open_calls = 0
        self.opened_at = self._clock() if new_state == CircuitState.OPEN else None

        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(
            "Circuit breaker state changed",
            extra={"breaker": self.name, "from": old_state.value, "to": new_state.value},
        )
