"""
Operation Registry

Process-wide state of the resilience layer: operation records, circuit
breakers keyed by operation name, and counters. The default registry is
created on first use and only reset through reset_default_registry().
"""

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any

from sql_analyzer.config import ResilienceSettings
from sql_analyzer.models.operation import OperationRecord, OperationStatus
from sql_analyzer.resilience.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)

COUNTER_NAMES = (
    "total",
    "completed",
    "failed",
    "cancelled",
    "timeout",
    "fallbacks",
    "retries",
    "orphaned",
)

# Expired records are swept from register() at most this many times per retention window.
SWEEPS_PER_RETENTION = 10

_STATUS_COUNTERS = {
    OperationStatus.COMPLETED: "completed",
    OperationStatus.FAILED: "failed",
    OperationStatus.CANCELLED: "cancelled",
    OperationStatus.TIMEOUT: "timeout",
}


class OperationRegistry:
    """
    Explicit owner of cross-call resilience state.

    Args:
        retention_seconds: Age after which terminal records are dropped. register()
            sweeps them periodically; cleanup() sweeps on demand.
        breaker_defaults: Keyword arguments for breakers created by get_breaker()
    """

    def __init__(
        self,
        retention_seconds: float = 3600.0,
        breaker_defaults: dict[str, Any] | None = None,
    ):
        self.retention_seconds = retention_seconds
        self.breaker_defaults = dict(breaker_defaults or {})
        self.records: dict[str, OperationRecord] = {}
        self.breakers: dict[str, CircuitBreaker] = {}
        self.counters: dict[str, int] = dict.fromkeys(COUNTER_NAMES, 0)
        self._last_sweep = time.monotonic()

    @classmethod
    def from_settings(cls, settings: ResilienceSettings) -> "OperationRegistry":
        return cls(
            retention_seconds=settings.retention_seconds,
            breaker_defaults={
                "failure_threshold": settings.failure_threshold,
                "recovery_timeout": settings.recovery_timeout,
                "success_threshold": settings.success_threshold,
            },
        )

    def register(self, record: OperationRecord) -> OperationRecord:
        self._sweep_if_due()
        self.records[record.id] = record
        self.counters["total"] += 1
        return record

    def get(self, operation_id: str) -> OperationRecord | None:
        return self.records.get(operation_id)

    def active(self) -> list[OperationRecord]:
        return [record for record in self.records.values() if not record.is_terminal]

    def finish(
        self,
        record: OperationRecord,
        status: OperationStatus,
        error: str | None = None,
        used_fallback: bool = False,
    ) -> None:
        """Move ``record`` to a terminal status and count it once."""
        if record.is_terminal:
            return
        record.mark_finished(status, error)
        if used_fallback:
            record.used_fallback = True
            self.counters["fallbacks"] += 1
        self.counters[_STATUS_COUNTERS[status]] += 1

    def note_retry(self) -> None:
        self.counters["retries"] += 1

    def note_orphaned(self, record: OperationRecord) -> None:
        """Count work that was abandoned while it may still be running."""
        self.counters["orphaned"] += 1
        logger.warning(
            "Abandoned operation may still be running",
            extra={"operation_id": record.id, "operation": record.name},
        )

    def get_breaker(self, name: str, **overrides: Any) -> CircuitBreaker:
        """Breaker for ``name``, created on first use. Overrides apply only at creation."""
        breaker = self.breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(name, **{**self.breaker_defaults, **overrides})
            self.breakers[name] = breaker
        return breaker

    def cleanup(self, max_age: float | None = None) -> int:
        """Drop terminal records older than ``max_age`` seconds. Returns the count removed."""
        age = self.retention_seconds if max_age is None else max_age
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=age)
        stale = [
            record_id
            for record_id, record in self.records.items()
            if record.is_terminal and (record.completed_at or record.created_at) <= cutoff
        ]
        for record_id in stale:
            del self.records[record_id]
        if stale:
            logger.debug("Removed expired operation records", extra={"count": len(stale)})
        return len(stale)

    def _sweep_if_due(self) -> None:
        now = time.monotonic()
        if now - self._last_sweep >= self.retention_seconds / SWEEPS_PER_RETENTION:
            self._last_sweep = now
            self.cleanup()

    def stats(self) -> dict[str, Any]:
        return {
            **self.counters,
            "active": len(self.active()),
            "tracked": len(self.records),
            "breakers": {name: breaker.stats() for name, breaker in self.breakers.items()},
        }

    def reset(self) -> None:
        self.records.clear()
        self.breakers.clear()
        self.counters = dict.fromkeys(COUNTER_NAMES, 0)


_default_registry: OperationRegistry | None = None


def get_default_registry() -> OperationRegistry:
    global _default_registry
    if _default_registry is None:
        _default_registry = OperationRegistry.from_settings(ResilienceSettings())
    return _default_registry


def reset_default_registry() -> None:
    """Discard the process-wide registry; the next get_default_registry() builds a new one."""
    global _default_registry
    _default_registry = None
