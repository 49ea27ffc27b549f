"""
Unit tests for OperationRegistry.
"""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from sql_analyzer.config import ResilienceSettings
from sql_analyzer.models.operation import OperationRecord, OperationStatus
from sql_analyzer.resilience.registry import (
    COUNTER_NAMES,
    SWEEPS_PER_RETENTION,
    OperationRegistry,
    get_default_registry,
    reset_default_registry,
)


@pytest.fixture
def registry():
    return OperationRegistry(retention_seconds=3600, breaker_defaults={"failure_threshold": 2})


def finished_record(registry, status=OperationStatus.COMPLETED, age_seconds=0.0):
    record = registry.register(OperationRecord(name="op"))
    record.mark_running()
    registry.finish(record, status)
    record.completed_at = datetime.now(timezone.utc) - timedelta(seconds=age_seconds)
    return record


class TestLifecycle:
    """Records are counted once per terminal status."""

    def test_register(self, registry):
        record = registry.register(OperationRecord(name="analysis.performance"))

        assert registry.get(record.id) is record
        assert registry.counters["total"] == 1
        assert registry.active() == [record]

    def test_finish_counts_once(self, registry):
        record = registry.register(OperationRecord(name="op"))

        registry.finish(record, OperationStatus.FAILED, "boom")
        registry.finish(record, OperationStatus.COMPLETED)

        assert record.status == OperationStatus.FAILED
        assert record.error == "boom"
        assert registry.counters["failed"] == 1
        assert registry.counters["completed"] == 0
        assert registry.active() == []

    def test_fallback_counter(self, registry):
        record = registry.register(OperationRecord(name="op"))

        registry.finish(record, OperationStatus.COMPLETED, used_fallback=True)

        assert record.used_fallback is True
        assert registry.counters["fallbacks"] == 1
        assert registry.counters["completed"] == 1

    def test_retries_and_orphans(self, registry, caplog):
        record = registry.register(OperationRecord(name="slow"))

        registry.note_retry()
        registry.note_retry()
        with caplog.at_level(logging.WARNING):
            registry.note_orphaned(record)

        assert registry.counters["retries"] == 2
        assert registry.counters["orphaned"] == 1
        assert "Abandoned operation may still be running" in caplog.text


class TestBreakers:
    """Breakers are created once per operation key."""

    def test_same_instance_per_key(self, registry):
        assert registry.get_breaker("llm") is registry.get_breaker("llm")
        assert registry.get_breaker("llm") is not registry.get_breaker("db")

    def test_defaults_and_overrides(self, registry):
        default = registry.get_breaker("a")
        custom = registry.get_breaker("b", failure_threshold=7)

        assert default.failure_threshold == 2
        assert custom.failure_threshold == 7
        assert registry.get_breaker("b", failure_threshold=1).failure_threshold == 7

    def test_from_settings(self):
        settings = ResilienceSettings(
            failure_threshold=4, recovery_timeout=10, retention_seconds=60
        )

        registry = OperationRegistry.from_settings(settings)

        assert registry.retention_seconds == 60
        breaker = registry.get_breaker("x")
        assert breaker.failure_threshold == 4
        assert breaker.recovery_timeout == 10


class TestCleanup:
    """Only old terminal records are removed."""

    def test_removes_expired_terminal_records(self, registry):
        old = finished_record(registry, age_seconds=7200)
        fresh = finished_record(registry, age_seconds=10)
        running = registry.register(OperationRecord(name="running"))

        removed = registry.cleanup()

        assert removed == 1
        assert registry.get(old.id) is None
        assert registry.get(fresh.id) is fresh
        assert registry.get(running.id) is running

    def test_explicit_max_age(self, registry):
        finished_record(registry, age_seconds=10)
        running = registry.register(OperationRecord(name="running"))

        assert registry.cleanup(max_age=0) == 1
        assert list(registry.records) == [running.id]

    def test_counters_survive_cleanup(self, registry):
        finished_record(registry, age_seconds=7200)

        registry.cleanup()

        assert registry.counters["total"] == 1
        assert registry.counters["completed"] == 1

    def test_register_sweeps_expired_records(self):
        registry = OperationRegistry(retention_seconds=0.0)

        for _ in range(50):
            finished_record(registry)

        assert registry.stats()["tracked"] == 1
        assert registry.counters["total"] == 50
        assert registry.counters["completed"] == 50

    def test_register_sweep_is_throttled(self, registry):
        old = finished_record(registry, age_seconds=7200)

        registry.register(OperationRecord(name="next"))
        assert registry.get(old.id) is old

        registry._last_sweep -= registry.retention_seconds / SWEEPS_PER_RETENTION
        running = registry.register(OperationRecord(name="after-interval"))

        assert registry.get(old.id) is None
        assert registry.get(running.id) is running
        assert registry.stats()["tracked"] == 2


class TestStatsAndReset:
    def test_stats(self, registry):
        finished_record(registry, OperationStatus.TIMEOUT)
        registry.register(OperationRecord(name="running"))
        registry.get_breaker("llm")

        stats = registry.stats()

        assert set(COUNTER_NAMES) <= set(stats)
        assert stats["timeout"] == 1
        assert stats["active"] == 1
        assert stats["tracked"] == 2
        assert stats["breakers"]["llm"]["state"] == "closed"

    def test_reset(self, registry):
        finished_record(registry)
        registry.get_breaker("llm")

        registry.reset()

        assert registry.records == {}
        assert registry.breakers == {}
        assert all(value == 0 for value in registry.counters.values())

    def test_default_registry(self):
        first = get_default_registry()

        assert get_default_registry() is first
        reset_default_registry()
        assert get_default_registry() is not first
