"""
Resilient Executor

Runs a unit of work ``fn(signal)`` with a timeout, bounded retries with
exponential backoff and jitter, an optional circuit breaker, and an optional
fallback. Every failure goes through the error classifier, whose strategy
decides what happens next:

    FAIL_FAST                          raise ResilienceError, no fallback
    RETRY (retryable, attempts left)   back off and call fn again
    anything else                      fallback_fn(error), or ResilienceError

The timeout covers the whole retry loop. On expiry the cancellation signal
is set and the running task is cancelled, but the executor only stops
waiting: work that ignores cancellation keeps running and is counted as
orphaned in the registry.
"""

import asyncio
import inspect
import logging
import random
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any, TypeVar

from sql_analyzer.config import ResilienceSettings
from sql_analyzer.models.classification import ErrorClassification, HandlingStrategy
from sql_analyzer.models.errors import ResilienceError
from sql_analyzer.models.operation import OperationRecord, OperationStatus
from sql_analyzer.resilience.circuit_breaker import CircuitBreaker
from sql_analyzer.resilience.classifier import ErrorClassifier, get_default_classifier
from sql_analyzer.resilience.registry import OperationRegistry, get_default_registry

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0

_USE_DEFAULT: Any = object()


class CancellationSignal:
    """Cooperative cancellation flag handed to every unit of work."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise asyncio.CancelledError(self.reason)


class _AttemptsFailed(Exception):
    """Internal: the retry loop gave up on ``error``."""

    def __init__(self, error: Exception, classification: ErrorClassification):
        super().__init__(str(error))
        self.error = error
        self.classification = classification


class ResilientExecutor:
    """
    Execute async operations with retry, timeout, circuit breaking and fallback.

    Args:
        registry: Owner of operation records, breakers and counters
        classifier: Error classifier driving retry decisions
        jitter_ratio: Upper bound of random jitter, as a fraction of the backoff delay
        honor_kind_delays: Floor the backoff at the classification's retry_delay
        cancel_grace: Seconds to wait for a cancelled task before counting it orphaned
    """

    def __init__(
        self,
        registry: OperationRegistry | None = None,
        classifier: ErrorClassifier | None = None,
        jitter_ratio: float = 0.1,
        honor_kind_delays: bool = True,
        cancel_grace: float = 0.1,
        default_timeout: float | None = DEFAULT_TIMEOUT,
        default_max_retries: int = DEFAULT_MAX_RETRIES,
        default_retry_delay: float = DEFAULT_RETRY_DELAY,
    ):
        self.registry = registry or get_default_registry()
        self.default_timeout = default_timeout
        self.default_max_retries = default_max_retries
        self.default_retry_delay = default_retry_delay
        self.classifier = classifier or get_default_classifier()
        self.jitter_ratio = jitter_ratio
        self.honor_kind_delays = honor_kind_delays
        self.cancel_grace = cancel_grace
        self._active: dict[str, tuple[CancellationSignal, asyncio.Task]] = {}

    @classmethod
    def from_settings(
        cls,
        settings: ResilienceSettings,
        registry: OperationRegistry | None = None,
        classifier: ErrorClassifier | None = None,
    ) -> "ResilientExecutor":
        return cls(
            registry=registry,
            classifier=classifier,
            jitter_ratio=settings.jitter_ratio,
            honor_kind_delays=settings.honor_kind_delays,
            default_timeout=settings.timeout,
            default_max_retries=settings.max_retries,
            default_retry_delay=settings.retry_delay,
        )

    async def execute(
        self,
        fn: Callable[[CancellationSignal], Awaitable[T]],
        *,
        operation_name: str = "operation",
        timeout: Any = _USE_DEFAULT,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        fallback_fn: Callable[[Exception], Any] | None = None,
        circuit_breaker: CircuitBreaker | str | None = None,
    ) -> T:
        """
        Run ``fn`` under the resilience policy.

        Args:
            fn: Async callable receiving a CancellationSignal
            operation_name: Name used for logs, records and breaker lookup
            timeout: Seconds for the whole retry loop (None disables the race)
            max_retries: Maximum number of invocations of ``fn``
            retry_delay: Base delay of the exponential backoff
            fallback_fn: Called with the final error to produce a substitute result
            circuit_breaker: Breaker instance, or a key looked up in the registry

        Omitted timeout, max_retries and retry_delay use the executor defaults.

        Returns:
            Result of ``fn`` or of ``fallback_fn``

        Raises:
            ResilienceError: On fail-fast errors, exhausted retries without a
                fallback, timeout without a fallback, or cancellation
        """
        if timeout is _USE_DEFAULT:
            timeout = self.default_timeout
        if max_retries is None:
            max_retries = self.default_max_retries
        if retry_delay is None:
            retry_delay = self.default_retry_delay
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        breaker = (
            self.registry.get_breaker(circuit_breaker)
            if isinstance(circuit_breaker, str)
            else circuit_breaker
        )
        record = self.registry.register(OperationRecord(name=operation_name))
        signal = CancellationSignal()
        record.mark_running()

        task = asyncio.create_task(
            self._run_attempts(fn, record, signal, max_retries, retry_delay, breaker)
        )
        task.add_done_callback(_consume_result)
        waiter = asyncio.create_task(signal.wait())
        self._active[record.id] = (signal, task)

        try:
            done, _ = await asyncio.wait(
                {task, waiter}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            signal.cancel("caller cancelled")
            await self._abandon(task, record)
            self.registry.finish(record, OperationStatus.CANCELLED, "Caller cancelled")
            raise
        finally:
            waiter.cancel()
            self._active.pop(record.id, None)

        if task in done and not task.cancelled():
            try:
                result = task.result()
            except _AttemptsFailed as failure:
                return await self._handle_failure(
                    record, failure.error, failure.classification, fallback_fn
                )
            self.registry.finish(record, OperationStatus.COMPLETED)
            logger.debug(
                f"Operation {operation_name} completed",
                extra={
                    "operation_id": record.id,
                    "attempts": record.attempts,
                    "duration_ms": record.duration_ms,
                },
            )
            return result

        if task.cancelled() or signal.cancelled:
            signal.cancel()
            await self._abandon(task, record)
            classification = self.classifier.classify(
                f"Operation '{operation_name}' was cancelled", {"operation": operation_name}
            )
            record.classification = classification
            self.registry.finish(record, OperationStatus.CANCELLED, signal.reason)
            logger.warning(
                "Operation cancelled",
                extra={"operation_id": record.id, "operation": operation_name},
            )
            raise ResilienceError(
                f"Operation '{operation_name}' was cancelled", classification, record
            )

        signal.cancel("timeout")
        await self._abandon(task, record)
        error = TimeoutError(f"Operation '{operation_name}' timed out after {timeout}s")
        classification = self.classifier.classify(error, {"operation": operation_name})
        record.classification = classification
        logger.error(
            "Operation timed out",
            extra={
                "operation_id": record.id,
                "operation": operation_name,
                "timeout": timeout,
                "attempts": record.attempts,
            },
        )
        return await self._handle_failure(
            record, error, classification, fallback_fn, status=OperationStatus.TIMEOUT
        )

    async def _run_attempts(
        self,
        fn: Callable[[CancellationSignal], Awaitable[T]],
        record: OperationRecord,
        signal: CancellationSignal,
        max_attempts: int,
        retry_delay: float,
        breaker: CircuitBreaker | None,
    ) -> T:
        for attempt in range(1, max_attempts + 1):
            record.attempts = attempt
            try:
                return await self._invoke(fn, signal, breaker)
            except Exception as exc:
                classification = self.classifier.classify(
                    exc, {"operation": record.name, "attempt": attempt}
                )
                record.classification = classification
                record.error = str(exc)

                if (
                    classification.strategy == HandlingStrategy.RETRY
                    and classification.retryable
                    and attempt < max_attempts
                ):
                    delay = self._backoff(retry_delay, attempt, classification)
                    logger.warning(
                        f"Retrying {record.name} in {delay:.2f}s",
                        extra={
                            "operation_id": record.id,
                            "operation": record.name,
                            "attempt": attempt,
                            "max_retries": max_attempts,
                            "kind": classification.kind.value,
                            "error": str(exc),
                        },
                    )
                    self.registry.note_retry()
                    await self._sleep(delay)
                    continue

                raise _AttemptsFailed(exc, classification) from exc

        # Unreachable: the last attempt either returns or raises.
        raise RuntimeError("retry loop exhausted")  # pragma: no cover

    async def _invoke(
        self,
        fn: Callable[[CancellationSignal], Awaitable[T]],
        signal: CancellationSignal,
        breaker: CircuitBreaker | None,
    ) -> T:
        if breaker is None:
            return await fn(signal)

        await breaker.acquire()
        try:
            result = await fn(signal)
        except asyncio.CancelledError:
            await breaker.release()
            raise
        except Exception:
            await breaker.record_failure()
            raise
        await breaker.record_success()
        return result

    async def _handle_failure(
        self,
        record: OperationRecord,
        error: Exception,
        classification: ErrorClassification,
        fallback_fn: Callable[[Exception], Any] | None,
        status: OperationStatus = OperationStatus.FAILED,
    ) -> Any:
        fail_fast = classification.strategy == HandlingStrategy.FAIL_FAST
        if fallback_fn is not None and not fail_fast:
            logger.info(
                "Using fallback result",
                extra={
                    "operation_id": record.id,
                    "operation": record.name,
                    "kind": classification.kind.value,
                },
            )
            try:
                result = fallback_fn(error)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as fallback_error:
                fallback_classification = self.classifier.classify(
                    fallback_error, {"operation": record.name, "phase": "fallback"}
                )
                record.classification = fallback_classification
                self.registry.finish(record, OperationStatus.FAILED, str(fallback_error))
                raise ResilienceError(
                    fallback_classification.user_message,
                    fallback_classification,
                    record,
                    cause=fallback_error,
                ) from fallback_error

            final_status = OperationStatus.COMPLETED if status == OperationStatus.FAILED else status
            self.registry.finish(record, final_status, str(error), used_fallback=True)
            return result

        self.registry.finish(record, status, str(error))
        logger.error(
            f"Operation {record.name} failed",
            extra={
                "operation_id": record.id,
                "operation": record.name,
                "status": record.status.value,
                "attempts": record.attempts,
                "kind": classification.kind.value,
                "strategy": classification.strategy.value,
                "error": classification.technical_message,
            },
        )
        raise ResilienceError(
            classification.user_message, classification, record, cause=error
        ) from error

    def _backoff(
        self, retry_delay: float, attempt: int, classification: ErrorClassification
    ) -> float:
        delay = retry_delay * 2 ** (attempt - 1)
        if self.jitter_ratio > 0:
            delay += random.uniform(0, delay * self.jitter_ratio)
        if self.honor_kind_delays and classification.retry_delay:
            delay = max(delay, classification.retry_delay)
        return delay

    async def _abandon(self, task: asyncio.Task, record: OperationRecord) -> None:
        """Cancel ``task`` and wait briefly; count it orphaned if it keeps running."""
        if task.done():
            return
        task.cancel()
        await asyncio.wait({task}, timeout=self.cancel_grace)
        if not task.done():
            self.registry.note_orphaned(record)

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def cancel(self, operation_id: str) -> bool:
        """Signal cancellation of a running operation. Returns False if it is unknown."""
        entry = self._active.get(operation_id)
        if entry is None:
            return False
        signal, _ = entry
        signal.cancel("cancelled by request")
        return True

    def cancel_all(self) -> int:
        operation_ids = list(self._active)
        return sum(1 for operation_id in operation_ids if self.cancel(operation_id))

    async def batch_execute(
        self,
        operations: Sequence[Mapping[str, Any]],
        max_concurrent: int = 5,
        fail_fast: bool = False,
    ) -> list[Any]:
        """
        Execute several operations with bounded concurrency.

        Each operation is a mapping with an ``fn`` key plus execute() keyword
        arguments. Results keep input order; failures appear as ResilienceError
        instances unless ``fail_fast`` is set, in which case the first failure
        cancels the rest and is raised.
        """
        semaphore = asyncio.Semaphore(max_concurrent)

        async def _run(operation: Mapping[str, Any]) -> Any:
            options = dict(operation)
            fn = options.pop("fn")
            async with semaphore:
                return await self.execute(fn, **options)

        tasks = [asyncio.create_task(_run(operation)) for operation in operations]
        if not tasks:
            return []

        if fail_fast:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            failed = [task for task in done if task.exception() is not None]
            if failed:
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
                raise failed[0].exception()
            return [task.result() for task in tasks]

        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, ResilienceError):
                raise result
        return list(results)

    async def health_check(
        self,
        checks: Mapping[str, Callable[[], Awaitable[Any]]],
        timeout: float = 5.0,
    ) -> dict[str, Any]:
        """Run each named check once with ``timeout`` and report per-check health."""
        report: dict[str, Any] = {}
        for name, check in checks.items():
            started = time.perf_counter()
            try:
                await self.execute(
                    lambda _signal, check=check: check(),
                    operation_name=f"health.{name}",
                    timeout=timeout,
                    max_retries=1,
                )
            except ResilienceError as exc:
                report[name] = {
                    "healthy": False,
                    "error": exc.user_message,
                    "duration_ms": (time.perf_counter() - started) * 1000,
                }
            else:
                report[name] = {
                    "healthy": True,
                    "error": None,
                    "duration_ms": (time.perf_counter() - started) * 1000,
                }
        return {
            "healthy": all(entry["healthy"] for entry in report.values()),
            "checks": report,
            "registry": self.registry.stats(),
        }


def _consume_result(task: asyncio.Task) -> None:
    # Abandoned tasks may fail after nobody is waiting for them.
    if not task.cancelled():
        task.exception()


_default_executor: ResilientExecutor | None = None


def get_default_executor() -> ResilientExecutor:
    """Executor bound to the current default registry."""
    global _default_executor
    registry = get_default_registry()
    if _default_executor is None or _default_executor.registry is not registry:
        _default_executor = ResilientExecutor.from_settings(ResilienceSettings(), registry=registry)
    return _default_executor


async def execute_with_resilience(
    fn: Callable[[CancellationSignal], Awaitable[T]], **options: Any
) -> T:
    """Run ``fn`` through the default executor. Options are those of ResilientExecutor.execute."""
    return await get_default_executor().execute(fn, **options)
