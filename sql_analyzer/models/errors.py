"""
Exception Hierarchy

All errors raised by the analyzer derive from AnalyzerError so API and CLI
layers can render them uniformly.
"""

from typing import Any

from sql_analyzer.models.classification import ErrorClassification
from sql_analyzer.models.operation import OperationRecord


class AnalyzerError(Exception):
    """
    Base exception for analyzer failures.

    Attributes:
        component: Name of the component that raised the error
        message: Error description
        recoverable: Whether a retry could change the outcome
        context: Additional context for debugging
    """

    def __init__(
        self,
        component: str,
        message: str,
        recoverable: bool = True,
        context: dict[str, Any] | None = None,
    ):
        self.component = component
        self.message = message
        self.recoverable = recoverable
        self.context = context or {}
        super().__init__(f"[{component}] {message}")

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/API responses."""
        return {
            "component": self.component,
            "message": self.message,
            "recoverable": self.recoverable,
            "context": self.context,
            "type": self.__class__.__name__,
        }


class AdaptationError(AnalyzerError):
    """No text-bearing field could be found in a provider response."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__("ResponseAdapter", message, recoverable=False, context=context)


class ResponseDecodeError(AnalyzerError):
    """Model output could not be decoded, even after repair."""

    def __init__(self, component: str, message: str, context: dict[str, Any] | None = None):
        super().__init__(component, message, recoverable=False, context=context)


class RepairError(ResponseDecodeError):
    """The repair call ran but its output could not be decoded either."""


class AnalysisConfigError(AnalyzerError):
    """The analysis request or configuration cannot run."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__("Coordinator", message, recoverable=False, context=context)


class CircuitOpenError(AnalyzerError):
    """Raised without calling the operation while its circuit breaker is open."""

    def __init__(self, operation: str, retry_after: float):
        self.operation = operation
        self.retry_after = retry_after
        super().__init__(
            "CircuitBreaker",
            f"Circuit breaker is open for '{operation}' (retry in {retry_after:.1f}s)",
            recoverable=False,
            context={"operation": operation, "retry_after": retry_after},
        )


class ResilienceError(AnalyzerError):
    """
    Enriched error surfaced by the resilient executor.

    Carries the last classification and the operation record so callers can
    show ``user_message`` while logs keep ``technical_message``.
    """

    def __init__(
        self,
        message: str,
        classification: ErrorClassification,
        record: OperationRecord,
        cause: BaseException | None = None,
    ):
        self.classification = classification
        self.record = record
        self.cause = cause
        super().__init__(
            record.name,
            message,
            recoverable=classification.retryable,
            context={
                "operation_id": record.id,
                "status": record.status.value,
                "attempts": record.attempts,
                "kind": classification.kind.value,
            },
        )

    @property
    def user_message(self) -> str:
        return self.classification.user_message

    @property
    def technical_message(self) -> str:
        return self.classification.technical_message

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload.update(
            {
                "message": self.user_message,
                "kind": self.classification.kind.value,
                "severity": self.classification.severity.value,
                "strategy": self.classification.strategy.value,
                "suggested_actions": list(self.classification.suggested_actions),
            }
        )
        return payload
