"""
Resilience Layer

Error classification, redaction, circuit breaking and the resilient executor.

Usage:
    from sql_analyzer.resilience import classify, execute_with_resilience

    result = await execute_with_resilience(
        call_llm, operation_name="llm.analysis", timeout=20, max_retries=3
    )
"""

from sql_analyzer.resilience.circuit_breaker import CircuitBreaker, CircuitState
from sql_analyzer.resilience.classifier import ErrorClassifier, ErrorRule, classify
from sql_analyzer.resilience.executor import (
    CancellationSignal,
    ResilientExecutor,
    execute_with_resilience,
)
from sql_analyzer.resilience.registry import (
    OperationRegistry,
    get_default_registry,
    reset_default_registry,
)
from sql_analyzer.resilience.sanitizer import LogSanitizer, SanitizingFilter

__all__ = [
    "CancellationSignal",
    "CircuitBreaker",
    "CircuitState",
    "ErrorClassifier",
    "ErrorRule",
    "LogSanitizer",
    "OperationRegistry",
    "ResilientExecutor",
    "SanitizingFilter",
    "classify",
    "execute_with_resilience",
    "get_default_registry",
    "reset_default_registry",
]
