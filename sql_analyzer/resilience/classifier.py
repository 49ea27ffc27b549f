"""
Error Classifier

Maps any exception (or error string) to an ErrorClassification that drives
the resilient executor: retry, fall back, fail fast or ask the user.

Rules are checked in order against ``"{code} {ExceptionType}: {message}"``
and the first match wins, so specific patterns sit above generic ones.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sql_analyzer.models.classification import (
    ErrorClassification,
    ErrorKind,
    ErrorSeverity,
    HandlingAdvice,
    HandlingStrategy,
)
from sql_analyzer.resilience.sanitizer import LogSanitizer

logger = logging.getLogger(__name__)

CODE_ATTRIBUTES = ("code", "errno", "status_code", "status")
MAX_DETAIL_CHARS = 200

# Delays used by get_handling_advice; DEFAULT_ADVICE_DELAY for other kinds.
KIND_RETRY_DELAYS: dict[ErrorKind, float] = {
    ErrorKind.NETWORK_ERROR: 5.0,
    ErrorKind.LLM_SERVICE_ERROR: 10.0,
    ErrorKind.RATE_LIMIT_ERROR: 60.0,
}
DEFAULT_ADVICE_DELAY = 3.0


@dataclass(frozen=True)
class ErrorRule:
    """One row of the classification table."""

    pattern: re.Pattern
    kind: ErrorKind
    severity: ErrorSeverity
    strategy: HandlingStrategy
    retryable: bool
    user_message: str
    technical_message: str
    suggested_actions: tuple[str, ...] = field(default_factory=tuple)
    retry_delay: float | None = None

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


def _rule(
    pattern: str,
    kind: ErrorKind,
    severity: ErrorSeverity,
    strategy: HandlingStrategy,
    retryable: bool,
    user_message: str,
    technical_message: str,
    actions: tuple[str, ...],
    retry_delay: float | None = None,
) -> ErrorRule:
    return ErrorRule(
        pattern=re.compile(pattern, re.IGNORECASE),
        kind=kind,
        severity=severity,
        strategy=strategy,
        retryable=retryable,
        user_message=user_message,
        technical_message=technical_message,
        suggested_actions=actions,
        retry_delay=retry_delay,
    )


K, S, H = ErrorKind, ErrorSeverity, HandlingStrategy

RULES: tuple[ErrorRule, ...] = (
    _rule(
        r"circuit breaker (?:is )?open|CircuitOpenError",
        K.CIRCUIT_OPEN, S.HIGH, H.FALLBACK, False,
        "The analysis service is temporarily unavailable",
        "Circuit breaker open",
        ("Wait for the recovery window", "Check the LLM service status"),
    ),
    _rule(
        r"out of memory|heap|cannot allocate|MemoryError|maximum call stack|RecursionError",
        K.MEMORY_ERROR, S.HIGH, H.FAIL_FAST, False,
        "The system ran out of memory",
        "Memory exhausted",
        ("Restart the application", "Analyze smaller SQL inputs"),
    ),
    # Rules keyed on exception type names sit above the transport rules, so a
    # validation or config message that mentions a timeout is never retried.
    _rule(
        r"ConfigError|configuration error|missing required configuration",
        K.CONFIG_ERROR, S.HIGH, H.FAIL_FAST, False,
        "Configuration error, check the settings",
        "Invalid configuration",
        ("Check the .env file", "Check environment variables"),
    ),
    _rule(
        r"AdaptationError|no text-bearing field",
        K.RESPONSE_FORMAT_ERROR, S.HIGH, H.FAIL_FAST, False,
        "The LLM response had an unsupported shape",
        "Response adaptation failed",
        ("Check the provider integration", "Check the provider SDK version"),
    ),
    _rule(
        r"ResponseDecodeError|RepairError|JSON parse|JSONDecodeError|unexpected token"
        r"|could not decode",
        K.RESPONSE_FORMAT_ERROR, S.LOW, H.FALLBACK, False,
        "The LLM response could not be read",
        "Structured decoding failed",
        ("Retry the analysis", "Try a different model"),
    ),
    _rule(
        r"validation failed|invalid input|ValidationError|schema validation|required field missing",
        K.VALIDATION_ERROR, S.LOW, H.FAIL_FAST, False,
        "Input validation failed, check the input format",
        "Validation error",
        ("Check the input format", "Check required fields"),
    ),
    _rule(
        r"ModuleNotFoundError|ImportError|No module named|cannot find module|DependencyError"
        r"|required service not available",
        K.DEPENDENCY_ERROR, S.HIGH, H.FAIL_FAST, False,
        "A required dependency is missing",
        "Dependency error",
        ("Reinstall dependencies", "Check package versions"),
    ),
    _rule(
        r"\bEACCES\b|\bEPERM\b|PermissionError|permission denied",
        K.PERMISSION_DENIED, S.MEDIUM, H.USER_INTERVENTION, False,
        "Permission denied, check file access rights",
        "File system permission error",
        ("Check file permissions", "Check directory ownership"),
    ),
    _rule(
        r"\bENOENT\b|no such file|FileNotFoundError",
        K.FILE_SYSTEM_ERROR, S.MEDIUM, H.USER_INTERVENTION, False,
        "File not found, check the path",
        "File does not exist",
        ("Check the file path", "Verify the file name"),
    ),
    _rule(
        r"\bENOTDIR\b|\bENAMETOOLONG\b|\bEMFILE\b|\bENFILE\b|IsADirectoryError|NotADirectoryError",
        K.FILE_SYSTEM_ERROR, S.MEDIUM, H.USER_INTERVENTION, False,
        "File system operation failed, check the path and permissions",
        "File system error",
        ("Check the file path", "Check open file limits"),
    ),
    _rule(
        r"\bEBUSY\b|\bEAGAIN\b|\bEWOULDBLOCK\b|resource busy|BlockingIOError",
        K.FILE_SYSTEM_ERROR, S.MEDIUM, H.RETRY, True,
        "The file system is busy, retrying",
        "File system temporarily unavailable",
        ("Wait and retry", "Check which process holds the file"),
    ),
    _rule(
        r"\bECONNREFUSED\b|connection ?refused|\bECONNRESET\b|connection ?reset"
        r"|APIConnectionError|ConnectError|connection error",
        K.NETWORK_ERROR, S.HIGH, H.RETRY, True,
        "Network connection failed",
        "Connection refused or reset",
        (
            "Check the network connection",
            "Verify the service is running",
            "Check firewall settings",
        ),
    ),
    _rule(
        r"(?:invalid|incorrect) api key|AuthenticationError|\b401\b|unauthorized",
        K.LLM_SERVICE_ERROR, S.HIGH, H.USER_INTERVENTION, False,
        "The LLM API key is invalid, check the configuration",
        "LLM authentication failed",
        ("Check LLM_OPENAI_API_KEY", "Verify the provider configuration"),
    ),
    _rule(
        r"quota exceeded|insufficient_quota|exceeded your current quota",
        K.LLM_SERVICE_ERROR, S.HIGH, H.USER_INTERVENTION, False,
        "The LLM service quota is exhausted",
        "LLM quota exceeded",
        ("Check the account balance", "Wait for the quota to reset"),
    ),
    _rule(
        r"rate[ _-]?limit|\b429\b|too many requests",
        K.RATE_LIMIT_ERROR, S.MEDIUM, H.RETRY, True,
        "Too many requests, retrying later",
        "Rate limited by provider",
        ("Reduce request frequency", "Lower batch concurrency"),
        retry_delay=KIND_RETRY_DELAYS[ErrorKind.RATE_LIMIT_ERROR],
    ),
    _rule(
        r"\bETIMEDOUT\b|TimeoutError|APITimeoutError|ReadTimeout|ConnectTimeout|WriteTimeout"
        r"|PoolTimeout|timed out",
        K.NETWORK_ERROR, S.MEDIUM, H.RETRY, True,
        "The request timed out",
        "Network timeout",
        ("Retry the request", "Increase the timeout"),
    ),
    _rule(
        r"HTTPError|HTTPStatusError|NetworkError|request (?:failed|timeout)",
        K.NETWORK_ERROR, S.HIGH, H.RETRY, True,
        "The network request failed",
        "HTTP request error",
        ("Check the network connection", "Retry the request"),
    ),
    _rule(
        r"database connection|connection pool",
        K.DATABASE_ERROR, S.HIGH, H.RETRY, True,
        "Database connection failed",
        "Database connection error",
        ("Check the database status", "Check the connection settings"),
    ),
    _rule(
        r"NotFoundError|not found|no record found|\b404\b",
        K.DATA_NOT_FOUND, S.LOW, H.LOG_ONLY, False,
        "The requested resource was not found",
        "Resource not found",
        ("Check the resource identifier", "Check the model name"),
    ),
    _rule(
        r"PermissionDenied|access denied|\b403\b|forbidden",
        K.PERMISSION_DENIED, S.MEDIUM, H.FAIL_FAST, False,
        "Access denied",
        "Authorization failed",
        ("Check account permissions", "Contact the administrator"),
    ),
    _rule(
        r"\b50[0234]\b|API ?error|APIStatusError|service unavailable|InternalServerError"
        r"|bad gateway",
        K.API_ERROR, S.HIGH, H.RETRY, True,
        "The external API returned an error",
        "Upstream API failure",
        ("Check the provider status page", "Retry the request"),
    ),
    _rule(
        r"business logic|workflow error",
        K.BUSINESS_LOGIC_ERROR, S.MEDIUM, H.LOG_ONLY, False,
        "The analysis workflow failed",
        "Business logic error",
        ("Check the input parameters", "Review the logs"),
    ),
)

del K, S, H


class ErrorClassifier:
    """
    Classify errors with an ordered rule table.

    Args:
        rules: Rule table, checked in order
        sanitizer: Redacts secrets and personal data from user messages
    """

    def __init__(
        self,
        rules: tuple[ErrorRule, ...] = RULES,
        sanitizer: LogSanitizer | None = None,
    ):
        self.rules = rules
        self.sanitizer = sanitizer or LogSanitizer()

    def classify(
        self, error: BaseException | str, context: dict[str, Any] | None = None
    ) -> ErrorClassification:
        error_type, message, code = _describe(error)
        match_text = " ".join(
            part for part in (code, f"{error_type}: {message}" if error_type else message) if part
        )

        audit = {
            "raw_message": message,
            "error_type": error_type,
            "code": code,
            "context": dict(context or {}),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        rule = next((r for r in self.rules if r.matches(match_text)), None)
        if rule is None:
            logger.debug("No classification rule matched", extra={"error_type": error_type})
            return ErrorClassification(
                kind=ErrorKind.SYSTEM_ERROR,
                severity=ErrorSeverity.MEDIUM,
                strategy=HandlingStrategy.LOG_ONLY,
                retryable=False,
                user_message=self._user_message(
                    "An unexpected error occurred, check the logs for details", message
                ),
                technical_message=match_text or "Unknown error",
                suggested_actions=["Check the logs for details", "Contact support"],
                audit=audit,
            )

        return ErrorClassification(
            kind=rule.kind,
            severity=rule.severity,
            strategy=rule.strategy,
            retryable=rule.retryable,
            user_message=self._user_message(rule.user_message, message),
            technical_message=f"{rule.technical_message}: {match_text}",
            suggested_actions=list(rule.suggested_actions),
            retry_delay=rule.retry_delay,
            audit=audit,
        )

    def get_handling_advice(self, classification: ErrorClassification) -> HandlingAdvice:
        return HandlingAdvice(
            should_retry=classification.retryable
            and classification.strategy == HandlingStrategy.RETRY,
            retry_delay=KIND_RETRY_DELAYS.get(classification.kind, DEFAULT_ADVICE_DELAY),
            fallback_available=classification.strategy
            in (HandlingStrategy.FALLBACK, HandlingStrategy.RETRY),
            escalation_needed=classification.severity
            in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL),
        )

    def format_user_message(self, classification: ErrorClassification) -> str:
        """User message followed by numbered suggested actions."""
        lines = [classification.user_message]
        if classification.suggested_actions:
            lines.append("")
            lines.append("Suggested actions:")
            lines.extend(
                f"  {index}. {action}"
                for index, action in enumerate(classification.suggested_actions, start=1)
            )
        return "\n".join(lines)

    def _user_message(self, base: str, detail: str) -> str:
        detail = self.sanitizer.sanitize(detail.strip())
        if not detail:
            return base
        if len(detail) > MAX_DETAIL_CHARS:
            detail = detail[: MAX_DETAIL_CHARS - 3] + "..."
        return f"{base}: {detail}"


def _describe(error: BaseException | str) -> tuple[str | None, str, str | None]:
    """(exception type name, message, code) for an error or error string."""
    if isinstance(error, str):
        return None, error, None

    message = str(error)
    if not message and error.args:
        message = " ".join(str(arg) for arg in error.args)

    code = None
    for attribute in CODE_ATTRIBUTES:
        value = getattr(error, attribute, None)
        if isinstance(value, (int, str)) and not isinstance(value, bool) and value != "":
            code = str(value)
            break
    return type(error).__name__, message, code


_default_classifier: ErrorClassifier | None = None


def get_default_classifier() -> ErrorClassifier:
    global _default_classifier
    if _default_classifier is None:
        _default_classifier = ErrorClassifier()
    return _default_classifier


def classify(
    error: BaseException | str, context: dict[str, Any] | None = None
) -> ErrorClassification:
    """Classify ``error`` with the shared default classifier."""
    return get_default_classifier().classify(error, context)
