"""
Error Classification Models

Enumerations and pydantic models describing how a failure should be handled.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorKind(str, Enum):
    """Failure category assigned by the error classifier."""

    SYSTEM_ERROR = "system_error"
    MEMORY_ERROR = "memory_error"
    FILE_SYSTEM_ERROR = "file_system_error"
    NETWORK_ERROR = "network_error"
    LLM_SERVICE_ERROR = "llm_service_error"
    RATE_LIMIT_ERROR = "rate_limit_error"
    CONFIG_ERROR = "config_error"
    RESPONSE_FORMAT_ERROR = "response_format_error"
    VALIDATION_ERROR = "validation_error"
    DATABASE_ERROR = "database_error"
    DEPENDENCY_ERROR = "dependency_error"
    DATA_NOT_FOUND = "data_not_found"
    PERMISSION_DENIED = "permission_denied"
    API_ERROR = "api_error"
    BUSINESS_LOGIC_ERROR = "business_logic_error"
    CIRCUIT_OPEN = "circuit_open"


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class HandlingStrategy(str, Enum):
    """What the resilience layer should do with a classified failure."""

    IGNORE = "ignore"
    LOG_ONLY = "log_only"
    RETRY = "retry"
    FALLBACK = "fallback"
    FAIL_FAST = "fail_fast"
    USER_INTERVENTION = "user_intervention"


class ErrorClassification(BaseModel):
    """
    Classification of one error.

    ``user_message`` is sanitized and safe to show. ``technical_message`` and
    ``audit`` keep the raw detail for logs.
    """

    kind: ErrorKind
    severity: ErrorSeverity
    strategy: HandlingStrategy
    retryable: bool
    user_message: str
    technical_message: str
    suggested_actions: list[str] = Field(default_factory=list)
    retry_delay: float | None = Field(
        None, ge=0.0, description="Minimum delay in seconds before retrying this kind"
    )
    audit: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class HandlingAdvice(BaseModel):
    """Actionable summary derived from a classification."""

    should_retry: bool
    retry_delay: float = Field(..., ge=0.0)
    fallback_available: bool
    escalation_needed: bool
