"""
SQL Analyzer Models Module

Pydantic models for type-safe data validation throughout the application.

Available Models:
    Recovery Models:
        - AdaptedResponse / ResponseMetadata: Provider-agnostic response text
        - DecodeResult / DecodeStrategy: Outcome of structured decoding
        - ValidationIssue: Field coerced into its declared range

    Classification Models:
        - ErrorClassification: kind, severity, strategy, retryability
        - HandlingAdvice: Retry/fallback/escalation summary

    Operation Models:
        - OperationRecord / OperationStatus: Resilient operation lifecycle

    Analysis Models:
        - AnalysisRequest, ToolResult, CompositeResult
        - PerformanceAnalysis, SecurityAnalysis, StandardsAnalysis

    Errors:
        - AnalyzerError and subclasses

Usage:
    from sql_analyzer.models import DecodeResult, ErrorClassification
    from sql_analyzer.models.errors import ResilienceError
"""

from sql_analyzer.models.analysis import (
    AnalysisMetadata,
    AnalysisRequest,
    CompositeResult,
    DimensionAnalysis,
    ExecutionMode,
    PerformanceAnalysis,
    SecurityAnalysis,
    StandardsAnalysis,
    ToolResult,
)
from sql_analyzer.models.classification import (
    ErrorClassification,
    ErrorKind,
    ErrorSeverity,
    HandlingAdvice,
    HandlingStrategy,
)
from sql_analyzer.models.errors import (
    AdaptationError,
    AnalysisConfigError,
    AnalyzerError,
    CircuitOpenError,
    RepairError,
    ResilienceError,
    ResponseDecodeError,
)
from sql_analyzer.models.operation import OperationRecord, OperationStatus
from sql_analyzer.models.recovery import (
    AdaptedResponse,
    DecodeResult,
    DecodeStrategy,
    ResponseMetadata,
    ValidationIssue,
)

__all__ = [
    # Recovery
    "AdaptedResponse",
    "DecodeResult",
    "DecodeStrategy",
    "ResponseMetadata",
    "ValidationIssue",
    # Classification
    "ErrorClassification",
    "ErrorKind",
    "ErrorSeverity",
    "HandlingAdvice",
    "HandlingStrategy",
    # Operations
    "OperationRecord",
    "OperationStatus",
    # Analysis
    "AnalysisMetadata",
    "AnalysisRequest",
    "CompositeResult",
    "DimensionAnalysis",
    "ExecutionMode",
    "PerformanceAnalysis",
    "SecurityAnalysis",
    "StandardsAnalysis",
    "ToolResult",
    # Errors
    "AdaptationError",
    "AnalysisConfigError",
    "AnalyzerError",
    "CircuitOpenError",
    "RepairError",
    "ResilienceError",
    "ResponseDecodeError",
]
