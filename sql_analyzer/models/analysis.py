"""
Analysis Models

Request, per-dimension output schemas, tool results and the composite result
returned by the multi-agent coordinator.
"""

from enum import Enum
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from sql_analyzer.models.classification import ErrorClassification
from sql_analyzer.models.recovery import DecodeStrategy


class ExecutionMode(str, Enum):
    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"


class AnalysisRequest(BaseModel):
    """SQL text and context shared by every analysis tool."""

    sql: str = Field(..., min_length=1, description="SQL text to analyze")
    database_type: Literal["postgresql", "mysql", "clickhouse", "sqlite", "generic"] = Field(
        default="generic", description="Target database dialect"
    )
    context: dict[str, Any] = Field(
        default_factory=dict, description="Free-form context passed to prompts"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "sql": "SELECT * FROM orders WHERE customer_id = 42",
                "database_type": "postgresql",
                "context": {},
            }
        }
    )

    @field_validator("sql")
    @classmethod
    def validate_sql(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("sql must not be blank")
        return v


# ============================================================================
# Dimension Output Schemas
# ============================================================================


class DimensionAnalysis(BaseModel):
    """
    Common shape of a dimension's structured output.

    Validation is lenient: known aliases are folded into canonical fields,
    missing lists default to empty, and unknown keys are kept.
    """

    summary: str = ""
    score: float | None = Field(None, ge=0.0, le=100.0)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    recommendations: list[Any] = Field(default_factory=list)
    metrics: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")

    # canonical field -> accepted aliases
    FIELD_ALIASES: ClassVar[dict[str, tuple[str, ...]]] = {
        "recommendations": ("suggestions", "improvements", "fixes"),
        "summary": ("overview", "analysis", "description"),
    }
    LIST_FIELDS: ClassVar[tuple[str, ...]] = ("recommendations",)

    @model_validator(mode="before")
    @classmethod
    def normalize_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        normalized = dict(data)
        for canonical, aliases in cls.FIELD_ALIASES.items():
            if normalized.get(canonical) in (None, "", []):
                for alias in aliases:
                    if normalized.get(alias) not in (None, "", []):
                        normalized[canonical] = normalized.pop(alias)
                        break
        for name in cls.LIST_FIELDS:
            value = normalized.get(name)
            if value is None:
                normalized[name] = []
            elif not isinstance(value, list):
                normalized[name] = [value]
        if not isinstance(normalized.get("metrics", {}), dict):
            normalized["metrics"] = {"value": normalized["metrics"]}
        if not isinstance(normalized.get("summary", ""), str):
            normalized["summary"] = str(normalized["summary"])
        if normalized.get("confidence") is None:
            normalized["confidence"] = cls._estimate_confidence(normalized)
        return normalized

    @classmethod
    def _estimate_confidence(cls, data: dict[str, Any]) -> float:
        """Estimate confidence from how complete the output is (0.3 floor)."""
        populated = sum(1 for name in ("summary", *cls.LIST_FIELDS) if data.get(name))
        return min(0.9, 0.3 + 0.1 * populated)


class PerformanceAnalysis(DimensionAnalysis):
    issues: list[Any] = Field(default_factory=list)

    FIELD_ALIASES = {
        **DimensionAnalysis.FIELD_ALIASES,
        "issues": ("problems", "bottlenecks", "findings"),
    }
    LIST_FIELDS = ("issues", "recommendations")


class SecurityAnalysis(DimensionAnalysis):
    vulnerabilities: list[Any] = Field(default_factory=list)
    risk_level: str | None = None

    FIELD_ALIASES = {
        **DimensionAnalysis.FIELD_ALIASES,
        "vulnerabilities": ("issues", "problems", "findings", "risks"),
    }
    LIST_FIELDS = ("vulnerabilities", "recommendations")


class StandardsAnalysis(DimensionAnalysis):
    violations: list[Any] = Field(default_factory=list)

    FIELD_ALIASES = {
        **DimensionAnalysis.FIELD_ALIASES,
        "violations": ("issues", "problems", "findings"),
    }
    LIST_FIELDS = ("violations", "recommendations")


# ============================================================================
# Tool and Composite Results
# ============================================================================


class ToolResult(BaseModel):
    """Outcome of one analysis tool, real or default."""

    tool: str
    success: bool
    data: dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    strategy: DecodeStrategy | None = None
    repaired: bool = False
    is_default: bool = False
    error: str | None = None
    classification: ErrorClassification | None = None
    duration_ms: float | None = None
    attempts: int = 0


class AnalysisMetadata(BaseModel):
    """Execution details of one composite analysis."""

    request_id: str
    execution_mode: ExecutionMode
    duration_ms: float | None = None
    llm_calls: int = 0
    tool_calls: int = 0
    failed_tools: list[str] = Field(default_factory=list)
    timed_out: bool = False
    cached: bool = False
    statement_type: str | None = None


class CompositeResult(BaseModel):
    """
    Aggregated result of one analysis request.

    ``per_tool_results`` always lists every known dimension: ``None`` for a
    disabled one, a default ToolResult for one that failed.
    """

    per_tool_results: dict[str, ToolResult | None]
    aggregate_confidence: float = Field(..., ge=0.0, le=1.0)
    enabled_dimensions: list[str]
    metadata: AnalysisMetadata

    @property
    def successful_tools(self) -> list[str]:
        return [
            name
            for name, result in self.per_tool_results.items()
            if result is not None and result.success
        ]
