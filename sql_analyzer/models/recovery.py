"""
Response Recovery Models

Pydantic models produced by the response-recovery pipeline: the adapted
response envelope, decode results, and field validation issues.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

ResponseType = Literal[
    "string",
    "dict",
    "openai",
    "anthropic",
    "langchain",
    "llm_response",
    "object",
]


class DecodeStrategy(str, Enum):
    """Decoding attempt that produced a result, in escalation order."""

    DIRECT = "direct"
    CLEANED = "cleaned"
    REPAIRED_CHARS = "repaired_chars"


class ResponseMetadata(BaseModel):
    """How a raw provider response was interpreted."""

    response_type: ResponseType = Field(..., description="Detected response envelope shape")
    confidence: float = Field(
        ..., ge=0.0, le=1.0, description="Confidence that the right text field was found"
    )
    raw_structure_summary: dict[str, Any] = Field(
        default_factory=dict,
        description="Type name, constructor and top-level keys of the raw response",
    )

    model_config = ConfigDict(frozen=True)


class AdaptedResponse(BaseModel):
    """Provider-agnostic text extracted from a raw response."""

    text: str = Field(..., description="Text content of the response")
    metadata: ResponseMetadata

    model_config = ConfigDict(frozen=True)


class ValidationIssue(BaseModel):
    """A decoded field that was outside its declared domain and got coerced."""

    field: str = Field(..., description="Dotted path of the field (e.g. 'metrics.score')")
    expected_range: tuple[float, float] = Field(..., description="Inclusive (low, high) bounds")
    actual_value: Any = Field(None, description="Value found in the decoded data")
    coerced_value: float = Field(..., description="Value written in its place")


class DecodeResult(BaseModel):
    """
    Outcome of decoding one response.

    A failed result is not an error condition by itself: it tells the caller
    to try the repairer or fall back to a default.
    """

    success: bool
    data: dict[str, Any] | None = None
    strategy: DecodeStrategy | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    error: str | None = None
    issues: list[ValidationIssue] = Field(default_factory=list)
    repaired: bool = Field(
        default=False, description="Data came back through the repair call"
    )
    attempted: list[DecodeStrategy] = Field(
        default_factory=list, description="Strategies tried, in order"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": True,
                "data": {"score": 85, "confidence": 0.9, "issues": []},
                "strategy": "cleaned",
                "confidence": 0.88,
                "error": None,
                "issues": [],
                "repaired": False,
                "attempted": ["direct", "cleaned"],
            }
        }
    )

    @classmethod
    def failure(
        cls, error: str, attempted: list[DecodeStrategy] | None = None
    ) -> "DecodeResult":
        """Build a failed result."""
        return cls(success=False, error=error, attempted=list(attempted or []))
