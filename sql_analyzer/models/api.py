"""
API Request/Response Models

Pydantic models for the FastAPI endpoints.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sql_analyzer.models.analysis import AnalysisRequest, ExecutionMode


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="API version")
    timestamp: str = Field(..., description="ISO timestamp of the check")


class AnalyzeRequest(AnalysisRequest):
    """Analysis request with optional dimension and mode overrides."""

    dimensions: list[str] | None = Field(
        None, description="Dimensions to run (defaults to all)"
    )
    mode: ExecutionMode | None = Field(
        None, description="Execution mode override (defaults to configuration)"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "sql": "SELECT * FROM users WHERE email LIKE '%@example.com'",
                "database_type": "postgresql",
                "dimensions": ["performance", "security"],
                "mode": "parallel",
            }
        }
    )


class RecoverRequest(BaseModel):
    """Raw model output to run through the offline recovery pipeline."""

    content: str | dict[str, Any] = Field(..., description="Raw response text or envelope")


class ClassifyRequest(BaseModel):
    """Error message to classify."""

    message: str = Field(..., min_length=1, description="Error message")
    code: str | None = Field(None, description="Optional error code (errno name, HTTP status)")
    context: dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Error payload returned by exception handlers."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Sanitized, user-facing message")
    suggested_actions: list[str] = Field(default_factory=list)
    recoverable: bool = False
