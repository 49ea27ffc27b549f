"""
Operation Tracking Models

Lifecycle record for one unit of work run by the resilient executor.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from sql_analyzer.models.classification import ErrorClassification


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OperationStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"


TERMINAL_STATUSES = frozenset(
    {
        OperationStatus.COMPLETED,
        OperationStatus.FAILED,
        OperationStatus.CANCELLED,
        OperationStatus.TIMEOUT,
    }
)


class OperationRecord(BaseModel):
    """State of one submitted operation: PENDING -> RUNNING -> terminal."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str
    status: OperationStatus = OperationStatus.PENDING
    attempts: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    classification: ErrorClassification | None = None
    used_fallback: bool = False

    model_config = ConfigDict(frozen=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def duration_ms(self) -> float | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds() * 1000

    def mark_running(self) -> None:
        self.status = OperationStatus.RUNNING
        self.started_at = _utcnow()

    def mark_finished(self, status: OperationStatus, error: str | None = None) -> None:
        """Move to a terminal status. Terminal records are never reopened."""
        if self.is_terminal:
            return
        self.status = status
        self.completed_at = _utcnow()
        if error is not None:
            self.error = error
