"""
Health Check Routes

Liveness, readiness and resilience counters.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from sql_analyzer import __version__
from sql_analyzer.models.api import HealthResponse
from sql_analyzer.resilience.circuit_breaker import CircuitState
from sql_analyzer.resilience.registry import get_default_registry

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health() -> HealthResponse:
    """
    Basic liveness check.

    Returns 200 OK if the service is running.
    """
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now(UTC).isoformat(),
    )


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness() -> JSONResponse:
    """
    Readiness check.

    Ready when the coordinator is initialized and its shared circuit breaker
    is not open. Returns 503 otherwise.
    """
    from sql_analyzer.api.main import app_state

    checks: dict[str, bool] = {}
    coordinator = app_state["coordinator"]
    checks["coordinator"] = coordinator is not None

    if coordinator is not None:
        breaker = coordinator.executor.registry.breakers.get(
            coordinator.config.circuit_breaker_key
        )
        checks["llm_circuit"] = breaker is None or breaker.state != CircuitState.OPEN

    ready = all(checks.values())
    if not ready:
        logger.warning("Readiness check failed", extra={"checks": checks})
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if ready else "not_ready", "checks": checks},
    )


@router.get("/stats")
async def stats() -> dict[str, Any]:
    """Operation counters and circuit breaker states."""
    from sql_analyzer.api.main import app_state

    coordinator = app_state["coordinator"]
    registry = coordinator.executor.registry if coordinator is not None else get_default_registry()
    return registry.stats()
