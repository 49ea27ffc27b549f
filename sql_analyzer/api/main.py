"""
FastAPI Application

HTTP surface for the SQL analyzer with:
- Lifespan management for the coordinator and its LLM provider
- CORS middleware
- Exception handlers mapping analyzer errors to sanitized responses

Usage:
    uvicorn sql_analyzer.api.main:app --reload --port 8000
"""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sql_analyzer import __version__
from sql_analyzer.agents.coordinator import MultiAgentCoordinator
from sql_analyzer.api.routes import analyze, health
from sql_analyzer.config import get_settings
from sql_analyzer.models.api import ErrorResponse
from sql_analyzer.models.errors import AnalysisConfigError, AnalyzerError, ResilienceError

logger = logging.getLogger(__name__)

# Global state for long-lived components
app_state = {
    "coordinator": None,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the coordinator on startup and close its provider on shutdown."""
    logger.info("Starting SQL Analyzer API server...")
    try:
        try:
            app_state["coordinator"] = MultiAgentCoordinator.from_settings(get_settings())
            logger.info("Coordinator initialized")
        except (ValueError, AnalyzerError) as e:
            # Recovery and classification endpoints still work without an LLM.
            logger.warning(f"Coordinator unavailable: {e}")
            app_state["coordinator"] = None

        yield

    finally:
        logger.info("Shutting down SQL Analyzer API server...")
        coordinator = app_state["coordinator"]
        if coordinator is not None:
            try:
                await coordinator.aclose()
                logger.info("LLM provider closed")
            except Exception as e:
                logger.error(f"Error closing LLM provider: {e}")
        app_state["coordinator"] = None


app = FastAPI(
    title="SQL Analyzer API",
    description="LLM-backed SQL analysis with resilient response recovery",
    version=__version__,
    lifespan=lifespan,
)

cors_origins_env = os.getenv("CORS_ORIGINS", "")
cors_origins = (
    [origin.strip() for origin in cors_origins_env.split(",") if origin.strip()]
    if cors_origins_env
    else ["http://localhost:3000"]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(ResilienceError)
async def resilience_error_handler(request: Request, exc: ResilienceError) -> JSONResponse:
    """Upstream failure after retries: show the sanitized message only."""
    logger.error(
        "Resilient operation failed",
        extra={
            "operation": exc.record.name,
            "kind": exc.classification.kind.value,
            "error": exc.technical_message,
        },
    )
    payload = ErrorResponse(
        error=exc.classification.kind.value,
        message=exc.user_message,
        suggested_actions=list(exc.classification.suggested_actions),
        recoverable=exc.recoverable,
    )
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=payload.model_dump())


@app.exception_handler(AnalysisConfigError)
async def config_error_handler(request: Request, exc: AnalysisConfigError) -> JSONResponse:
    payload = ErrorResponse(error="invalid_analysis_request", message=exc.message)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=payload.model_dump())


@app.exception_handler(AnalyzerError)
async def analyzer_error_handler(request: Request, exc: AnalyzerError) -> JSONResponse:
    """Handle analyzer errors with context."""
    logger.error(
        f"Analyzer error: {exc}",
        extra={"component": exc.component, "recoverable": exc.recoverable},
    )
    payload = ErrorResponse(
        error="analyzer_error",
        message=exc.message,
        recoverable=exc.recoverable,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload.model_dump()
    )


# Include routers
app.include_router(health.router, prefix="/api/v1", tags=["health"])
app.include_router(analyze.router, prefix="/api/v1", tags=["analysis"])


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "name": "SQL Analyzer API",
        "version": __version__,
        "docs": "/docs",
    }


def get_coordinator() -> MultiAgentCoordinator:
    """Get the initialized coordinator instance."""
    if app_state["coordinator"] is None:
        raise RuntimeError("Coordinator not initialized")
    return app_state["coordinator"]
