"""
Analysis Routes

SQL analysis, offline response recovery and error classification.
"""

import logging

from fastapi import APIRouter, HTTPException, status

from sql_analyzer.models.analysis import AnalysisRequest, CompositeResult
from sql_analyzer.models.api import AnalyzeRequest, ClassifyRequest, RecoverRequest
from sql_analyzer.models.classification import ErrorClassification
from sql_analyzer.models.errors import AdaptationError
from sql_analyzer.models.recovery import DecodeResult
from sql_analyzer.parsing.pipeline import recover_structured
from sql_analyzer.resilience.classifier import classify

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/analyze", response_model=CompositeResult)
async def analyze(request: AnalyzeRequest) -> CompositeResult:
    """
    Analyze SQL across the requested dimensions.

    Failed dimensions come back as default results; the request itself only
    fails for invalid dimension or mode selections.
    """
    from sql_analyzer.api.main import get_coordinator

    try:
        coordinator = get_coordinator()
    except RuntimeError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Analysis is unavailable: no LLM provider is configured",
        ) from exc

    analysis_request = AnalysisRequest(
        sql=request.sql,
        database_type=request.database_type,
        context=request.context,
    )
    return await coordinator.analyze(analysis_request, request.dimensions, request.mode)


@router.post("/recover", response_model=DecodeResult)
async def recover(request: RecoverRequest) -> DecodeResult:
    """Run raw model output through the local decode strategies (no repair call)."""
    try:
        return await recover_structured(request.content)
    except AdaptationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.message
        ) from exc


@router.post("/classify", response_model=ErrorClassification)
async def classify_error(request: ClassifyRequest) -> ErrorClassification:
    """Classify an error message; the response never contains unredacted detail."""
    text = f"{request.code} {request.message}" if request.code else request.message
    classification = classify(text, request.context)
    return classification.model_copy(
        update={
            "technical_message": classification.user_message,
            "audit": {"error_type": None, "code": request.code},
        }
    )
