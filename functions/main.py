"""Request entry points for the Landscaping Quote Pipeline.

Provides transport-independent handlers for:
- Pricing a free-text quote request
- Pipeline health checks

serve_local.py exposes them over HTTP.
"""

from typing import Dict, Any, Optional

import structlog

from config.settings import settings
from config.errors import QuoteError, ErrorCode
from pipeline.factory import PipelineFactory, describe_pipeline
from pipeline.orchestrator import PipelineOrchestrator
from services.category_splitter import CategorySplitter
from validators.quote_request_validator import request_summary, validate_quote_request

logger = structlog.get_logger()

_pipeline: Optional[PipelineOrchestrator] = None

# ============================================================================
# Helper Functions
# ============================================================================


def success_response(data: Dict[str, Any]) -> Dict[str, Any]:
    """Build success response."""
    return {"success": True, "data": data}


def error_response(code: str, message: str, details: Dict[str, Any] = None) -> Dict[str, Any]:
    """Build error response."""
    return {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": details or {}
        }
    }


def get_pipeline() -> PipelineOrchestrator:
    """Get the shared pipeline built from settings (lazy initialization)."""
    global _pipeline
    if _pipeline is None:
        _pipeline = PipelineFactory.from_settings(settings)
    return _pipeline


def get_splitter() -> CategorySplitter:
    """Build a category splitter (per request; the LLM client is loop-bound)."""
    return CategorySplitter()


def reset_pipeline() -> None:
    """Drop the cached pipeline (used by tests)."""
    global _pipeline
    _pipeline = None


# ============================================================================
# Handlers
# ============================================================================


async def handle_quote_request(
    payload: Any,
    pipeline: Optional[PipelineOrchestrator] = None,
    splitter: Optional[CategorySplitter] = None
) -> Dict[str, Any]:
    """Price a quote request.

    Request body:
        message: Free-text customer message (required).
        segments: Optional [{segment, categoryHint}] list from an upstream classifier.
        tenantId: Optional pricing tenant.
        classify: Run the category splitter when no segments are given.
        debug: Include the stage trace in the response.

    Returns:
        success_response with the PipelineResult contract, or error_response
        for an invalid request. Clarifications are successful responses whose
        data has clarificationNeeded = true.
    """
    validation = validate_quote_request(payload)
    if not validation.is_valid:
        return error_response(
            ErrorCode.INVALID_REQUEST,
            "Invalid quote request",
            {"errors": validation.errors},
        )

    request = validation.parsed
    logger.info("quote_request_received", **request_summary(request))

    hints = request.segments
    if hints is None and request.classify and request.message.strip():
        split = await (splitter or get_splitter()).split_and_categorize(request.message)
        hints = split.to_hints() or None

    try:
        result = await (pipeline or get_pipeline()).process(
            request.message,
            category_hints=hints,
            tenant_id=request.tenant_id,
        )
    except QuoteError as e:
        logger.error("quote_request_failed", code=e.code, error=e.message)
        return error_response(e.code, e.message, e.details)

    return success_response(result.to_response(include_debug=request.debug or settings.pipeline_debug))


async def handle_health(pipeline: Optional[PipelineOrchestrator] = None) -> Dict[str, Any]:
    """Run the pipeline health check."""
    try:
        orchestrator = pipeline or get_pipeline()
    except QuoteError as e:
        return error_response(e.code, e.message, e.details)

    health = await orchestrator.health_check()
    if not health["healthy"]:
        return error_response(
            ErrorCode.PIPELINE_FAILED,
            "Pipeline health check failed",
            {**health, **describe_pipeline(orchestrator)},
        )
    return success_response({**health, **describe_pipeline(orchestrator)})
