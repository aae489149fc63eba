"""Quote request parsing and validation.

Deserializes the JSON body of a quote request into a typed QuoteRequest.
An empty message is a valid request: the pipeline answers it with a
clarification question rather than an error.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator
import structlog

from models.services import CategoryHint

logger = structlog.get_logger(__name__)

MAX_MESSAGE_LENGTH = 5000
MAX_SEGMENTS = 25


class QuoteRequest(BaseModel):
    """Body of a quote request."""

    message: str = Field(max_length=MAX_MESSAGE_LENGTH, description="Free-text customer message")
    segments: Optional[List[CategoryHint]] = Field(
        default=None,
        max_length=MAX_SEGMENTS,
        description="Pre-split segments with category hints"
    )
    tenant_id: Optional[str] = Field(default=None, alias="tenantId", description="Pricing tenant")
    classify: bool = Field(default=False, description="Run the category splitter before detection")
    debug: bool = Field(default=False, description="Include the stage trace in the response")

    class Config:
        populate_by_name = True

    @field_validator("tenant_id")
    @classmethod
    def tenant_id_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("tenantId must not be blank")
        return value.strip() if value else value


@dataclass
class RequestValidationResult:
    """Result of quote request validation."""
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    parsed: Optional[QuoteRequest] = None


def validate_quote_request(data: Any) -> RequestValidationResult:
    """Validate a quote request body.

    Args:
        data: Decoded JSON body.

    Returns:
        RequestValidationResult with is_valid, errors and the parsed request.
    """
    if not isinstance(data, dict):
        return RequestValidationResult(is_valid=False, errors=["Request body must be a JSON object"])

    if "message" not in data:
        return RequestValidationResult(is_valid=False, errors=["message: Field required"])

    try:
        parsed = QuoteRequest.model_validate(data)
    except PydanticValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        logger.warning("quote_request_invalid", errors=errors)
        return RequestValidationResult(is_valid=False, errors=errors)

    return RequestValidationResult(is_valid=True, errors=[], parsed=parsed)


def request_summary(request: QuoteRequest) -> Dict[str, Any]:
    """Loggable summary of a request (no message text)."""
    return {
        "message_length": len(request.message),
        "segment_count": len(request.segments or []),
        "tenant_id": request.tenant_id,
        "classify": request.classify,
    }
