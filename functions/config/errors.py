"""Quote pipeline error handling.

Custom exceptions and error codes for the text-to-quote pipeline.
"""

from typing import Optional, Dict, Any


# Error Codes
class ErrorCode:
    """Error code constants."""

    # Request Errors (1xxx)
    INVALID_REQUEST = "INVALID_REQUEST"

    # Input / Detection Errors (2xxx)
    INPUT_EMPTY = "INPUT_EMPTY"
    NO_SERVICES_DETECTED = "NO_SERVICES_DETECTED"

    # Completeness / Mapping Outcomes (3xxx)
    INCOMPLETE_SERVICE = "INCOMPLETE_SERVICE"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    UNMAPPABLE_SERVICE = "UNMAPPABLE_SERVICE"
    UNIT_MISMATCH = "UNIT_MISMATCH"

    # Pricing Errors (4xxx)
    CALCULATION_ERROR = "CALCULATION_ERROR"
    PRICING_ORACLE_FAILURE = "PRICING_ORACLE_FAILURE"
    PRICING_ORACLE_TIMEOUT = "PRICING_ORACLE_TIMEOUT"

    # Pipeline Errors (5xxx)
    STAGE_FAILED = "STAGE_FAILED"
    PIPELINE_FAILED = "PIPELINE_FAILED"
    INVALID_PIPELINE_CONFIG = "INVALID_PIPELINE_CONFIG"

    # Classifier / LLM Errors (6xxx)
    CLASSIFIER_ERROR = "CLASSIFIER_ERROR"
    LLM_ERROR = "LLM_ERROR"
    LLM_RATE_LIMIT = "LLM_RATE_LIMIT"
    LLM_CONTEXT_TOO_LONG = "LLM_CONTEXT_TOO_LONG"


class QuoteError(Exception):
    """Base exception for quote pipeline errors.

    Provides structured error information for API responses.

    Attributes:
        code: Error code from ErrorCode constants
        message: Human-readable error message
        details: Additional error context
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        """Initialize QuoteError.

        Args:
            code: Error code from ErrorCode constants
            message: Human-readable error message
            details: Additional error context
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for API response.

        Returns:
            Dictionary with code, message, and details.
        """
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class CalculationError(QuoteError):
    """Raised when mapped services violate the calculator's preconditions."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(
            code=ErrorCode.CALCULATION_ERROR,
            message=message,
            details=details
        )


class PricingOracleError(QuoteError):
    """External pricing oracle failure (network, timeout, invalid key)."""

    def __init__(
        self,
        code: str,
        message: str,
        tenant_id: Optional[str] = None,
        retryable: bool = True,
        details: Optional[Dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            details={**(details or {}), "tenant_id": tenant_id, "retryable": retryable}
        )
        self.tenant_id = tenant_id
        self.retryable = retryable


class PipelineConfigError(QuoteError):
    """Invalid factory or orchestrator configuration."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(
            code=ErrorCode.INVALID_PIPELINE_CONFIG,
            message=message,
            details=details
        )
