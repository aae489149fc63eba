"""Pipeline stage output models.

Pydantic models for per-stage results, the orchestrator's debug trace,
and the final PipelineResult returned to callers.
"""

from enum import Enum
from typing import Dict, Any, Optional, List
from pydantic import BaseModel, Field

from models.services import RawService, ValidatedService, MappedService, PricedService


class PipelineState(str, Enum):
    """Orchestrator states. ERROR is absorbing."""

    IDLE = "idle"
    DETECTING = "detecting"
    CHECKING = "checking"
    MAPPING = "mapping"
    CALCULATING = "calculating"
    DONE = "done"
    ERROR = "error"


class StageName(str, Enum):
    """Names of the four swappable pipeline stages."""

    DETECT = "detect"
    CHECK = "check"
    MAP = "map"
    CALC = "calc"


# =============================================================================
# Stage results
# =============================================================================


class StepDebug(BaseModel):
    """Debug information produced by a single stage."""

    step: str = Field(description="Stage name")
    processing_time_ms: float = Field(
        default=0.0,
        alias="processingTimeMs",
        ge=0.0,
        description="Stage processing time in milliseconds"
    )
    intermediate_output: Optional[Dict[str, Any]] = Field(
        default=None,
        alias="intermediateOutput",
        description="Stage-specific summary for diagnostics"
    )
    info: List[str] = Field(default_factory=list, description="Informational notes")
    warnings: List[str] = Field(default_factory=list, description="Non-fatal warnings")

    class Config:
        populate_by_name = True


class StepResult(BaseModel):
    """Uniform envelope returned by every stage."""

    success: bool = Field(description="Whether the stage completed")
    data: Optional[Any] = Field(default=None, description="Stage output model")
    debug: StepDebug = Field(description="Stage debug information")
    error: Optional[str] = Field(default=None, description="Error message if failed")
    error_code: Optional[str] = Field(
        default=None,
        alias="errorCode",
        description="ErrorCode value if failed"
    )

    class Config:
        populate_by_name = True


class InputAnalysis(BaseModel):
    """Summary of the detector's view of the input."""

    has_multiple_services: bool = Field(default=False, alias="hasMultipleServices")
    has_quantities: bool = Field(default=False, alias="hasQuantities")
    has_units: bool = Field(default=False, alias="hasUnits")
    overall_confidence: float = Field(default=0.0, alias="overallConfidence", ge=0.0, le=1.0)

    class Config:
        populate_by_name = True


class DetectionResult(BaseModel):
    """Detector output."""

    services: List[RawService] = Field(default_factory=list)
    unmapped_text: List[str] = Field(
        default_factory=list,
        alias="unmappedText",
        description="Leftover words not consumed by any extraction pattern"
    )
    input_analysis: InputAnalysis = Field(
        default_factory=InputAnalysis,
        alias="inputAnalysis"
    )

    class Config:
        populate_by_name = True


class UnmappedService(BaseModel):
    """A service that could not be resolved, with suggestions for the caller."""

    name: str
    original_text: str = Field(default="", alias="originalText")
    suggestions: List[str] = Field(default_factory=list)

    class Config:
        populate_by_name = True


class ValidationResult(BaseModel):
    """Checker output."""

    complete_services: List[ValidatedService] = Field(default_factory=list, alias="completeServices")
    incomplete_services: List[ValidatedService] = Field(default_factory=list, alias="incompleteServices")
    clarification_questions: List[str] = Field(default_factory=list, alias="clarificationQuestions")
    needs_clarification: bool = Field(default=False, alias="needsClarification")
    ready_for_mapping: bool = Field(default=False, alias="readyForMapping")
    overall_confidence: float = Field(default=0.0, alias="overallConfidence", ge=0.0, le=1.0)
    unrecognized_services: List[UnmappedService] = Field(
        default_factory=list,
        alias="unrecognizedServices",
        description="Low-confidence services that match nothing in the catalog"
    )

    class Config:
        populate_by_name = True

    @property
    def all_services(self) -> List[ValidatedService]:
        return self.complete_services + self.incomplete_services


class UnitMismatch(BaseModel):
    """A resolved service whose requested unit the catalog entry cannot price."""

    name: str
    canonical_name: str = Field(alias="canonicalName")
    quantity: float
    unit: str
    expected_unit: str = Field(alias="expectedUnit")
    question: str

    class Config:
        populate_by_name = True


class MappingResult(BaseModel):
    """Mapper output."""

    mapped_services: List[MappedService] = Field(default_factory=list, alias="mappedServices")
    unmapped_services: List[UnmappedService] = Field(default_factory=list, alias="unmappedServices")
    special_services: List[MappedService] = Field(default_factory=list, alias="specialServices")
    mismatched_services: List[UnitMismatch] = Field(default_factory=list, alias="mismatchedServices")
    mapping_confidence: float = Field(default=0.0, alias="mappingConfidence", ge=0.0, le=1.0)

    class Config:
        populate_by_name = True


class QuoteTotals(BaseModel):
    """Aggregated totals for a quote."""

    total_cost: float = Field(default=0.0, alias="totalCost")
    total_labor_hours: float = Field(default=0.0, alias="totalLaborHours")
    service_count: int = Field(default=0, alias="serviceCount", ge=0)

    class Config:
        populate_by_name = True


class PricingResult(BaseModel):
    """Calculator output."""

    services: List[PricedService] = Field(default_factory=list)
    totals: QuoteTotals = Field(default_factory=QuoteTotals)
    calculation_time_ms: float = Field(default=0.0, alias="calculationTimeMs")
    special_calculations: Dict[str, Any] = Field(default_factory=dict, alias="specialCalculations")
    pricing_source: str = Field(default="local_table", alias="pricingSource")

    class Config:
        populate_by_name = True


# =============================================================================
# Orchestrator result
# =============================================================================


class PipelineOptions(BaseModel):
    """Static orchestrator options."""

    enable_debug: bool = Field(default=True, alias="enableDebug")
    enable_timings: bool = Field(default=True, alias="enableTimings")
    early_return: bool = Field(default=True, alias="earlyReturn")
    log_intermediate_steps: bool = Field(default=False, alias="logIntermediateSteps")

    class Config:
        populate_by_name = True
        frozen = True


class TraceEntry(BaseModel):
    """One entry of the append-only debug trace."""

    step: str
    success: bool
    processing_time_ms: float = Field(default=0.0, alias="processingTimeMs")
    intermediate_output: Optional[Dict[str, Any]] = Field(default=None, alias="intermediateOutput")
    info: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    class Config:
        populate_by_name = True
        frozen = True


class PipelineDebug(BaseModel):
    """Debug trace assembled by the orchestrator."""

    trace: List[TraceEntry] = Field(default_factory=list)
    state_history: List[str] = Field(default_factory=list, alias="stateHistory")
    total_time_ms: float = Field(default=0.0, alias="totalTimeMs")
    early_return_reason: Optional[str] = Field(default=None, alias="earlyReturnReason")

    class Config:
        populate_by_name = True
        frozen = True


class PipelineErrorInfo(BaseModel):
    """Structured error for a fatal stage failure."""

    code: str
    message: str
    stage: Optional[str] = None
    retryable: bool = False
    details: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        frozen = True


class QuoteResult(BaseModel):
    """Priced quote returned when no clarification is needed."""

    services: List[PricedService] = Field(default_factory=list)
    totals: QuoteTotals = Field(default_factory=QuoteTotals)
    special_calculations: Dict[str, Any] = Field(default_factory=dict, alias="specialCalculations")

    class Config:
        populate_by_name = True


class PipelineResult(BaseModel):
    """Final result of one pipeline invocation. Never mutated after return."""

    success: bool = Field(description="True when a priced quote was produced")
    state: str = Field(description="Final orchestrator state (done or error)")
    clarification_needed: bool = Field(default=False, alias="clarificationNeeded")
    clarification_questions: List[str] = Field(default_factory=list, alias="clarificationQuestions")
    final_result: Optional[QuoteResult] = Field(default=None, alias="finalResult")
    stage_outputs: Dict[str, Any] = Field(
        default_factory=dict,
        alias="stageOutputs",
        description="Per-stage output models keyed by stage name"
    )
    unmapped_services: List[UnmappedService] = Field(default_factory=list, alias="unmappedServices")
    error_kind: Optional[str] = Field(
        default=None,
        alias="errorKind",
        description="ErrorCode naming why no quote was produced (None on success)"
    )
    debug: PipelineDebug = Field(default_factory=PipelineDebug)
    error: Optional[str] = Field(default=None, description="Error message for a fatal stage")
    error_info: Optional[PipelineErrorInfo] = Field(default=None, alias="errorInfo")

    class Config:
        populate_by_name = True
        frozen = True

    @property
    def services(self) -> List[PricedService]:
        return self.final_result.services if self.final_result else []

    def to_response(self, include_debug: bool = True) -> Dict[str, Any]:
        """Render the caller-facing output contract (camelCase keys)."""
        exclude = set() if include_debug else {"debug", "stage_outputs"}
        return self.model_dump(mode="json", by_alias=True, exclude=exclude)
