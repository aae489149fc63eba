"""Pipeline Orchestrator for the quote pipeline.

Drives one request through detect -> check -> map -> calc as a small state
machine (idle, detecting, checking, mapping, calculating, done, error).
Stage exceptions are converted into a failed step and a structured error;
"incomplete", "unmapped" and "unit mismatch" verdicts are ordinary data
that the orchestrator branches on and reports as PipelineResult.error_kind.

The orchestrator holds only its stages and static options. Everything a
request mutates lives in a per-call PipelineRun, so one instance can serve
concurrent requests.
"""

import inspect
import time
import uuid
from typing import Dict, Any, Callable, List, Optional

import structlog

from config.errors import ErrorCode, QuoteError
from models.services import CategoryHint
from models.pipeline_result import (
    DetectionResult,
    MappingResult,
    PipelineDebug,
    PipelineErrorInfo,
    PipelineOptions,
    PipelineResult,
    PipelineState,
    PricingResult,
    QuoteResult,
    StageName,
    StepResult,
    TraceEntry,
    UnmappedService,
    ValidationResult,
)
from pipeline.interfaces import (
    CompletenessChecker,
    PriceCalculator,
    ServiceDetector,
    ServiceMapper,
)
from pipeline.stages.checker import NO_SERVICES_QUESTION, primary_issue_kind, unmapped_question
from utils.stage_logger import (
    log_pipeline_start,
    log_pipeline_complete,
    log_pipeline_clarification,
    log_pipeline_failed,
    log_stage_start,
    log_stage_output,
    log_stage_error,
)

logger = structlog.get_logger()

HEALTH_CHECK_INPUT = "100 square feet of mulch"

STAGE_FAILURE_QUESTION = (
    "Sorry, we couldn't finish pricing your request. "
    "Could you rephrase it or try again in a moment?"
)

# Early-return reasons recorded in the debug trace
REASON_EMPTY_INPUT = "empty input"
REASON_NO_SERVICES = "no services detected"
REASON_CLARIFICATION = "clarification needed"
REASON_NOTHING_MAPPED = "no services could be mapped"
REASON_UNIT_MISMATCH = "unit does not match the catalog"
REASON_STAGE_FAILED = "stage failed"

STAGE_STATES = {
    StageName.DETECT: PipelineState.DETECTING,
    StageName.CHECK: PipelineState.CHECKING,
    StageName.MAP: PipelineState.MAPPING,
    StageName.CALC: PipelineState.CALCULATING,
}


class PipelineRun:
    """Mutable state of a single pipeline invocation."""

    def __init__(self, text: str, options: PipelineOptions):
        self.run_id = uuid.uuid4().hex[:12]
        self.text = text
        self.options = options
        self.state = PipelineState.IDLE
        self.state_history: List[str] = [PipelineState.IDLE.value]
        self.trace: List[TraceEntry] = []
        self.stage_outputs: Dict[str, Any] = {}
        self.completed_stages: List[str] = []
        self.error_info: Optional[PipelineErrorInfo] = None
        self._start_time = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        """Get elapsed time in milliseconds."""
        return round((time.perf_counter() - self._start_time) * 1000, 3)

    def transition(self, state: PipelineState) -> None:
        """Move to a new state. ERROR is absorbing."""
        if self.state == PipelineState.ERROR:
            return
        self.state = state
        self.state_history.append(state.value)

    def record(self, step: StepResult) -> None:
        """Append a stage's debug output to the trace."""
        debug = step.debug
        self.trace.append(TraceEntry(
            step=debug.step,
            success=step.success,
            processing_time_ms=debug.processing_time_ms if self.options.enable_timings else 0.0,
            intermediate_output=debug.intermediate_output,
            info=list(debug.info),
            warnings=list(debug.warnings),
            error=step.error,
        ))
        if step.success:
            self.completed_stages.append(debug.step)
            self.stage_outputs[debug.step] = step.data

    def skip(self, stage: StageName, reason: str) -> None:
        """Record a stage that was not run because its input is missing."""
        self.trace.append(TraceEntry(
            step=stage.value,
            success=False,
            warnings=[f"Skipped: {reason}"],
        ))

    def debug(self, early_return_reason: Optional[str] = None) -> PipelineDebug:
        return PipelineDebug(
            trace=list(self.trace) if self.options.enable_debug else [],
            state_history=list(self.state_history),
            total_time_ms=self.elapsed_ms if self.options.enable_timings else 0.0,
            early_return_reason=early_return_reason,
        )


class PipelineOrchestrator:
    """Orchestrates the four-stage quote pipeline.

    Flow:
    1. Detect candidate services in the text
    2. Check completeness; incomplete input returns clarification questions
    3. Map complete services to catalog entries
    4. Price mapped services

    With early_return (the default) the pipeline stops at the first
    clarification or failure. Without it, every stage that has input still
    runs so its output can be inspected.
    """

    def __init__(
        self,
        detector: ServiceDetector,
        checker: CompletenessChecker,
        mapper: ServiceMapper,
        calculator: PriceCalculator,
        options: Optional[PipelineOptions] = None
    ):
        """Initialize PipelineOrchestrator.

        Args:
            detector: Detector stage implementation.
            checker: Completeness checker stage implementation.
            mapper: Mapper stage implementation.
            calculator: Price calculator stage implementation.
            options: Static pipeline options.
        """
        self.detector = detector
        self.checker = checker
        self.mapper = mapper
        self.calculator = calculator
        self.options = options or PipelineOptions()

    @property
    def stages(self) -> Dict[str, Any]:
        return {
            StageName.DETECT.value: self.detector,
            StageName.CHECK.value: self.checker,
            StageName.MAP.value: self.mapper,
            StageName.CALC.value: self.calculator,
        }

    async def process(
        self,
        text: str,
        category_hints: Optional[List[CategoryHint]] = None,
        tenant_id: Optional[str] = None
    ) -> PipelineResult:
        """Run the pipeline for one customer message.

        Args:
            text: Free-text customer message.
            category_hints: Optional pre-split segments with category hints.
            tenant_id: Pricing tenant; the calculator default is used when omitted.

        Returns:
            PipelineResult with either a priced quote or clarification questions.
            Never raises for stage failures.
        """
        text = text or ""
        run = PipelineRun(text, self.options)
        verbose = self.options.log_intermediate_steps

        if verbose:
            log_pipeline_start(run.run_id, text, [stage.value for stage in STAGE_STATES])

        logger.info(
            "pipeline_started",
            run_id=run.run_id,
            input_length=len(text),
            hint_count=len(category_hints or []),
            early_return=self.options.early_return,
        )

        clarification_questions: List[str] = []
        clarification_reason: Optional[str] = None
        clarification_kind: Optional[str] = None

        # Detect
        detect_step = await self._run_stage(
            run, StageName.DETECT, lambda: self.detector.detect(text, category_hints)
        )
        if detect_step is None:
            return self._failed(run)
        detection: DetectionResult = detect_step.data

        if not detection.services:
            if not text.strip():
                reason, kind = REASON_EMPTY_INPUT, ErrorCode.INPUT_EMPTY
            else:
                reason, kind = REASON_NO_SERVICES, ErrorCode.NO_SERVICES_DETECTED
            if self.options.early_return:
                return self._clarification(run, [NO_SERVICES_QUESTION], reason, error_kind=kind)
            clarification_questions.append(NO_SERVICES_QUESTION)
            clarification_reason, clarification_kind = reason, kind

        # Check
        check_step = await self._run_stage(
            run, StageName.CHECK, lambda: self.checker.check(detection.services), len(detection.services)
        )
        if check_step is None:
            return self._failed(run)
        validation: ValidationResult = check_step.data
        unrecognized = validation.unrecognized_services

        if validation.needs_clarification:
            kind = primary_issue_kind(validation)
            if self.options.early_return:
                return self._clarification(
                    run, validation.clarification_questions, REASON_CLARIFICATION, unrecognized, kind
                )
            clarification_questions.extend(validation.clarification_questions)
            clarification_reason = clarification_reason or REASON_CLARIFICATION
            clarification_kind = clarification_kind or kind

        # Map
        services_to_map = validation.complete_services
        mapping: Optional[MappingResult] = None
        if services_to_map:
            map_step = await self._run_stage(
                run, StageName.MAP, lambda: self.mapper.map(services_to_map), len(services_to_map)
            )
            if map_step is None:
                return self._failed(run, unrecognized)
            mapping = map_step.data
        else:
            run.skip(StageName.MAP, "no complete services to map")

        unmapped: List[UnmappedService] = unrecognized + (mapping.unmapped_services if mapping else [])
        mismatched = mapping.mismatched_services if mapping else []

        if mismatched:
            questions = [mismatch.question for mismatch in mismatched]
            if mapping.unmapped_services:
                questions.extend(unmapped_questions(mapping.unmapped_services))
            if self.options.early_return:
                return self._clarification(
                    run, questions, REASON_UNIT_MISMATCH, unmapped, ErrorCode.UNIT_MISMATCH
                )
            clarification_questions.extend(questions)
            clarification_reason = clarification_reason or REASON_UNIT_MISMATCH
            clarification_kind = clarification_kind or ErrorCode.UNIT_MISMATCH
        elif mapping is not None and not mapping.mapped_services:
            questions = unmapped_questions(mapping.unmapped_services)
            if self.options.early_return:
                return self._clarification(
                    run, questions, REASON_NOTHING_MAPPED, unmapped, ErrorCode.UNMAPPABLE_SERVICE
                )
            clarification_questions.extend(questions)
            clarification_reason = clarification_reason or REASON_NOTHING_MAPPED
            clarification_kind = clarification_kind or ErrorCode.UNMAPPABLE_SERVICE

        # Calculate
        pricing: Optional[PricingResult] = None
        if mapping is not None and mapping.mapped_services:
            mapped_services = mapping.mapped_services
            calc_step = await self._run_stage(
                run,
                StageName.CALC,
                lambda: self.calculator.calculate(mapped_services, tenant_id),
                len(mapped_services),
            )
            if calc_step is None:
                return self._failed(run, unmapped)
            pricing = calc_step.data
        else:
            run.skip(StageName.CALC, "no mapped services to price")

        if clarification_questions:
            return self._clarification(
                run, _unique(clarification_questions), clarification_reason, unmapped, clarification_kind
            )

        run.transition(PipelineState.DONE)
        final_result = QuoteResult(
            services=pricing.services,
            totals=pricing.totals,
            special_calculations=pricing.special_calculations,
        )

        if verbose:
            log_pipeline_complete(
                run.run_id,
                run.completed_stages,
                run.elapsed_ms,
                pricing.totals.total_cost,
                pricing.totals.service_count,
            )

        logger.info(
            "pipeline_completed",
            run_id=run.run_id,
            duration_ms=run.elapsed_ms,
            total_cost=pricing.totals.total_cost,
            service_count=pricing.totals.service_count,
            unmapped_count=len(unmapped),
        )

        return PipelineResult(
            success=True,
            state=run.state.value,
            clarification_needed=False,
            final_result=final_result,
            stage_outputs=run.stage_outputs,
            unmapped_services=unmapped,
            debug=run.debug(),
        )

    async def health_check(self) -> Dict[str, Any]:
        """Run a known-good input through the pipeline."""
        started_at = time.perf_counter()
        result = await self.process(HEALTH_CHECK_INPUT)
        return {
            "healthy": result.success,
            "processing_time_ms": round((time.perf_counter() - started_at) * 1000, 3),
            "error": result.error,
        }

    async def _run_stage(
        self,
        run: PipelineRun,
        stage: StageName,
        call: Callable[[], Any],
        input_count: Optional[int] = None
    ) -> Optional[StepResult]:
        """Run one stage; on failure record it, move to ERROR and return None."""
        run.transition(STAGE_STATES[stage])
        verbose = self.options.log_intermediate_steps
        if verbose:
            log_stage_start(stage.value, run.run_id, input_count)

        started_at = time.perf_counter()
        try:
            step = call()
            if inspect.isawaitable(step):
                step = await step
        except QuoteError as e:
            self._stage_failed(run, stage, started_at, e.message, e.code, getattr(e, "retryable", False), e.details)
            return None
        except Exception as e:
            logger.exception("stage_exception", run_id=run.run_id, stage=stage.value)
            self._stage_failed(run, stage, started_at, str(e) or type(e).__name__, ErrorCode.STAGE_FAILED, False, {})
            return None

        if not step.success:
            run.record(step)
            self._stage_failed(
                run,
                stage,
                started_at,
                step.error or f"{stage.value} stage failed",
                step.error_code or ErrorCode.STAGE_FAILED,
                False,
                {},
                recorded=True,
            )
            return None

        run.record(step)
        if verbose:
            log_stage_output(
                stage.value,
                run.run_id,
                step.debug.intermediate_output,
                step.debug.processing_time_ms,
                step.debug.warnings,
            )

        logger.info(
            "stage_completed",
            run_id=run.run_id,
            step=stage.value,
            processing_time_ms=step.debug.processing_time_ms,
            warning_count=len(step.debug.warnings),
        )
        return step

    def _stage_failed(
        self,
        run: PipelineRun,
        stage: StageName,
        started_at: float,
        message: str,
        code: str,
        retryable: bool,
        details: Dict[str, Any],
        recorded: bool = False
    ) -> None:
        if not recorded:
            run.trace.append(TraceEntry(
                step=stage.value,
                success=False,
                processing_time_ms=(
                    round((time.perf_counter() - started_at) * 1000, 3)
                    if self.options.enable_timings else 0.0
                ),
                error=message,
            ))
        run.error_info = PipelineErrorInfo(
            code=code,
            message=message,
            stage=stage.value,
            retryable=retryable,
            details=details or {},
        )
        run.transition(PipelineState.ERROR)

        if self.options.log_intermediate_steps:
            log_stage_error(stage.value, run.run_id, message, code)

        logger.error(
            "stage_failed",
            run_id=run.run_id,
            step=stage.value,
            code=code,
            error=message,
            retryable=retryable,
        )

    def _failed(self, run: PipelineRun, unmapped: Optional[List[UnmappedService]] = None) -> PipelineResult:
        error_info = run.error_info
        if self.options.log_intermediate_steps:
            log_pipeline_failed(run.run_id, error_info.stage, error_info.message, run.completed_stages)

        return PipelineResult(
            success=False,
            state=run.state.value,
            clarification_needed=True,
            clarification_questions=[STAGE_FAILURE_QUESTION],
            stage_outputs=run.stage_outputs,
            unmapped_services=unmapped or [],
            debug=run.debug(REASON_STAGE_FAILED),
            error=error_info.message,
            error_kind=error_info.code,
            error_info=error_info,
        )

    def _clarification(
        self,
        run: PipelineRun,
        questions: List[str],
        reason: str,
        unmapped: Optional[List[UnmappedService]] = None,
        error_kind: Optional[str] = None
    ) -> PipelineResult:
        run.transition(PipelineState.DONE)

        if self.options.log_intermediate_steps:
            log_pipeline_clarification(run.run_id, reason, questions)

        logger.info(
            "pipeline_clarification_needed",
            run_id=run.run_id,
            reason=reason,
            error_kind=error_kind,
            question_count=len(questions),
            duration_ms=run.elapsed_ms,
        )

        return PipelineResult(
            success=False,
            state=run.state.value,
            clarification_needed=True,
            clarification_questions=questions,
            stage_outputs=run.stage_outputs,
            unmapped_services=unmapped or [],
            error_kind=error_kind,
            debug=run.debug(reason),
        )


def unmapped_questions(unmapped: List[UnmappedService]) -> List[str]:
    """Clarification questions for services the catalog could not resolve."""
    questions = [unmapped_question(service.name, service.suggestions) for service in unmapped]
    return questions or [NO_SERVICES_QUESTION]


def _unique(questions: List[str]) -> List[str]:
    unique: List[str] = []
    for question in questions:
        if question not in unique:
            unique.append(question)
    return unique
