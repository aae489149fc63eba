"""Stage interfaces for the quote pipeline.

Each stage is a small capability interface so the factory can inject real
or mock implementations. Stages return a StepResult envelope; recoverable
outcomes (incomplete, unmapped) are ordinary data inside it. Unexpected
exceptions are converted into failed steps by the orchestrator.
"""

import time
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional

from models.services import CategoryHint, RawService, ValidatedService, MappedService
from models.pipeline_result import StepDebug, StepResult


class ServiceDetector(ABC):
    """Segments raw text into candidate services."""

    step_name = "detect"

    @abstractmethod
    def detect(
        self,
        text: str,
        category_hints: Optional[List[CategoryHint]] = None
    ) -> StepResult:
        """Return a StepResult whose data is a DetectionResult."""


class CompletenessChecker(ABC):
    """Decides whether each candidate carries enough information to price."""

    step_name = "check"

    @abstractmethod
    def check(self, services: List[RawService]) -> StepResult:
        """Return a StepResult whose data is a ValidationResult."""


class ServiceMapper(ABC):
    """Resolves validated services to catalog entries."""

    step_name = "map"

    @abstractmethod
    def map(self, services: List[ValidatedService]) -> StepResult:
        """Return a StepResult whose data is a MappingResult."""


class PriceCalculator(ABC):
    """Prices mapped services. The only stage doing external I/O."""

    step_name = "calc"

    @abstractmethod
    async def calculate(
        self,
        services: List[MappedService],
        tenant_id: Optional[str] = None
    ) -> StepResult:
        """Return a StepResult whose data is a PricingResult."""


def build_step_result(
    step: str,
    data: Any,
    started_at: float,
    intermediate_output: Optional[Dict[str, Any]] = None,
    info: Optional[List[str]] = None,
    warnings: Optional[List[str]] = None
) -> StepResult:
    """Wrap stage output in a successful StepResult with timing."""
    return StepResult(
        success=True,
        data=data,
        debug=StepDebug(
            step=step,
            processing_time_ms=round((time.perf_counter() - started_at) * 1000, 3),
            intermediate_output=intermediate_output,
            info=info or [],
            warnings=warnings or [],
        ),
    )
