"""Pipeline Factory.

Builds a PipelineOrchestrator from four independently swappable stages
under named presets:

- production: real stages; calculator uses the pricing oracle when one is
  configured, otherwise the local cost table
- mock: deterministic mock stages, no network calls
- hybrid: the stages named in mock_steps are mocked, the rest are real

All configuration is passed in explicitly through FactoryConfig. Only
from_settings reads the process settings.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Any, List, Optional

import structlog

from config.errors import PipelineConfigError
from config.settings import MatchingThresholds, Settings
from models.pipeline_result import PipelineOptions, StageName
from pipeline.orchestrator import PipelineOrchestrator
from pipeline.stages.calculator import Calculator
from pipeline.stages.checker import Checker
from pipeline.stages.detector import Detector
from pipeline.stages.mapper import Mapper
from pipeline.stages.mocks import MockCalculator, MockChecker, MockDetector, MockMapper
from services.pricing_oracle import HttpPricingOracle, PricingOracle
from services.service_catalog import ServiceCatalog, get_default_catalog

logger = structlog.get_logger()


class PipelineMode(str, Enum):
    """Named pipeline presets."""

    PRODUCTION = "production"
    MOCK = "mock"
    HYBRID = "hybrid"


# early_return used when FactoryConfig.early_return is None
DEFAULT_EARLY_RETURN = {
    PipelineMode.PRODUCTION: True,
    PipelineMode.MOCK: False,
    PipelineMode.HYBRID: True,
}

STAGE_NAMES = [stage.value for stage in StageName]


@dataclass
class FactoryConfig:
    """Explicit configuration for building a pipeline."""

    mode: PipelineMode = PipelineMode.PRODUCTION
    mock_steps: List[str] = field(default_factory=list)
    enable_debug: bool = True
    early_return: Optional[bool] = None
    log_intermediate_steps: bool = False
    catalog: Optional[ServiceCatalog] = None
    thresholds: Optional[MatchingThresholds] = None
    pricing_oracle: Optional[PricingOracle] = None
    oracle_timeout_seconds: float = 5.0
    oracle_fallback: bool = True
    tenant_id: str = "default"

    def resolved_early_return(self) -> bool:
        if self.early_return is not None:
            return self.early_return
        return DEFAULT_EARLY_RETURN[PipelineMode(self.mode)]

    def is_mocked(self, stage: str) -> bool:
        mode = PipelineMode(self.mode)
        if mode == PipelineMode.MOCK:
            return True
        if mode == PipelineMode.HYBRID:
            return stage in self.mock_steps
        return False


class PipelineFactory:
    """Creates orchestrators from FactoryConfig presets."""

    @staticmethod
    def create(config: Optional[FactoryConfig] = None) -> PipelineOrchestrator:
        """Build an orchestrator for the given configuration.

        Raises:
            PipelineConfigError: If the configuration is invalid.
        """
        config = config or FactoryConfig()
        PipelineFactory.validate_config(config)

        catalog = config.catalog or get_default_catalog()
        thresholds = config.thresholds or MatchingThresholds()

        if config.is_mocked(StageName.DETECT.value):
            detector = MockDetector()
        else:
            detector = Detector(catalog)

        if config.is_mocked(StageName.CHECK.value):
            checker = MockChecker()
        else:
            checker = Checker(catalog, thresholds)

        if config.is_mocked(StageName.MAP.value):
            mapper = MockMapper(catalog)
        else:
            mapper = Mapper(catalog, thresholds)

        if config.is_mocked(StageName.CALC.value):
            calculator = MockCalculator()
        else:
            calculator = Calculator(
                catalog=catalog,
                oracle=config.pricing_oracle,
                timeout_seconds=config.oracle_timeout_seconds,
                fallback_to_local=config.oracle_fallback,
                default_tenant_id=config.tenant_id,
                composed_confidence=thresholds.composed_service_confidence,
            )

        options = PipelineOptions(
            enable_debug=config.enable_debug,
            enable_timings=config.enable_debug,
            early_return=config.resolved_early_return(),
            log_intermediate_steps=config.log_intermediate_steps,
        )

        logger.info(
            "pipeline_created",
            mode=PipelineMode(config.mode).value,
            mocked_stages=[stage for stage in STAGE_NAMES if config.is_mocked(stage)],
            early_return=options.early_return,
            oracle_configured=config.pricing_oracle is not None,
        )

        return PipelineOrchestrator(detector, checker, mapper, calculator, options)

    @staticmethod
    def create_production(
        pricing_oracle: Optional[PricingOracle] = None,
        **overrides
    ) -> PipelineOrchestrator:
        """Real stages, pricing oracle enabled when provided."""
        overrides.setdefault("early_return", True)
        config = FactoryConfig(
            mode=PipelineMode.PRODUCTION,
            pricing_oracle=pricing_oracle,
            **overrides
        )
        return PipelineFactory.create(config)

    @staticmethod
    def create_mock(**overrides) -> PipelineOrchestrator:
        """All stages mocked; full pipeline runs for inspection."""
        overrides.setdefault("early_return", False)
        return PipelineFactory.create(FactoryConfig(mode=PipelineMode.MOCK, **overrides))

    @staticmethod
    def create_hybrid(mock_steps: List[str], **overrides) -> PipelineOrchestrator:
        """Mock the named stages, run the rest for real."""
        return PipelineFactory.create(
            FactoryConfig(mode=PipelineMode.HYBRID, mock_steps=list(mock_steps), **overrides)
        )

    @staticmethod
    def create_development(**overrides) -> PipelineOrchestrator:
        """Real NLP stages with a mocked calculator."""
        overrides.setdefault("log_intermediate_steps", True)
        return PipelineFactory.create_hybrid([StageName.CALC.value], **overrides)

    @staticmethod
    def create_testing(**overrides) -> PipelineOrchestrator:
        overrides.setdefault("enable_debug", True)
        return PipelineFactory.create_mock(**overrides)

    @staticmethod
    def create_for_debugging(step: str, **overrides) -> PipelineOrchestrator:
        """Mock every stage except step, to isolate it."""
        if step not in STAGE_NAMES:
            raise PipelineConfigError(
                f"Unknown pipeline step: {step}",
                details={"valid_steps": STAGE_NAMES},
            )
        overrides.setdefault("early_return", False)
        mock_steps = [stage for stage in STAGE_NAMES if stage != step]
        return PipelineFactory.create_hybrid(mock_steps, **overrides)

    @staticmethod
    def from_settings(app_settings: Optional[Settings] = None) -> PipelineOrchestrator:
        """Build the pipeline described by environment settings."""
        if app_settings is None:
            from config.settings import settings as app_settings

        oracle = None
        if app_settings.pricing_oracle_url:
            oracle = HttpPricingOracle(
                base_url=app_settings.pricing_oracle_url,
                timeout_seconds=app_settings.pricing_oracle_timeout_seconds,
            )

        config = FactoryConfig(
            mode=_parse_mode(app_settings.pipeline_mode),
            mock_steps=list(app_settings.pipeline_mock_steps),
            enable_debug=app_settings.pipeline_debug,
            early_return=app_settings.pipeline_early_return,
            log_intermediate_steps=app_settings.pipeline_log_steps,
            thresholds=app_settings.matching_thresholds(),
            pricing_oracle=oracle,
            oracle_timeout_seconds=app_settings.pricing_oracle_timeout_seconds,
            oracle_fallback=app_settings.pricing_oracle_fallback,
            tenant_id=app_settings.default_tenant_id,
        )
        return PipelineFactory.create(config)

    @staticmethod
    def get_recommended_config(environment: str) -> FactoryConfig:
        """Preset configuration per deployment environment."""
        recommended: Dict[str, FactoryConfig] = {
            "development": FactoryConfig(
                mode=PipelineMode.HYBRID,
                mock_steps=[StageName.CALC.value],
                enable_debug=True,
                log_intermediate_steps=True,
            ),
            "testing": FactoryConfig(
                mode=PipelineMode.MOCK,
                enable_debug=True,
                early_return=False,
            ),
            "staging": FactoryConfig(
                mode=PipelineMode.PRODUCTION,
                enable_debug=True,
            ),
            "production": FactoryConfig(
                mode=PipelineMode.PRODUCTION,
                enable_debug=False,
            ),
        }
        if environment not in recommended:
            raise PipelineConfigError(
                f"Unknown environment: {environment}",
                details={"valid_environments": list(recommended)},
            )
        return replace(recommended[environment])

    @staticmethod
    def validate_config(config: FactoryConfig) -> None:
        """Raise PipelineConfigError for an unusable configuration."""
        mode = _parse_mode(config.mode)

        unknown = [step for step in config.mock_steps if step not in STAGE_NAMES]
        if unknown:
            raise PipelineConfigError(
                f"Unknown mock steps: {', '.join(unknown)}",
                details={"unknown_steps": unknown, "valid_steps": STAGE_NAMES},
            )

        if mode == PipelineMode.HYBRID and not config.mock_steps:
            raise PipelineConfigError("Hybrid mode requires at least one mocked step")

        if mode != PipelineMode.HYBRID and config.mock_steps:
            logger.warning(
                "mock_steps_ignored",
                mode=mode.value,
                mock_steps=config.mock_steps,
            )

        if config.oracle_timeout_seconds <= 0:
            raise PipelineConfigError(
                "Oracle timeout must be positive",
                details={"oracle_timeout_seconds": config.oracle_timeout_seconds},
            )

        if not config.tenant_id:
            raise PipelineConfigError("Tenant id must not be empty")


def _parse_mode(mode: Any) -> PipelineMode:
    try:
        return PipelineMode(mode)
    except ValueError:
        raise PipelineConfigError(
            f"Unknown pipeline mode: {mode}",
            details={"valid_modes": [m.value for m in PipelineMode]},
        )


def describe_pipeline(orchestrator: PipelineOrchestrator) -> Dict[str, Any]:
    """Stage implementation names and options, for health and debug output."""
    return {
        "stages": {name: type(stage).__name__ for name, stage in orchestrator.stages.items()},
        "options": orchestrator.options.model_dump(by_alias=True),
    }
