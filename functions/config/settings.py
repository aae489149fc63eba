"""Quote pipeline configuration settings.

Loads configuration from environment variables with sensible defaults.
Secrets are read through the config.secrets module.
"""

import os
from typing import List, Optional
from dataclasses import dataclass, field
from dotenv import load_dotenv

# Load .env file for non-secret configuration (mode flags, oracle URL, etc.)
load_dotenv()


def _get_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _get_list(name: str, default: str = "") -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class MatchingThresholds:
    """Tunable confidence constants used by the pipeline stages.

    The defaults were chosen empirically; they are exposed so that they
    can be calibrated without touching stage code.
    """

    exact_match_confidence: float = 0.95
    synonym_match_confidence: float = 0.85
    fuzzy_match_threshold: float = 0.70
    fuzzy_confidence_scale: float = 0.8
    unit_mismatch_penalty: float = 0.8
    completion_threshold: float = 0.85
    empty_confidence_floor: float = 0.2
    composed_service_confidence: float = 0.9
    max_suggestions: int = 5
    max_clarification_questions: int = 6


@dataclass
class Settings:
    """Application settings loaded from environment variables.

    Note: Secrets (OPENAI_API_KEY, PRICING_ORACLE_API_KEY) should be accessed
    via config.secrets. The openai_api_key property delegates to it.
    """

    # Runtime environment (development, testing, staging, production)
    environment: str = field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))

    # LLM Configuration (non-secrets)
    llm_model: str = field(default_factory=lambda: os.getenv("LLM_MODEL", "gpt-4o-mini"))
    llm_temperature: float = field(default_factory=lambda: float(os.getenv("LLM_TEMPERATURE", "0.1")))
    classifier_timeout_seconds: float = field(
        default_factory=lambda: float(os.getenv("CLASSIFIER_TIMEOUT_SECONDS", "5.0"))
    )

    # Pipeline Configuration
    pipeline_mode: str = field(default_factory=lambda: os.getenv("PIPELINE_MODE", "production"))
    pipeline_mock_steps: List[str] = field(default_factory=lambda: _get_list("PIPELINE_MOCK_STEPS"))
    pipeline_debug: bool = field(default_factory=lambda: _get_bool("PIPELINE_DEBUG", "false"))
    pipeline_early_return: bool = field(default_factory=lambda: _get_bool("PIPELINE_EARLY_RETURN", "true"))
    pipeline_log_steps: bool = field(default_factory=lambda: _get_bool("PIPELINE_LOG_STEPS", "false"))

    # Pricing Oracle Configuration
    pricing_oracle_url: Optional[str] = field(default_factory=lambda: os.getenv("PRICING_ORACLE_URL"))
    pricing_oracle_timeout_seconds: float = field(
        default_factory=lambda: float(os.getenv("PRICING_ORACLE_TIMEOUT_SECONDS", "5.0"))
    )
    pricing_oracle_fallback: bool = field(default_factory=lambda: _get_bool("PRICING_ORACLE_FALLBACK", "true"))
    default_tenant_id: str = field(default_factory=lambda: os.getenv("DEFAULT_TENANT_ID", "default"))

    # Matching constants
    exact_match_confidence: float = field(default_factory=lambda: float(os.getenv("EXACT_MATCH_CONFIDENCE", "0.95")))
    synonym_match_confidence: float = field(default_factory=lambda: float(os.getenv("SYNONYM_MATCH_CONFIDENCE", "0.85")))
    fuzzy_match_threshold: float = field(default_factory=lambda: float(os.getenv("FUZZY_MATCH_THRESHOLD", "0.70")))
    fuzzy_confidence_scale: float = field(default_factory=lambda: float(os.getenv("FUZZY_CONFIDENCE_SCALE", "0.8")))
    unit_mismatch_penalty: float = field(default_factory=lambda: float(os.getenv("UNIT_MISMATCH_PENALTY", "0.8")))
    completion_threshold: float = field(default_factory=lambda: float(os.getenv("COMPLETION_THRESHOLD", "0.85")))
    empty_confidence_floor: float = field(default_factory=lambda: float(os.getenv("EMPTY_CONFIDENCE_FLOOR", "0.2")))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    # Internal: cached secret value (use openai_api_key property instead)
    _openai_api_key: Optional[str] = field(default=None, repr=False)

    @property
    def openai_api_key(self) -> Optional[str]:
        """Get OpenAI API key from the environment-backed secrets module."""
        if self._openai_api_key is None:
            from config.secrets import get_openai_api_key
            self._openai_api_key = get_openai_api_key()
        return self._openai_api_key

    def matching_thresholds(self) -> MatchingThresholds:
        """Build the explicit thresholds object handed to the pipeline stages."""
        return MatchingThresholds(
            exact_match_confidence=self.exact_match_confidence,
            synonym_match_confidence=self.synonym_match_confidence,
            fuzzy_match_threshold=self.fuzzy_match_threshold,
            fuzzy_confidence_scale=self.fuzzy_confidence_scale,
            unit_mismatch_penalty=self.unit_mismatch_penalty,
            completion_threshold=self.completion_threshold,
            empty_confidence_floor=self.empty_confidence_floor,
        )

    def validate(self) -> None:
        """Validate required settings are present.

        Raises:
            ValueError: If required settings are missing.
        """
        if self.environment == "production" and self.pipeline_mode == "production":
            if not self.pricing_oracle_url and not self.pricing_oracle_fallback:
                raise ValueError("PRICING_ORACLE_URL is required when fallback pricing is disabled")

    @property
    def is_production(self) -> bool:
        """Check if running in the production environment."""
        return self.environment == "production"


# Singleton settings instance
settings = Settings()
