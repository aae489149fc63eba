"""Pytest configuration and shared fixtures for quote pipeline tests."""

import os
import sys
import pytest
from unittest.mock import AsyncMock, MagicMock, patch


# ============================================================================
# Ensure local imports work (config/, models/, services/, pipeline/)
# ============================================================================
#
# The codebase uses absolute imports like `from models...` / `from pipeline...`.
# This guarantees that `functions/` is importable as the top-level module root.
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


# ============================================================================
# Catalog and Stage Fixtures
# ============================================================================

@pytest.fixture
def catalog():
    """Process-lifetime service catalog."""
    from services.service_catalog import get_default_catalog

    return get_default_catalog()


@pytest.fixture
def thresholds():
    """Default matching thresholds."""
    from config.settings import MatchingThresholds

    return MatchingThresholds()


@pytest.fixture
def detector(catalog):
    from pipeline.stages.detector import Detector

    return Detector(catalog)


@pytest.fixture
def checker(catalog, thresholds):
    from pipeline.stages.checker import Checker

    return Checker(catalog, thresholds)


@pytest.fixture
def mapper(catalog, thresholds):
    from pipeline.stages.mapper import Mapper

    return Mapper(catalog, thresholds)


@pytest.fixture
def calculator(catalog):
    """Calculator pricing from the local cost table."""
    from pipeline.stages.calculator import Calculator

    return Calculator(catalog)


@pytest.fixture
def in_memory_oracle(catalog):
    from services.pricing_oracle import InMemoryPricingOracle

    return InMemoryPricingOracle(catalog)


@pytest.fixture
def production_pipeline():
    """Real stages, local cost table (no oracle)."""
    from pipeline.factory import PipelineFactory

    return PipelineFactory.create_production()


@pytest.fixture
def full_pipeline():
    """Real stages without early return."""
    from pipeline.factory import PipelineFactory

    return PipelineFactory.create_production(early_return=False)


@pytest.fixture
def mock_pipeline():
    from pipeline.factory import PipelineFactory

    return PipelineFactory.create_mock()


# ============================================================================
# LLM Mocks
# ============================================================================

@pytest.fixture
def mock_chat_openai():
    """Mock ChatOpenAI client."""
    mock = AsyncMock()
    mock.ainvoke.return_value = MagicMock(
        content="Mock response content",
        response_metadata={"token_usage": {"total_tokens": 100}}
    )
    return mock


@pytest.fixture
def mock_llm_service(mock_chat_openai):
    """LLMService with a mocked ChatOpenAI client."""
    from services.llm_service import LLMService

    with patch('services.llm_service.ChatOpenAI', return_value=mock_chat_openai):
        service = LLMService(api_key="test-api-key", model="gpt-4o-mini", temperature=0.1, timeout_seconds=5.0)
        service._client = mock_chat_openai
        return service


@pytest.fixture
def mock_splitter_response():
    """Splitter JSON as returned by the LLM."""
    return {
        "content": {
            "detected_categories": ["materials", "edging"],
            "separated_services": [
                "45 sq ft triple ground mulch, materials",
                "3 feet metal edging, edging"
            ],
            "service_count": 2,
            "confidence": "high"
        },
        "tokens_used": 120
    }


# ============================================================================
# Environment Setup
# ============================================================================

@pytest.fixture(autouse=True)
def mock_settings():
    """Mock settings for all tests."""
    with patch('config.settings.settings') as mock:
        mock.environment = "testing"
        mock.openai_api_key = "test-api-key"
        mock.llm_model = "gpt-4o-mini"
        mock.llm_temperature = 0.1
        mock.classifier_timeout_seconds = 5.0
        mock.pipeline_mode = "mock"
        mock.pipeline_mock_steps = []
        mock.pipeline_debug = True
        mock.pipeline_early_return = True
        mock.pipeline_log_steps = False
        mock.pricing_oracle_url = None
        mock.pricing_oracle_timeout_seconds = 5.0
        mock.pricing_oracle_fallback = True
        mock.default_tenant_id = "default"
        mock.log_level = "INFO"
        yield mock
