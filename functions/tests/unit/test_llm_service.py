"""Unit tests for LLM service."""

import pytest
from unittest.mock import MagicMock, patch

from config.errors import ErrorCode, QuoteError
from services.llm_service import LLMService, strip_code_fence


class TestLLMService:
    """Tests for LLMService."""

    def test_initialization(self):
        """Test LLMService initialization."""
        service = LLMService(
            model="gpt-4-turbo",
            temperature=0.2,
            api_key="test-key",
            timeout_seconds=3.0
        )

        assert service.model == "gpt-4-turbo"
        assert service.temperature == 0.2
        assert service.api_key == "test-key"
        assert service.timeout_seconds == 3.0
        assert service.is_configured

    def test_default_initialization(self):
        """Test LLMService uses settings defaults."""
        with patch('services.llm_service.settings') as mock_settings:
            mock_settings.llm_model = "gpt-4o-mini"
            mock_settings.llm_temperature = 0.1
            mock_settings.openai_api_key = "settings-key"
            mock_settings.classifier_timeout_seconds = 5.0

            service = LLMService()

        assert service.model == "gpt-4o-mini"
        assert service.temperature == 0.1
        assert service.api_key == "settings-key"
        assert service.timeout_seconds == 5.0

    def test_zero_temperature_is_kept(self):
        service = LLMService(temperature=0.0, api_key="test-key", model="gpt-4o-mini", timeout_seconds=1.0)
        assert service.temperature == 0.0

    def test_not_configured_without_key(self):
        with patch('services.llm_service.settings') as mock_settings:
            mock_settings.openai_api_key = None

            service = LLMService(model="gpt-4o-mini", temperature=0.1, timeout_seconds=1.0)

        assert not service.is_configured

    def test_client_lazy_initialization(self):
        """Test the ChatOpenAI client is built once with the service options."""
        with patch('services.llm_service.ChatOpenAI') as mock_chat:
            service = LLMService(model="gpt-4o-mini", temperature=0.1, api_key="test-key", timeout_seconds=2.0)

            first = service.client
            second = service.client

        assert first is second
        mock_chat.assert_called_once_with(
            model="gpt-4o-mini",
            temperature=0.1,
            api_key="test-key",
            timeout=2.0,
            max_retries=1,
        )

    @pytest.mark.asyncio
    async def test_generate(self, mock_llm_service):
        """Test generate method."""
        from langchain_core.messages import HumanMessage

        result = await mock_llm_service.generate([HumanMessage(content="Hello")])

        assert result["content"] == "Mock response content"
        assert result["tokens_used"] == 100
        assert mock_llm_service.total_tokens_used == 100

    @pytest.mark.asyncio
    async def test_generate_passes_max_tokens(self, mock_llm_service):
        from langchain_core.messages import HumanMessage

        await mock_llm_service.generate([HumanMessage(content="Hello")], max_tokens=50)

        _, kwargs = mock_llm_service._client.ainvoke.call_args
        assert kwargs == {"max_tokens": 50}

    @pytest.mark.asyncio
    async def test_generate_with_system_prompt(self, mock_llm_service):
        """Test generate_with_system_prompt method."""
        result = await mock_llm_service.generate_with_system_prompt(
            system_prompt="You split landscaping requests.",
            user_message="100 sqft mulch"
        )

        messages = mock_llm_service._client.ainvoke.call_args[0][0]
        assert [type(m).__name__ for m in messages] == ["SystemMessage", "HumanMessage"]
        assert result["tokens_used"] == 100

    @pytest.mark.asyncio
    async def test_generate_json(self, mock_llm_service):
        """Test generate_json method."""
        mock_llm_service._client.ainvoke.return_value = MagicMock(
            content='{"detected_categories": ["materials"], "service_count": 1}',
            response_metadata={"token_usage": {"total_tokens": 50}}
        )

        result = await mock_llm_service.generate_json(
            system_prompt="Return JSON.",
            user_message="100 sqft mulch"
        )

        assert result["content"]["detected_categories"] == ["materials"]
        assert result["tokens_used"] == 50

    @pytest.mark.asyncio
    async def test_generate_json_handles_markdown(self, mock_llm_service):
        """Test generate_json handles markdown code blocks."""
        mock_llm_service._client.ainvoke.return_value = MagicMock(
            content='```json\n{"result": "success"}\n```',
            response_metadata={}
        )

        result = await mock_llm_service.generate_json(
            system_prompt="Return JSON.",
            user_message="Test"
        )

        assert result["content"]["result"] == "success"
        assert result["tokens_used"] == 0

    @pytest.mark.asyncio
    async def test_generate_json_invalid(self, mock_llm_service):
        """Test generate_json raises on invalid JSON."""
        mock_llm_service._client.ainvoke.return_value = MagicMock(
            content="This is not JSON",
            response_metadata={"token_usage": {"total_tokens": 10}}
        )

        with pytest.raises(QuoteError) as exc_info:
            await mock_llm_service.generate_json(
                system_prompt="Return JSON.",
                user_message="Test"
            )

        assert exc_info.value.code == ErrorCode.LLM_ERROR
        assert exc_info.value.details["raw_content"] == "This is not JSON"


class TestLLMServiceErrors:
    """Tests for provider error translation."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message,code", [
        ("Rate limit reached for gpt-4o-mini", ErrorCode.LLM_RATE_LIMIT),
        ("Error code: 429 - rate_limit_exceeded", ErrorCode.LLM_RATE_LIMIT),
        ("This model's maximum context length is 128000 tokens", ErrorCode.LLM_CONTEXT_TOO_LONG),
        ("Connection reset by peer", ErrorCode.LLM_ERROR),
    ])
    async def test_error_codes(self, mock_llm_service, message, code):
        mock_llm_service._client.ainvoke.side_effect = Exception(message)

        with pytest.raises(QuoteError) as exc_info:
            await mock_llm_service.generate_with_system_prompt("system", "user")

        assert exc_info.value.code == code
        assert exc_info.value.details["original_error"] == message


class TestStripCodeFence:
    """Tests for strip_code_fence."""

    @pytest.mark.parametrize("content,expected", [
        ('```json\n{"a": 1}\n```', '{"a": 1}'),
        ('```\n{"a": 1}\n```', '{"a": 1}'),
        ('  {"a": 1}  ', '{"a": 1}'),
    ])
    def test_strip(self, content, expected):
        assert strip_code_fence(content) == expected
