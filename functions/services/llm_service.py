"""LLM service for the quote pipeline.

Thin LangChain/OpenAI wrapper used by the upstream category splitter.
Provider failures are translated into QuoteError with LLM error codes.
"""

import json
from typing import Dict, Any, Optional, List
import structlog
from langchain_openai import ChatOpenAI
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from config.settings import settings
from config.errors import QuoteError, ErrorCode

logger = structlog.get_logger()

JSON_ONLY_INSTRUCTION = (
    "IMPORTANT: You MUST respond with valid JSON only. "
    "No markdown, no explanation, just JSON."
)


class LLMService:
    """Service for LLM operations using LangChain."""

    def __init__(
        self,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None
    ):
        """Initialize LLMService.

        Args:
            model: Model name (default from settings).
            temperature: Temperature (default from settings).
            api_key: OpenAI API key (default from secrets).
            timeout_seconds: Client request timeout (default: classifier timeout).
        """
        self.model = model or settings.llm_model
        self.temperature = temperature if temperature is not None else settings.llm_temperature
        self.api_key = api_key or settings.openai_api_key
        self.timeout_seconds = timeout_seconds or settings.classifier_timeout_seconds

        self._client: Optional[ChatOpenAI] = None
        self._total_tokens_used = 0

    @property
    def is_configured(self) -> bool:
        """Whether an API key is available."""
        return bool(self.api_key)

    @property
    def client(self) -> ChatOpenAI:
        """Get LangChain ChatOpenAI client (lazy initialization)."""
        if self._client is None:
            self._client = ChatOpenAI(
                model=self.model,
                temperature=self.temperature,
                api_key=self.api_key,
                timeout=self.timeout_seconds,
                max_retries=1,
            )
        return self._client

    @property
    def total_tokens_used(self) -> int:
        return self._total_tokens_used

    async def generate(
        self,
        messages: List[BaseMessage],
        max_tokens: Optional[int] = None
    ) -> Dict[str, Any]:
        """Generate a response from the LLM.

        Returns:
            Dict with content and tokens_used.

        Raises:
            QuoteError: If the LLM call fails.
        """
        try:
            kwargs = {}
            if max_tokens:
                kwargs["max_tokens"] = max_tokens

            response = await self.client.ainvoke(messages, **kwargs)
        except Exception as e:
            raise _translate_error(e)

        tokens_used = 0
        metadata = getattr(response, "response_metadata", None) or {}
        usage = metadata.get("token_usage") or {}
        tokens_used = usage.get("total_tokens", 0)
        self._total_tokens_used += tokens_used

        logger.info(
            "llm_generated",
            model=self.model,
            tokens_used=tokens_used,
            content_length=len(response.content)
        )

        return {
            "content": response.content,
            "tokens_used": tokens_used
        }

    async def generate_with_system_prompt(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: Optional[int] = None
    ) -> Dict[str, Any]:
        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_message)
        ]
        return await self.generate(messages, max_tokens)

    async def generate_json(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: Optional[int] = None
    ) -> Dict[str, Any]:
        """Generate a JSON response.

        Returns:
            Dict with parsed JSON content and tokens_used.

        Raises:
            QuoteError: If the call fails or the response is not valid JSON.
        """
        result = await self.generate_with_system_prompt(
            f"{system_prompt}\n\n{JSON_ONLY_INSTRUCTION}",
            user_message,
            max_tokens
        )

        try:
            parsed = json.loads(strip_code_fence(result["content"]))
        except json.JSONDecodeError as e:
            raise QuoteError(
                code=ErrorCode.LLM_ERROR,
                message="LLM did not return valid JSON",
                details={
                    "parse_error": str(e),
                    "raw_content": result["content"][:500]
                }
            )

        return {
            "content": parsed,
            "tokens_used": result["tokens_used"]
        }


def strip_code_fence(content: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    content = content.strip()
    if content.startswith("```json"):
        content = content[7:]
    elif content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]
    return content.strip()


def _translate_error(error: Exception) -> QuoteError:
    error_msg = str(error)
    lowered = error_msg.lower()

    if "rate_limit" in lowered or "rate limit" in lowered:
        return QuoteError(
            code=ErrorCode.LLM_RATE_LIMIT,
            message="OpenAI rate limit exceeded",
            details={"original_error": error_msg}
        )
    if "context_length" in lowered or "maximum context" in lowered:
        return QuoteError(
            code=ErrorCode.LLM_CONTEXT_TOO_LONG,
            message="Input too long for model context",
            details={"original_error": error_msg}
        )
    return QuoteError(
        code=ErrorCode.LLM_ERROR,
        message=f"LLM generation failed: {error_msg}",
        details={"original_error": error_msg}
    )
