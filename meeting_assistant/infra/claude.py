"""
Claude API Client

Anthropic-backed implementation of the TextCompletionProvider interface the
scheduling core depends on. Retries throttling and connection errors with
exponential backoff and falls back to a second model when the primary fails.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from anthropic import AsyncAnthropic, APIError, RateLimitError, APIConnectionError

from meeting_assistant.config import settings

logger = logging.getLogger(__name__)


class ClaudeClientError(Exception):
    """Raised when Claude API call fails."""
    pass


class TextCompletionProvider(ABC):
    """Anything that turns a prompt into text."""

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Return the completion text for a prompt."""


@dataclass
class ClaudeResponse:
    """Response from Claude API."""
    content: str
    model: str
    input_tokens: int
    output_tokens: int
    latency_ms: float


class ClaudeClient(TextCompletionProvider):
    """
    Async Claude API client wrapper.

    The scheduling core only calls complete(); generate() is kept public for
    callers that need token counts or a specific model.
    """

    _instance: Optional["ClaudeClient"] = None

    def __init__(
        self,
        api_key: Optional[str] = None,
        temperature: float = 0.0,
        max_retries: int = 3,
    ):
        """Initialize Claude client.

        Args:
            api_key: Anthropic API key (defaults to settings)
            temperature: Sampling temperature used by complete()
            max_retries: Attempts per model for retryable errors
        """
        self.api_key = api_key or settings.anthropic_api_key
        if not self.api_key:
            raise ValueError("Anthropic API key is required")

        self._client = AsyncAnthropic(api_key=self.api_key)
        self._model = settings.llm_model
        self._fallback_model = settings.llm_fallback_model
        self._temperature = temperature
        self._max_retries = max_retries

        logger.info(f"ClaudeClient initialized with model={self._model}")

    @classmethod
    def get_instance(cls) -> "ClaudeClient":
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton instance (useful for testing)."""
        cls._instance = None

    async def complete(self, prompt: str) -> str:
        response = await self.generate(prompt)
        return response.content

    async def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        use_fallback_on_error: bool = True,
    ) -> ClaudeResponse:
        """
        Generate a single-turn response.

        Args:
            prompt: User message
            model: Model to use (defaults to settings.llm_model)
            use_fallback_on_error: Try the fallback model on failure

        Returns:
            ClaudeResponse with generated text

        Raises:
            ClaudeClientError: If every attempt fails
        """
        model = model or self._model
        started = time.time()

        try:
            message = await self._create_with_retry(prompt, model)
        except Exception as e:
            if use_fallback_on_error and model != self._fallback_model:
                logger.warning(f"Model {model} failed, trying {self._fallback_model}: {e}")
                return await self.generate(
                    prompt,
                    model=self._fallback_model,
                    use_fallback_on_error=False,
                )
            raise ClaudeClientError(f"Claude API call failed: {e}") from e

        text = "".join(
            block.text for block in message.content if getattr(block, "type", "text") == "text"
        )
        return ClaudeResponse(
            content=text,
            model=model,
            input_tokens=message.usage.input_tokens,
            output_tokens=message.usage.output_tokens,
            latency_ms=(time.time() - started) * 1000,
        )

    async def _create_with_retry(self, prompt: str, model: str) -> Any:
        """Call the Messages API, backing off on throttling and connection errors."""
        last_error: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                return await self._client.messages.create(
                    model=model,
                    max_tokens=settings.llm_max_tokens,
                    temperature=self._temperature,
                    messages=[{"role": "user", "content": prompt}],
                )

            except (RateLimitError, APIConnectionError) as e:
                last_error = e
                wait_time = 2 ** attempt
                logger.warning(
                    f"{type(e).__name__} from Anthropic, retrying in {wait_time}s "
                    f"(attempt {attempt + 1}/{self._max_retries})"
                )
                await asyncio.sleep(wait_time)

            except APIError as e:
                logger.error(f"API error: {e}")
                raise

        raise last_error or ClaudeClientError("Max retries exceeded")

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.close()


async def get_claude_client() -> ClaudeClient:
    """Get Claude client singleton instance."""
    return ClaudeClient.get_instance()
