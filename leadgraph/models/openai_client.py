"""
OpenAI Chat Client

Chat-completions client used for insight summaries when OpenAI is configured.
The same request shape serves Ollama's OpenAI-compatible endpoint, so the
local client subclasses this one.

Features:
- AsyncOpenAI, so an abandoned summary cancels the HTTP request
- JSON mode (response_format={"type": "json_object"}) on request
- Retry on connection errors, timeouts, 429 and 5xx
- Token counting with tiktoken (rough estimate if the encoding is unavailable)
"""

from typing import Optional, Dict, Any
import json

from openai import (
    AsyncOpenAI,
    APIConnectionError,
    APITimeoutError,
    RateLimitError,
    InternalServerError,
)
import tiktoken

from leadgraph.models.base_client import (
    BaseModelClient,
    ModelConfig,
    ModelProvider
)
from config.settings import settings
from config.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."

_UNLOADED = object()


class TokenCounter:
    """
    Lazy tiktoken encoder.

    The encoding is loaded on first use; when it cannot be loaded (no cached
    BPE file and no network) counts fall back to len(text) // 4.
    """

    def __init__(self, encoding_name: str = "cl100k_base"):
        self.encoding_name = encoding_name
        self._encoder: Any = _UNLOADED

    def count(self, text: str) -> int:
        if self._encoder is _UNLOADED:
            try:
                self._encoder = tiktoken.get_encoding(self.encoding_name)
            except Exception as e:
                logger.warning(f"tiktoken unavailable, using rough estimation: {e}")
                self._encoder = None
        if self._encoder is None:
            return len(text) // 4
        return len(self._encoder.encode(text))


class OpenAIClient(BaseModelClient):
    """
    OpenAI chat-completions client.

    Usage:
        >>> client = OpenAIClient()
        >>> response = await client.call("Summarize ...", response_format="json")
        >>> data = json.loads(response.content)
    """

    retryable_errors = (APIConnectionError, APITimeoutError, RateLimitError, InternalServerError)

    def __init__(self, config: Optional[ModelConfig] = None):
        if config is None:
            config = ModelConfig(
                provider=ModelProvider.OPENAI,
                model_name=settings.OPENAI_MODEL,
                api_key=settings.OPENAI_API_KEY or "",
                max_tokens=settings.OPENAI_MAX_TOKENS,
                temperature=settings.OPENAI_TEMPERATURE,
                timeout=settings.LLM_TIMEOUT,
                rate_limit=settings.OPENAI_RATE_LIMIT,
                cost_per_1k_input=settings.OPENAI_INPUT_COST_PER_1M / 1000,
                cost_per_1k_output=settings.OPENAI_OUTPUT_COST_PER_1M / 1000
            )

        super().__init__(config)

        # The SDK has its own retries; tenacity in the base class owns that
        self.client = AsyncOpenAI(
            api_key=config.api_key or "unused",
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=0,
        )
        self.tokens = TokenCounter()

    def _build_messages(self, prompt: str, system_prompt: Optional[str]) -> list:
        return [
            {"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    async def _completion(self, model: str, prompt: str, system_prompt: Optional[str], **kwargs) -> str:
        api_params: Dict[str, Any] = {
            "model": model,
            "messages": self._build_messages(prompt, system_prompt),
            "max_tokens": kwargs.get("max_tokens", self.config.max_tokens),
            "temperature": kwargs.get("temperature", self.config.temperature),
        }
        if kwargs.get("response_format") == "json":
            api_params["response_format"] = {"type": "json_object"}

        self.logger.debug(
            "Calling chat completions",
            extra={"model": model, "prompt_length": len(prompt)}
        )

        response = await self.client.chat.completions.create(**api_params)
        if not response.choices:
            return ""
        return self._message_text(response.choices[0].message)

    def _message_text(self, message) -> str:
        return message.content or ""

    async def _make_api_call(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        **kwargs
    ) -> str:
        return await self._completion(self.config.model_name, prompt, system_prompt, **kwargs)

    def _estimate_tokens(self, text: str) -> int:
        return self.tokens.count(text)

    async def is_available(self) -> bool:
        return bool(self.config.api_key) and await super().is_available()

    async def call_with_json(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        **kwargs
    ) -> Dict[str, Any]:
        """Call in JSON mode and parse the response."""
        kwargs["response_format"] = "json"
        response = await self.call(prompt, system_prompt, **kwargs)
        return json.loads(response.content)


__all__ = ["OpenAIClient", "TokenCounter"]
