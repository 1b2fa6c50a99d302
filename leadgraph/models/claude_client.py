"""
Claude (Anthropic) Client

Messages-API client used for insight summaries when an Anthropic key is
configured.

Features:
- AsyncAnthropic, so an abandoned summary cancels the HTTP request
- Text blocks of the reply joined; tool or thinking blocks ignored
- Retry on connection errors, timeouts, 429 and 5xx
- Token counting via the shared tiktoken counter
"""

from typing import Optional

from anthropic import (
    AsyncAnthropic,
    APIConnectionError,
    APITimeoutError,
    RateLimitError,
    InternalServerError,
)

from leadgraph.models.base_client import (
    BaseModelClient,
    ModelConfig,
    ModelProvider
)
from leadgraph.models.openai_client import TokenCounter, DEFAULT_SYSTEM_PROMPT
from config.settings import settings
from config.logging_config import get_logger

logger = get_logger(__name__)


class ClaudeClient(BaseModelClient):
    """
    Anthropic messages client.

    Usage:
        >>> client = ClaudeClient()
        >>> response = await client.call("Summarize ...", system_prompt="...")
        >>> print(response.content)
    """

    retryable_errors = (APIConnectionError, APITimeoutError, RateLimitError, InternalServerError)

    def __init__(self, config: Optional[ModelConfig] = None):
        if config is None:
            config = ModelConfig(
                provider=ModelProvider.ANTHROPIC,
                model_name=settings.CLAUDE_MODEL,
                api_key=settings.ANTHROPIC_API_KEY or "",
                max_tokens=settings.CLAUDE_MAX_TOKENS,
                temperature=settings.CLAUDE_TEMPERATURE,
                timeout=settings.LLM_TIMEOUT,
                rate_limit=settings.CLAUDE_RATE_LIMIT,
                cost_per_1k_input=settings.CLAUDE_INPUT_COST_PER_1M / 1000,
                cost_per_1k_output=settings.CLAUDE_OUTPUT_COST_PER_1M / 1000
            )

        super().__init__(config)

        self.client = AsyncAnthropic(
            api_key=config.api_key or "unused",
            timeout=config.timeout,
            max_retries=0,
        )
        self.tokens = TokenCounter()

    async def is_available(self) -> bool:
        return bool(self.config.api_key) and await super().is_available()

    async def _make_api_call(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        **kwargs
    ) -> str:
        self.logger.debug(
            "Calling Claude messages API",
            extra={"model": self.config.model_name, "prompt_length": len(prompt)}
        )

        response = await self.client.messages.create(
            model=self.config.model_name,
            max_tokens=kwargs.get("max_tokens", self.config.max_tokens),
            temperature=kwargs.get("temperature", self.config.temperature),
            system=system_prompt or DEFAULT_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )

        return "".join(
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        )

    def _estimate_tokens(self, text: str) -> int:
        return self.tokens.count(text)


__all__ = ["ClaudeClient"]
