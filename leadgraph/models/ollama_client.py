"""
Ollama Client (local LLM)

Talks to a local Ollama runtime through its OpenAI-compatible endpoint
(<OLLAMA_BASE_URL>/v1), so it reuses the openai SDK.

Features:
- Model fallback chain: the configured model first, then
  OLLAMA_FALLBACK_MODELS, skipping models that are not pulled locally
- Reachability check against /v1/models with a short timeout
- Reasoning models: <think> blocks are stripped, and a reply that only
  carries reasoning text is used as-is
- No cost (local inference)
"""

import re
from typing import List, Optional

from openai import NotFoundError

from leadgraph.models.base_client import ModelConfig, ModelProvider
from leadgraph.models.openai_client import OpenAIClient
from config.settings import settings
from config.logging_config import get_logger

logger = get_logger(__name__)

AVAILABILITY_TIMEOUT = 5.0

_THINK_RE = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)


def strip_reasoning(text: str) -> str:
    """Drop <think>...</think> blocks emitted by reasoning models."""
    return _THINK_RE.sub("", text or "").strip()


class OllamaClient(OpenAIClient):
    """
    Local Ollama client with a model fallback chain.

    Usage:
        >>> client = OllamaClient()
        >>> if await client.is_available():
        ...     print((await client.call("Summarize ...")).content)
    """

    def __init__(
        self,
        config: Optional[ModelConfig] = None,
        fallback_models: Optional[List[str]] = None
    ):
        if config is None:
            config = ModelConfig(
                provider=ModelProvider.OLLAMA,
                model_name=settings.OLLAMA_MODEL,
                api_key="ollama",
                base_url=settings.OLLAMA_BASE_URL.rstrip("/") + "/v1",
                max_tokens=settings.OLLAMA_MAX_TOKENS,
                temperature=settings.OLLAMA_TEMPERATURE,
                timeout=settings.LLM_TIMEOUT,
                rate_limit=settings.OLLAMA_RATE_LIMIT,
            )

        super().__init__(config)

        if fallback_models is None:
            fallback_models = settings.OLLAMA_FALLBACK_MODELS
        self.models = [config.model_name] + [
            m for m in fallback_models if m != config.model_name
        ]
        self._active_model = config.model_name

    @property
    def active_model(self) -> str:
        return self._active_model

    async def is_available(self) -> bool:
        """True when the runtime answers /v1/models within a few seconds."""
        if self.config.circuit_open:
            return False
        try:
            await self.client.with_options(timeout=AVAILABILITY_TIMEOUT, max_retries=0).models.list()
            return True
        except Exception as e:
            self.logger.info(
                "Ollama not reachable",
                extra={"base_url": self.config.base_url, "error": str(e)}
            )
            return False

    async def _make_api_call(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        **kwargs
    ) -> str:
        last_error: Optional[Exception] = None

        for model in self.models:
            try:
                text = await self._completion(model, prompt, system_prompt, **kwargs)
            except NotFoundError as e:
                self.logger.warning(f"Ollama model {model} not available, trying next")
                last_error = e
                continue

            self._active_model = model
            return strip_reasoning(text)

        raise RuntimeError(
            f"No Ollama model available (tried {', '.join(self.models)}): {last_error}"
        )

    def _message_text(self, message) -> str:
        if message.content:
            return message.content
        # Reasoning-only replies
        return getattr(message, "reasoning", None) or ""


__all__ = ["OllamaClient", "strip_reasoning"]
