"""
Model Router

Sends summary prompts to the first configured provider that answers, in the
order given by LLM_PROVIDER_ORDER (local Ollama first by default).

Features:
- Only configured providers are built: Ollama always, OpenAI and
  Anthropic only when their API key is set
- Providers with an open circuit breaker or failing their availability
  check are skipped
- Fallback to the next provider on any call failure
- Recent routing decisions (bounded) and per-provider metrics kept for
  observability
"""

from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional

from leadgraph.models.base_client import (
    BaseModelClient,
    ModelResponse,
    ModelProvider,
    TaskType
)
from leadgraph.models.claude_client import ClaudeClient
from leadgraph.models.ollama_client import OllamaClient
from leadgraph.models.openai_client import OpenAIClient
from config.settings import settings
from config.logging_config import get_logger

logger = get_logger(__name__)

DECISION_HISTORY_SIZE = 100


@dataclass
class RoutingDecision:
    """Provider order chosen for one request, kept for metrics."""
    task_type: TaskType
    primary_model: ModelProvider
    fallback_models: List[ModelProvider]
    reasoning: str


def build_configured_clients(
    provider_order: Optional[List[str]] = None
) -> Dict[ModelProvider, BaseModelClient]:
    """
    Instantiate the clients for the providers that can actually be called.

    Dict order follows provider_order (default settings.LLM_PROVIDER_ORDER).
    """
    order = provider_order if provider_order is not None else settings.LLM_PROVIDER_ORDER
    clients: Dict[ModelProvider, BaseModelClient] = {}

    for name in order:
        provider = ModelProvider(name)
        if provider in clients:
            continue
        if provider == ModelProvider.OLLAMA:
            clients[provider] = OllamaClient()
        elif provider == ModelProvider.OPENAI and settings.OPENAI_API_KEY:
            clients[provider] = OpenAIClient()
        elif provider == ModelProvider.ANTHROPIC and settings.ANTHROPIC_API_KEY:
            clients[provider] = ClaudeClient()

    return clients


class ModelRouter:
    """
    Ordered-fallback router over the configured text-generation clients.

    Usage:
        >>> router = ModelRouter()
        >>> response = await router.route(
        ...     prompt="Query: ...",
        ...     task_type=TaskType.INSIGHT_SUMMARY,
        ...     system_prompt="You are an expert investigation analyst..."
        ... )
        >>> print(response.provider.value, response.content[:100])
    """

    def __init__(self, clients: Optional[Dict[ModelProvider, BaseModelClient]] = None):
        self.logger = get_logger(__name__)
        self.clients = clients if clients is not None else build_configured_clients()

        self.total_requests = 0
        self.routing_decisions: Deque[RoutingDecision] = deque(maxlen=DECISION_HISTORY_SIZE)

        self.logger.info(
            "Model router initialized",
            extra={"providers": [p.value for p in self.clients]}
        )

    @property
    def providers(self) -> List[ModelProvider]:
        return list(self.clients)

    async def route(
        self,
        prompt: str,
        task_type: TaskType = TaskType.INSIGHT_SUMMARY,
        system_prompt: Optional[str] = None,
        force_model: Optional[ModelProvider] = None,
        **kwargs
    ) -> ModelResponse:
        """
        Call providers in order until one succeeds.

        Raises:
            RuntimeError: No provider configured, or every provider failed
        """
        self.total_requests += 1

        decision = self._make_routing_decision(task_type, force_model)
        if decision is None:
            raise RuntimeError("No text-generation provider configured")
        self.routing_decisions.append(decision)

        models_to_try = [decision.primary_model] + decision.fallback_models
        tried = []
        last_error: Optional[Exception] = None

        for attempt_num, provider in enumerate(models_to_try, start=1):
            client = self.clients[provider]

            if client.config.circuit_open:
                self.logger.warning(f"Skipping {provider.value} (circuit breaker open)")
                continue
            if not await client.is_available():
                self.logger.info(f"Skipping {provider.value} (not available)")
                continue

            tried.append(provider.value)
            try:
                response = await client.call(
                    prompt=prompt,
                    system_prompt=system_prompt,
                    task_type=task_type,
                    **kwargs
                )
            except Exception as e:
                last_error = e
                self.logger.warning(
                    f"Failed with {provider.value}: {e}",
                    extra={"provider": provider.value, "error_type": type(e).__name__}
                )
                continue

            self.logger.info(
                f"Success with {provider.value}",
                extra={
                    "provider": provider.value,
                    "model": response.model_name,
                    "latency_ms": round(response.latency_ms, 1),
                    "was_fallback": attempt_num > 1
                }
            )
            return response

        self.logger.error(
            "All providers failed",
            extra={"task_type": task_type.value, "tried": tried, "last_error": str(last_error)}
        )
        raise RuntimeError(
            f"All providers failed for {task_type.value}. "
            f"Tried: {tried or 'none available'}. Last error: {last_error}"
        )

    def _make_routing_decision(
        self,
        task_type: TaskType,
        force_model: Optional[ModelProvider] = None
    ) -> Optional[RoutingDecision]:
        order = self.providers
        if not order:
            return None

        forced = force_model is not None and force_model in self.clients
        primary = force_model if forced else order[0]
        return RoutingDecision(
            task_type=task_type,
            primary_model=primary,
            fallback_models=[p for p in order if p != primary],
            reasoning="Forced model selection" if forced else "Configured provider order"
        )

    async def route_and_call(
        self,
        task_type: TaskType,
        prompt: str,
        system_prompt: Optional[str] = None,
        **kwargs
    ) -> str:
        """route() returning only the response text."""
        response = await self.route(
            prompt=prompt,
            task_type=task_type,
            system_prompt=system_prompt,
            **kwargs
        )
        return response.content

    def get_metrics(self) -> Dict[str, Any]:
        total_cost = sum(client.config.total_cost for client in self.clients.values())
        primary_counts: Dict[str, int] = {}
        for decision in self.routing_decisions:
            key = decision.primary_model.value
            primary_counts[key] = primary_counts.get(key, 0) + 1

        return {
            "total_requests": self.total_requests,
            "total_cost": total_cost,
            "avg_cost_per_request": total_cost / max(self.total_requests, 1),
            "primary_model_distribution": primary_counts,
            "model_metrics": {
                provider.value: client.get_metrics()
                for provider, client in self.clients.items()
            },
            "circuit_breakers": {
                provider.value: client.config.circuit_open
                for provider, client in self.clients.items()
            }
        }

    def reset_all_metrics(self):
        for client in self.clients.values():
            client.reset_metrics()
        self.total_requests = 0
        self.routing_decisions.clear()


__all__ = [
    "ModelRouter",
    "RoutingDecision",
    "build_configured_clients",
]
