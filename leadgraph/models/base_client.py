"""
Base Text-Generation Client

Shared async call path for the providers the insight summarizer may use.

Features:
- Minimum spacing between calls (requests-per-minute budget)
- Fully async, so a caller deadline (asyncio.wait_for) cancels the
  in-flight request
- tenacity retry with exponential backoff, limited to each provider's
  transient error types
- Circuit breaker: opens when more than half of over ten calls failed,
  half-opens again after a minute
- Token, cost and latency accounting with a bounded call history

Subclasses implement the coroutine _make_api_call() (returns the response
text) and _estimate_tokens(), and set retryable_errors.

Usage:
    class MyClient(BaseModelClient):
        retryable_errors = (ConnectionError,)

        async def _make_api_call(self, prompt, system_prompt=None, **kwargs):
            ...
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Deque, Dict, Optional, Tuple, Type

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config.logging_config import get_logger

logger = get_logger(__name__)

CIRCUIT_ERROR_RATE = 0.5
CIRCUIT_MIN_CALLS = 10
CIRCUIT_RESET_SECONDS = 60
HISTORY_SIZE = 100
RECENT_WINDOW = 10


class ModelProvider(str, Enum):
    OLLAMA = "ollama"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class TaskType(str, Enum):
    """Purpose of a generation request; recorded with every response."""
    INSIGHT_SUMMARY = "insight_summary"
    ANALYSIS = "analysis"


@dataclass
class ModelConfig:
    """
    Settings and running counters of one provider client.

    Attributes:
        provider: Which provider this client talks to
        model_name: Model identifier sent with each request
        api_key: Credential ("ollama" placeholder for the local runtime)
        base_url: Endpoint override (Ollama's OpenAI-compatible /v1)
        max_tokens: Response token cap
        temperature: Sampling temperature
        timeout: Seconds per request
        max_retries: Attempts per call, first one included
        rate_limit: Requests per minute
        cost_per_1k_input / cost_per_1k_output: USD per 1K tokens
    """
    provider: ModelProvider
    model_name: str
    api_key: str = ""
    base_url: Optional[str] = None
    max_tokens: int = 2000
    temperature: float = 0.3
    timeout: int = 60
    max_retries: int = 3
    rate_limit: int = 60
    cost_per_1k_input: float = 0.0
    cost_per_1k_output: float = 0.0

    # Running counters
    total_calls: int = field(default=0, init=False)
    total_errors: int = field(default=0, init=False)
    total_cost: float = field(default=0.0, init=False)
    circuit_open: bool = field(default=False, init=False)
    last_error_time: Optional[datetime] = field(default=None, init=False)

    @property
    def error_rate(self) -> float:
        return self.total_errors / max(self.total_calls, 1)

    @property
    def min_interval(self) -> float:
        return 60.0 / self.rate_limit

    def cost_of(self, input_tokens: int, output_tokens: int) -> float:
        return (
            input_tokens * self.cost_per_1k_input
            + output_tokens * self.cost_per_1k_output
        ) / 1000

    def reset_counters(self) -> None:
        self.total_calls = 0
        self.total_errors = 0
        self.total_cost = 0.0
        self.circuit_open = False
        self.last_error_time = None


@dataclass
class ModelResponse:
    """What a provider answered, in provider-independent form."""
    content: str
    provider: ModelProvider
    model_name: str
    tokens_used: int
    cost: float
    latency_ms: float
    success: bool = True
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider.value,
            "model": self.model_name,
            "tokens": self.tokens_used,
            "cost": f"${self.cost:.4f}",
            "latency_ms": round(self.latency_ms, 1),
            "success": self.success,
            "error": self.error,
            "metadata": self.metadata,
        }


class BaseModelClient(ABC):
    """
    Provider-independent client skeleton.

    call() is a coroutine; cancelling it abandons the provider request.
    """

    retryable_errors: Tuple[Type[BaseException], ...] = (ConnectionError, TimeoutError)

    def __init__(self, config: ModelConfig):
        self.config = config
        self.logger = get_logger(f"{__name__}.{config.provider.value}")
        self._history: Deque[Dict[str, Any]] = deque(maxlen=HISTORY_SIZE)
        self._next_call_at = 0.0

        self.logger.debug(
            "Provider client ready",
            extra={
                "provider": config.provider.value,
                "model": config.model_name,
                "rate_limit": config.rate_limit,
            }
        )

    # ========================================================================
    # PROVIDER HOOKS
    # ========================================================================

    @abstractmethod
    async def _make_api_call(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        **kwargs
    ) -> str:
        """One provider request; returns the response text."""

    @abstractmethod
    def _estimate_tokens(self, text: str) -> int:
        """Token count of text, for cost accounting."""

    async def is_available(self) -> bool:
        """Whether routing should try this client now."""
        return not self.config.circuit_open

    @property
    def active_model(self) -> str:
        return self.config.model_name

    # ========================================================================
    # CALL PATH
    # ========================================================================

    async def call(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        task_type: Optional[TaskType] = None,
        **kwargs
    ) -> ModelResponse:
        """
        Generate text for prompt.

        Raises:
            RuntimeError: While the circuit breaker is open
            Exception: The provider's error once retries are used up
        """
        if not self._circuit_allows_call():
            raise RuntimeError(f"Circuit breaker open for {self.config.provider.value}")

        await self._wait_for_slot()
        self.config.total_calls += 1
        started = time.perf_counter()

        try:
            content = await self._call_with_retry(prompt, system_prompt, **kwargs)
        except Exception as e:
            self._on_failure(e, started)
            raise

        input_tokens = self._estimate_tokens(prompt + (system_prompt or ""))
        output_tokens = self._estimate_tokens(content)
        cost = self.config.cost_of(input_tokens, output_tokens)
        self.config.total_cost += cost

        response = ModelResponse(
            content=content,
            provider=self.config.provider,
            model_name=self.active_model,
            tokens_used=input_tokens + output_tokens,
            cost=cost,
            latency_ms=(time.perf_counter() - started) * 1000,
            metadata={
                "task_type": task_type.value if task_type else None,
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
            }
        )
        self._history.append({
            "timestamp": datetime.now().isoformat(),
            "success": True,
            "cost": cost,
            "latency_ms": response.latency_ms,
            "tokens": response.tokens_used,
        })

        self.logger.info("Model call succeeded", extra=response.to_dict())
        return response

    async def _call_with_retry(self, prompt: str, system_prompt: Optional[str], **kwargs) -> str:
        """Backoff 2s, 4s ... (max 10s) on retryable_errors only."""
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(self.retryable_errors),
            stop=stop_after_attempt(max(self.config.max_retries, 1)),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            before_sleep=self._log_retry,
            reraise=True,
        )
        return await retrying(self._make_api_call, prompt, system_prompt, **kwargs)

    def _log_retry(self, retry_state) -> None:
        self.logger.warning(
            "Retrying model call",
            extra={
                "provider": self.config.provider.value,
                "attempt": retry_state.attempt_number,
                "error": str(retry_state.outcome.exception()),
            }
        )

    async def _wait_for_slot(self) -> None:
        now = time.monotonic()
        if now < self._next_call_at:
            delay = self._next_call_at - now
            self.logger.debug(f"Rate limiting: sleeping {delay:.2f}s")
            await asyncio.sleep(delay)
            now = self._next_call_at
        self._next_call_at = now + self.config.min_interval

    # ========================================================================
    # CIRCUIT BREAKER
    # ========================================================================

    def _circuit_allows_call(self) -> bool:
        if not self.config.circuit_open:
            return True
        last = self.config.last_error_time
        if last and (datetime.now() - last).total_seconds() > CIRCUIT_RESET_SECONDS:
            self.config.circuit_open = False
            self.logger.info(f"Circuit breaker reset for {self.config.provider.value}")
            return True
        return False

    def _on_failure(self, error: Exception, started: float) -> None:
        self.config.total_errors += 1
        self.config.last_error_time = datetime.now()

        if (
            not self.config.circuit_open
            and self.config.total_calls > CIRCUIT_MIN_CALLS
            and self.config.error_rate > CIRCUIT_ERROR_RATE
        ):
            self.config.circuit_open = True
            self.logger.error(
                f"Circuit breaker opened for {self.config.provider.value}",
                extra={"error_rate": self.config.error_rate, "total_calls": self.config.total_calls}
            )

        self.logger.warning(
            "Model call failed",
            extra={
                "provider": self.config.provider.value,
                "model": self.active_model,
                "error": str(error),
                "error_type": type(error).__name__,
                "latency_ms": round((time.perf_counter() - started) * 1000, 1),
            }
        )

    # ========================================================================
    # METRICS
    # ========================================================================

    def get_metrics(self) -> Dict[str, Any]:
        recent = list(self._history)[-RECENT_WINDOW:]
        return {
            "provider": self.config.provider.value,
            "model": self.active_model,
            "total_calls": self.config.total_calls,
            "total_errors": self.config.total_errors,
            "error_rate": self.config.error_rate,
            "total_cost": self.config.total_cost,
            "circuit_open": self.config.circuit_open,
            "recent_latency_avg": (
                sum(c["latency_ms"] for c in recent) / len(recent) if recent else 0.0
            ),
        }

    def reset_metrics(self):
        self.config.reset_counters()
        self._history.clear()


__all__ = [
    "BaseModelClient",
    "ModelConfig",
    "ModelResponse",
    "ModelProvider",
    "TaskType",
]
