"""
Model Router Tests

Uses in-process fake clients built on BaseModelClient, so the rate limiter,
retry, circuit breaker and metrics paths are the real ones.
"""

import asyncio
import time

import pytest

from config.settings import settings
from leadgraph.models.base_client import (
    BaseModelClient,
    ModelConfig,
    ModelProvider,
    TaskType,
)
from leadgraph.models.router import DECISION_HISTORY_SIZE, ModelRouter, build_configured_clients


class FakeClient(BaseModelClient):
    def __init__(self, provider, reply="ok", error=None, available=True, delay=0.0):
        super().__init__(ModelConfig(
            provider=provider,
            model_name=f"{provider.value}-test",
            max_retries=1,
            rate_limit=60000,
            cost_per_1k_input=0.001,
        ))
        self.reply = reply
        self.error = error
        self.available = available
        self.delay = delay
        self.prompts = []

    async def _make_api_call(self, prompt, system_prompt=None, **kwargs):
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply

    def _estimate_tokens(self, text):
        return len(text.split())

    async def is_available(self):
        return self.available and not self.config.circuit_open


def _router(*clients):
    return ModelRouter(clients={c.config.provider: c for c in clients})


def _route(router, prompt="prompt", **kwargs):
    return asyncio.run(router.route(prompt, **kwargs))


def test_first_provider_answers():
    ollama = FakeClient(ModelProvider.OLLAMA, reply='{"summary": "local"}')
    openai = FakeClient(ModelProvider.OPENAI)
    router = _router(ollama, openai)

    response = _route(router, "prompt text", task_type=TaskType.INSIGHT_SUMMARY)

    assert response.provider == ModelProvider.OLLAMA
    assert response.content == '{"summary": "local"}'
    assert response.metadata["task_type"] == "insight_summary"
    assert openai.prompts == []


def test_falls_back_on_failure():
    ollama = FakeClient(ModelProvider.OLLAMA, error=ValueError("model crashed"))
    claude = FakeClient(ModelProvider.ANTHROPIC, reply="from claude")
    router = _router(ollama, claude)

    assert asyncio.run(router.route_and_call(TaskType.INSIGHT_SUMMARY, "prompt")) == "from claude"
    assert ollama.config.total_errors == 1
    assert router.get_metrics()["model_metrics"]["anthropic"]["total_calls"] == 1


def test_unavailable_and_open_circuit_skipped():
    down = FakeClient(ModelProvider.OLLAMA, available=False)
    tripped = FakeClient(ModelProvider.OPENAI)
    tripped.config.circuit_open = True
    claude = FakeClient(ModelProvider.ANTHROPIC, reply="claude")

    response = _route(_router(down, tripped, claude))

    assert response.provider == ModelProvider.ANTHROPIC
    assert down.prompts == []
    assert tripped.prompts == []


def test_all_failing_raises():
    router = _router(
        FakeClient(ModelProvider.OLLAMA, error=ValueError("a")),
        FakeClient(ModelProvider.OPENAI, error=ValueError("b")),
    )
    with pytest.raises(RuntimeError, match="All providers failed"):
        _route(router)


def test_no_providers_raises():
    with pytest.raises(RuntimeError, match="No text-generation provider"):
        _route(ModelRouter(clients={}))


def test_force_model_goes_first():
    ollama = FakeClient(ModelProvider.OLLAMA, reply="ollama")
    openai = FakeClient(ModelProvider.OPENAI, reply="openai")
    router = _router(ollama, openai)

    response = _route(router, force_model=ModelProvider.OPENAI)

    assert response.provider == ModelProvider.OPENAI
    decision = router.routing_decisions[-1]
    assert decision.fallback_models == [ModelProvider.OLLAMA]


def test_metrics_reset():
    client = FakeClient(ModelProvider.OLLAMA)
    router = _router(client)
    _route(router, "one two three")

    metrics = router.get_metrics()
    assert metrics["total_requests"] == 1
    assert metrics["primary_model_distribution"] == {"ollama": 1}
    assert metrics["total_cost"] > 0

    router.reset_all_metrics()
    assert router.get_metrics()["total_requests"] == 0
    assert client.config.total_calls == 0


def test_circuit_opens_after_repeated_failures():
    client = FakeClient(ModelProvider.OLLAMA, error=ValueError("boom"))
    for _ in range(11):
        with pytest.raises(ValueError):
            asyncio.run(client.call("prompt"))
    assert client.config.circuit_open
    with pytest.raises(RuntimeError, match="Circuit breaker open"):
        asyncio.run(client.call("prompt"))


def test_only_keyed_providers_are_built(monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    monkeypatch.setattr(settings, "ANTHROPIC_API_KEY", "sk-ant-test")

    clients = build_configured_clients(["anthropic", "openai", "ollama", "anthropic"])

    assert list(clients) == [ModelProvider.ANTHROPIC, ModelProvider.OLLAMA]


def test_unknown_provider_name_rejected():
    with pytest.raises(ValueError):
        build_configured_clients(["gemini"])


def test_routing_decisions_are_bounded():
    router = _router(FakeClient(ModelProvider.OLLAMA))
    for _ in range(DECISION_HISTORY_SIZE + 5):
        _route(router)

    assert len(router.routing_decisions) == DECISION_HISTORY_SIZE
    assert router.total_requests == DECISION_HISTORY_SIZE + 5


def test_deadline_cancels_slow_provider_call():
    slow = FakeClient(ModelProvider.OLLAMA, reply="late", delay=3.0)
    router = _router(slow)

    async def route_with_deadline():
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(router.route("prompt"), timeout=0.1)

    started = time.perf_counter()
    asyncio.run(route_with_deadline())

    assert time.perf_counter() - started < 1.0
    assert slow.prompts == ["prompt"]
    assert slow.config.total_errors == 0
