"""
Provider Client Tests

Exercises the Ollama, OpenAI and Claude clients with their SDK objects
swapped for in-process fakes, so no network or API key is needed.

Test Coverage:
- Ollama model fallback chain and reasoning-model replies
- OpenAI JSON mode
- Claude text-block joining, one request per call
- Token counting fallback
"""

import asyncio
from types import SimpleNamespace

import httpx
import pytest
from openai import NotFoundError

from leadgraph.models.base_client import ModelConfig, ModelProvider
from leadgraph.models.claude_client import ClaudeClient
from leadgraph.models.ollama_client import OllamaClient, strip_reasoning
from leadgraph.models.openai_client import OpenAIClient, TokenCounter


def _config(provider, model="test-model", api_key="test-key"):
    return ModelConfig(
        provider=provider,
        model_name=model,
        api_key=api_key,
        base_url="http://localhost:11434/v1" if provider == ModelProvider.OLLAMA else None,
        max_retries=1,
        rate_limit=60000,
    )


def _chat_response(content, reasoning=None):
    message = SimpleNamespace(content=content, reasoning=reasoning)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _not_found(model):
    request = httpx.Request("POST", "http://localhost:11434/v1/chat/completions")
    response = httpx.Response(404, request=request)
    return NotFoundError(f"model '{model}' not found", response=response, body=None)


class FakeCompletions:
    def __init__(self, replies):
        self.replies = replies
        self.calls = []

    async def create(self, **params):
        self.calls.append(params)
        reply = self.replies[params["model"]]
        if isinstance(reply, Exception):
            raise reply
        return reply


# ============================================================================
# OLLAMA
# ============================================================================

def test_strip_reasoning():
    assert strip_reasoning("<think>step 1\nstep 2</think>\n{\"summary\": \"x\"}") == '{"summary": "x"}'
    assert strip_reasoning(None) == ""


def test_ollama_falls_back_to_next_model():
    client = OllamaClient(
        config=_config(ModelProvider.OLLAMA, model="qwen3:4b", api_key="ollama"),
        fallback_models=["mistral:7b"]
    )
    completions = FakeCompletions({
        "qwen3:4b": _not_found("qwen3:4b"),
        "mistral:7b": _chat_response("<think>hmm</think>done"),
    })
    client.client = SimpleNamespace(chat=SimpleNamespace(completions=completions))

    response = asyncio.run(client.call("prompt"))

    assert response.content == "done"
    assert response.model_name == "mistral:7b"
    assert [c["model"] for c in completions.calls] == ["qwen3:4b", "mistral:7b"]
    assert response.cost == 0.0


def test_ollama_no_model_available():
    client = OllamaClient(
        config=_config(ModelProvider.OLLAMA, model="qwen3:4b", api_key="ollama"),
        fallback_models=[]
    )
    client.client = SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions({
        "qwen3:4b": _not_found("qwen3:4b"),
    })))

    with pytest.raises(RuntimeError, match="No Ollama model available"):
        asyncio.run(client.call("prompt"))


def test_ollama_reasoning_only_reply():
    client = OllamaClient(config=_config(ModelProvider.OLLAMA, api_key="ollama"), fallback_models=[])
    message = SimpleNamespace(content="", reasoning='{"summary": "from reasoning"}')
    assert client._message_text(message) == '{"summary": "from reasoning"}'


def test_ollama_unreachable_is_unavailable():
    client = OllamaClient(config=_config(ModelProvider.OLLAMA, api_key="ollama"), fallback_models=[])

    class Unreachable:
        def with_options(self, **kwargs):
            return self

        @property
        def models(self):
            raise ConnectionError("connection refused")

    client.client = Unreachable()
    assert asyncio.run(client.is_available()) is False


def test_ollama_reachable_is_available():
    client = OllamaClient(config=_config(ModelProvider.OLLAMA, api_key="ollama"), fallback_models=[])

    class Models:
        async def list(self):
            return []

    client.client = SimpleNamespace(with_options=lambda **kwargs: SimpleNamespace(models=Models()))
    assert asyncio.run(client.is_available()) is True


# ============================================================================
# OPENAI
# ============================================================================

def test_openai_json_mode():
    client = OpenAIClient(config=_config(ModelProvider.OPENAI, model="gpt-test"))
    completions = FakeCompletions({"gpt-test": _chat_response('{"summary": "ok"}')})
    client.client = SimpleNamespace(chat=SimpleNamespace(completions=completions))

    assert asyncio.run(client.call_with_json("prompt", system_prompt="system")) == {"summary": "ok"}
    params = completions.calls[0]
    assert params["response_format"] == {"type": "json_object"}
    assert params["messages"][0] == {"role": "system", "content": "system"}


def test_openai_needs_key():
    client = OpenAIClient(config=_config(ModelProvider.OPENAI, api_key=""))
    assert asyncio.run(client.is_available()) is False


# ============================================================================
# CLAUDE
# ============================================================================

class FakeMessages:
    def __init__(self):
        self.calls = []

    async def create(self, **params):
        self.calls.append(params)
        return SimpleNamespace(content=[
            SimpleNamespace(type="text", text="Phone links "),
            SimpleNamespace(type="tool_use", text="ignored"),
            SimpleNamespace(type="text", text="two records."),
        ])


def _claude():
    client = ClaudeClient(config=_config(ModelProvider.ANTHROPIC, model="claude-test"))
    client.client = SimpleNamespace(messages=FakeMessages())
    return client


def test_claude_joins_text_blocks():
    client = _claude()

    response = asyncio.run(client.call("prompt", system_prompt="system"))

    assert response.content == "Phone links two records."
    params = client.client.messages.calls[0]
    assert params["system"] == "system"
    assert params["messages"] == [{"role": "user", "content": "prompt"}]


def test_claude_repeated_prompt_is_sent_again():
    client = _claude()

    async def twice():
        await client.call("prompt")
        await client.call("prompt")

    asyncio.run(twice())
    assert len(client.client.messages.calls) == 2


# ============================================================================
# TOKENS
# ============================================================================

def test_token_counter_rough_fallback():
    counter = TokenCounter()
    counter._encoder = None
    assert counter.count("x" * 40) == 10
