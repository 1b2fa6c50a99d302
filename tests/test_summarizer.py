"""
Insight Summarizer Tests

The router is replaced by small fakes; no provider is ever contacted.
"""

import asyncio
import time

import pytest

from leadgraph.graph.builder import build_correlation_graph
from leadgraph.insights.summarizer import InsightSummarizer, build_prompt, extract_json
from leadgraph.models.base_client import ModelProvider, ModelResponse
from leadgraph.search.results import SearchResult


RESULTS = [
    SearchResult(id="b2b_1", table="b2b", record={"id": 1, "phone": "9000000000", "city": "Delhi"}),
    SearchResult(id="b2b_2", table="b2b", record={"id": 2, "phone": "9000000000", "email": "a@b.com"}),
]


class ReplyRouter:
    def __init__(self, content):
        self.content = content
        self.calls = []

    async def route(self, prompt, task_type=None, system_prompt=None, **kwargs):
        self.calls.append(prompt)
        return ModelResponse(
            content=self.content,
            provider=ModelProvider.OLLAMA,
            model_name="qwen3:4b",
            tokens_used=120,
            cost=0.0,
            latency_ms=42.0,
            metadata={"input_tokens": 100, "output_tokens": 20},
        )


class FailingRouter:
    async def route(self, *args, **kwargs):
        raise RuntimeError("All providers failed")


class SlowRouter(ReplyRouter):
    """Answers after `delay` seconds unless cancelled first."""

    def __init__(self, content, delay=3.0):
        super().__init__(content)
        self.delay = delay
        self.finished = False

    async def route(self, *args, **kwargs):
        await asyncio.sleep(self.delay)
        self.finished = True
        return await super().route(*args, **kwargs)


def _summarize(summarizer, query="9000000000"):
    graph = build_correlation_graph(RESULTS)
    return asyncio.run(summarizer.summarize(query, RESULTS, graph))


# ============================================================================
# JSON EXTRACTION
# ============================================================================

def test_extract_json_from_prose():
    text = 'Sure! Here is the analysis:\n{"summary": "ok", "confidence": 0.9}\nHope it helps.'
    assert extract_json(text) == {"summary": "ok", "confidence": 0.9}


def test_extract_json_ignores_braces_in_strings():
    text = 'Result: {"summary": "phone {9000000000} seen in [b2b]", "keyFindings": []}'
    assert extract_json(text)["summary"] == "phone {9000000000} seen in [b2b]"


def test_extract_json_skips_unparseable_candidates():
    text = "Use {placeholder} then {\"summary\": \"real\"}"
    assert extract_json(text) == {"summary": "real"}


@pytest.mark.parametrize("text", ["no json here", '{"summary": "cut off', None])
def test_extract_json_raises_without_json(text):
    with pytest.raises(ValueError):
        extract_json(text)


# ============================================================================
# SUMMARIES
# ============================================================================

def test_model_summary_parsed():
    router = ReplyRouter(
        'Analysis follows.\n'
        '{"summary": "Phone 9000000000 links two records.", '
        '"keyFindings": ["shared phone"], "entityConnections": ["phone <-> email"], '
        '"recommendations": ["check email"], "confidence": 1.7}'
    )
    summary = _summarize(InsightSummarizer(router=router, enabled=True, timeout=5))

    assert not summary.used_fallback
    assert summary.summary == "Phone 9000000000 links two records."
    assert summary.key_findings == ["shared phone"]
    assert summary.entity_connections == ["phone <-> email"]
    assert summary.recommendations == ["check email"]
    assert summary.confidence == 1.0
    assert summary.model_used == "ollama/qwen3:4b"
    assert 'Query: "9000000000"' in router.calls[0]


def test_reply_without_summary_falls_back():
    summary = _summarize(InsightSummarizer(router=ReplyRouter('{"confidence": 0.5}'), enabled=True))
    assert summary.used_fallback
    assert summary.confidence == 0.7


def test_failing_router_falls_back():
    summary = _summarize(InsightSummarizer(router=FailingRouter(), enabled=True))
    assert summary.used_fallback
    assert summary.model_used is None
    assert summary.summary.startswith('Found 2 results for "9000000000".')


def test_slow_router_times_out():
    router = SlowRouter('{"summary": "late"}')
    summarizer = InsightSummarizer(router=router, enabled=True, timeout=0.1)

    started = time.perf_counter()
    summary = _summarize(summarizer)
    elapsed = time.perf_counter() - started

    assert summary.used_fallback
    assert elapsed < 1.0
    assert router.finished is False


def test_disabled_summarizer_never_builds_router():
    summarizer = InsightSummarizer(enabled=False)
    summary = _summarize(summarizer)
    assert summary.used_fallback
    assert summarizer._router is None


def test_build_prompt_limits_fields():
    record = {f"field_{i}": f"value {i}" for i in range(12)}
    record["empty"] = ""
    results = [SearchResult(id="t_1", table="t", record=record)]
    prompt = build_prompt("q", results, build_correlation_graph([]))

    assert '"field_7"' in prompt
    assert '"field_8"' not in prompt
    assert '"empty"' not in prompt
    assert prompt.endswith("Provide comprehensive analysis.")
