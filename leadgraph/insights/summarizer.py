"""
Insight Summarizer

Asks a language model for a short narrative over the investigation and falls
back to the count-based summary whenever that is not possible.

Features:
- Compact prompt: top 10 results (up to 8 non-empty fields each), top
  entities, strong connections, red flags
- Router call under asyncio.wait_for; on timeout the in-flight provider
  request is cancelled, so the caller never waits past the deadline
- JSON pulled out of free text by string-aware bracket matching
- Never raises: timeout, provider failure or bad output all give the
  fallback summary
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from leadgraph.graph.builder import CorrelationGraph
from leadgraph.insights.heuristics import Insights, fallback_summary
from leadgraph.models.base_client import TaskType
from leadgraph.search.results import SearchResult
from config.settings import settings
from config.logging_config import get_logger, log_model_call

logger = get_logger(__name__)

PROMPT_RESULT_LIMIT = 10
PROMPT_FIELD_LIMIT = 8
PROMPT_ENTITY_LIMIT = 5

SYSTEM_PROMPT = """You are an expert investigation analyst.
Analyze the search results and provide actionable insights.

Focus on:
1. Summary of findings (2-3 sentences)
2. Key findings (most important discoveries)
3. Entity connections (relationships between entities)
4. Recommendations for further investigation

Return JSON format:
{
  "summary": "Brief summary of the investigation results",
  "keyFindings": ["finding 1", "finding 2"],
  "entityConnections": ["connection 1", "connection 2"],
  "recommendations": ["recommendation 1", "recommendation 2"],
  "confidence": 0.0-1.0
}"""


@dataclass
class InsightSummary:
    summary: str
    key_findings: List[str] = field(default_factory=list)
    entity_connections: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    confidence: float = 0.0
    model_used: Optional[str] = None
    used_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "key_findings": list(self.key_findings),
            "entity_connections": list(self.entity_connections),
            "recommendations": list(self.recommendations),
            "confidence": self.confidence,
            "model_used": self.model_used,
            "used_fallback": self.used_fallback,
        }


# ============================================================================
# JSON EXTRACTION
# ============================================================================

def extract_json(text: str) -> Any:
    """
    Parse the first balanced {...} or [...] in text.

    Brackets inside string literals are ignored. Candidates that do not parse
    are skipped and the scan continues after them.

    Raises:
        ValueError: If no parseable JSON value is found
    """
    if not isinstance(text, str):
        raise ValueError("Model output is not text")

    start = 0
    while True:
        begin = _next_open(text, start)
        if begin < 0:
            raise ValueError("No JSON object found in model output")
        end = _matching_close(text, begin)
        if end < 0:
            start = begin + 1
            continue
        try:
            return json.loads(text[begin:end + 1])
        except json.JSONDecodeError:
            start = begin + 1


def _next_open(text: str, start: int) -> int:
    positions = [p for p in (text.find("{", start), text.find("[", start)) if p >= 0]
    return min(positions) if positions else -1


def _matching_close(text: str, begin: int) -> int:
    stack = []
    in_string = False
    escaped = False

    for i in range(begin, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]":
            if not stack or stack.pop() != ch:
                return -1
            if not stack:
                return i
    return -1


# ============================================================================
# PROMPT
# ============================================================================

def _result_brief(index: int, result: SearchResult) -> Dict[str, Any]:
    fields = {}
    for key, value in result.record.items():
        if value is None or value == "":
            continue
        fields[key] = value
        if len(fields) >= PROMPT_FIELD_LIMIT:
            break
    return {
        "index": index,
        "table": result.table,
        "score": round(result.score, 2),
        "fields": fields,
    }


def build_prompt(
    query: str,
    results: Sequence[SearchResult],
    graph: CorrelationGraph,
    insights: Optional[Insights] = None
) -> str:
    brief = [
        _result_brief(i + 1, r) for i, r in enumerate(results[:PROMPT_RESULT_LIMIT])
    ]
    sections = [
        f'Query: "{query}"',
        f"Results ({len(results)} total, showing top {PROMPT_RESULT_LIMIT}):\n"
        f"{json.dumps(brief, indent=2, ensure_ascii=False, default=str)}",
    ]

    if insights is not None and insights.top_entities:
        lines = [
            f"- {e['value']} ({e['type']}, {e['occurrences']} occurrences)"
            for e in insights.top_entities[:PROMPT_ENTITY_LIMIT]
        ]
        sections.append("Top entities:\n" + "\n".join(lines))

    strong = [e for e in graph.edges if e.weight >= 2][:PROMPT_ENTITY_LIMIT]
    if strong:
        lines = [f"- {e.source} <-> {e.target} (weight {e.weight})" for e in strong]
        sections.append("Strong connections:\n" + "\n".join(lines))

    if insights is not None and insights.red_flags:
        sections.append("Red flags:\n" + "\n".join(f"- {f}" for f in insights.red_flags))

    sections.append("Provide comprehensive analysis.")
    return "\n\n".join(sections)


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v not in (None, "")]


# ============================================================================
# SUMMARIZER
# ============================================================================

class InsightSummarizer:
    """
    Model-backed summary with a deterministic fallback.

    Example:
        >>> summarizer = InsightSummarizer()
        >>> summary = await summarizer.summarize(query, results, graph, insights)
        >>> summary.used_fallback
        False
    """

    def __init__(
        self,
        router=None,
        enabled: Optional[bool] = None,
        timeout: Optional[float] = None
    ):
        self._router = router
        self.enabled = settings.LLM_ENABLED if enabled is None else enabled
        self.timeout = float(timeout if timeout is not None else settings.LLM_TIMEOUT)

    @property
    def router(self):
        # Built on first use; no provider clients exist while LLM is disabled
        if self._router is None:
            from leadgraph.models.router import ModelRouter
            self._router = ModelRouter()
        return self._router

    async def summarize(
        self,
        query: str,
        results: Sequence[SearchResult],
        graph: CorrelationGraph,
        insights: Optional[Insights] = None,
        exec_logger=None,
        run_id: str = ""
    ) -> InsightSummary:
        """
        Summary of one investigation; the fallback on any failure.

        exec_logger and run_id, when given, receive a model_called event.
        """
        if not self.enabled:
            return self.fallback(query, results, graph)

        prompt = build_prompt(query, results, graph, insights)
        try:
            response = await asyncio.wait_for(
                self.router.route(
                    prompt=prompt,
                    task_type=TaskType.INSIGHT_SUMMARY,
                    system_prompt=SYSTEM_PROMPT,
                ),
                timeout=self.timeout
            )
            data = extract_json(response.content)
            if not isinstance(data, dict) or not data.get("summary"):
                raise ValueError("Model output has no summary")
        except asyncio.TimeoutError:
            logger.warning("Summary timed out, using fallback", extra={"timeout": self.timeout})
            return self.fallback(query, results, graph)
        except Exception as e:
            logger.warning(
                "Summary failed, using fallback",
                extra={"error": str(e), "error_type": type(e).__name__}
            )
            return self.fallback(query, results, graph)

        try:
            confidence = float(data.get("confidence", 0.0))
        except (TypeError, ValueError):
            confidence = 0.0

        meta = response.metadata or {}
        log_model_call(
            exec_logger, run_id, response.model_name,
            meta.get("input_tokens", 0), meta.get("output_tokens", 0),
            response.cost, response.latency_ms / 1000
        )

        return InsightSummary(
            summary=str(data["summary"]),
            key_findings=_string_list(data.get("keyFindings")),
            entity_connections=_string_list(data.get("entityConnections")),
            recommendations=_string_list(data.get("recommendations")),
            confidence=min(max(confidence, 0.0), 1.0),
            model_used=f"{response.provider.value}/{response.model_name}",
        )

    def fallback(
        self,
        query: str,
        results: Sequence[SearchResult],
        graph: CorrelationGraph
    ) -> InsightSummary:
        return InsightSummary(**fallback_summary(query, results, graph), used_fallback=True)


__all__ = [
    "InsightSummary",
    "InsightSummarizer",
    "build_prompt",
    "extract_json",
    "SYSTEM_PROMPT",
]
