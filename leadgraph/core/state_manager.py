"""
Investigation State

The state dict that flows through the LangGraph investigation workflow.

Each node receives the current state and returns only the keys it changed;
LangGraph merges them. Lists and sets are replaced rather than mutated so a
node never edits a value another node already handed on.

Flow:
  initialize → seed_queue → search_batch (loop) → post_filter
  → build_graph → summarize → finalize
"""

from typing import TypedDict, List, Dict, Any, Optional, Set
from datetime import datetime, timezone
from enum import Enum
import uuid

from leadgraph.extraction.extractor import Entity, ExtractionResult
from leadgraph.graph.builder import CorrelationGraph
from leadgraph.insights.heuristics import Insights
from leadgraph.insights.summarizer import InsightSummary
from leadgraph.search.results import SearchResult


class InvestigationStage(str, Enum):
    """Workflow stages, recorded in state["stage"] and the execution log."""
    INITIALIZATION = "initialization"
    SEEDING = "seeding"
    SEARCHING = "searching"
    FILTERING = "filtering"
    GRAPH_BUILDING = "graph_building"
    SUMMARIZING = "summarizing"
    COMPLETED = "completed"
    FAILED = "failed"


class InvestigationState(TypedDict, total=False):
    """
    Working state of one investigation.

    Only the orchestrator reads and writes it; callers get the formatted
    result of InvestigationOrchestrator.investigate().
    """

    # === INPUT ===
    query: str
    run_id: str

    # === LIMITS ===
    max_iterations: int
    max_total_entities: int
    max_results_per_entity: int
    result_cap: int

    # === WORKFLOW CONTROL ===
    stage: str
    iteration: int
    start_time: datetime
    completed_at: Optional[datetime]

    # === DISCOVERY ===
    extraction: ExtractionResult  # Extraction of the query itself
    search_queue: List[Entity]  # FIFO of entities waiting for lookup
    queued_keys: Set[str]  # "type:value" keys currently queued
    searched_keys: Set[str]  # "type:value" keys already looked up
    searched_entities: List[Entity]  # Lookup order, for reporting
    raw_results: List[SearchResult]  # Every result, duplicates included

    # === OUTPUT ===
    results: List[SearchResult]  # Filtered + deduplicated
    graph: Optional[CorrelationGraph]
    insights: Optional[Insights]
    summary: Optional[InsightSummary]

    # === METRICS ===
    api_calls: int
    total_fetched: int
    failed_lookups: int
    leads_discovered: int
    errors: List[Dict[str, Any]]


def create_initial_state(
    query: str,
    max_iterations: int,
    max_total_entities: int,
    max_results_per_entity: int,
    result_cap: int,
    run_id: Optional[str] = None
) -> InvestigationState:
    """
    Fresh state for one investigation.

    Example:
        >>> state = create_initial_state("9876543210", 5, 50, 100, 500)
        >>> state["stage"]
        'initialization'
    """
    return InvestigationState(
        query=query,
        run_id=run_id or f"inv_{uuid.uuid4().hex[:12]}",
        max_iterations=max_iterations,
        max_total_entities=max_total_entities,
        max_results_per_entity=max_results_per_entity,
        result_cap=result_cap,
        stage=InvestigationStage.INITIALIZATION.value,
        iteration=0,
        start_time=datetime.now(timezone.utc),
        completed_at=None,
        extraction=ExtractionResult(),
        search_queue=[],
        queued_keys=set(),
        searched_keys=set(),
        searched_entities=[],
        raw_results=[],
        results=[],
        graph=None,
        insights=None,
        summary=None,
        api_calls=0,
        total_fetched=0,
        failed_lookups=0,
        leads_discovered=0,
        errors=[],
    )


def validate_state(state: InvestigationState) -> bool:
    """
    Check the keys the loop depends on.

    Raises:
        ValueError: On a missing or mistyped key
    """
    required = [
        "query", "run_id", "iteration", "max_iterations",
        "max_total_entities", "search_queue", "searched_keys"
    ]
    for key in required:
        if key not in state:
            raise ValueError(f"Missing required field: {key}")

    if not isinstance(state["iteration"], int):
        raise ValueError("iteration must be an integer")
    if not isinstance(state["search_queue"], list):
        raise ValueError("search_queue must be a list")

    return True


__all__ = [
    "InvestigationStage",
    "InvestigationState",
    "create_initial_state",
    "validate_state",
]
