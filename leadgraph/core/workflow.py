"""
LangGraph Investigation Workflow

Investigation pipeline orchestration using LangGraph:
- Entity extraction of the free-text query
- Iterative lead discovery against the record store
- Post-filtering with contextual (LOW value) entities and deduplication
- Correlation graph, heuristic insights and a narrative summary

Features:
- Breadth-first discovery bounded by MAX_ITERATIONS and MAX_TOTAL_ENTITIES
- One failed lookup never fails the investigation
- Summaries degrade to a count-based fallback when no model answers
- Optional JSONL execution log per investigation run
"""

import time
from typing import Dict, Any, List, Optional
from datetime import datetime, timezone

from langgraph.graph import StateGraph, END

from config.settings import settings
from config.logging_config import (
    get_logger,
    setup_execution_logging,
    close_execution_logging,
    log_event,
    log_stage,
    log_entity_search,
    log_lead_discovered,
)
from leadgraph.core.state_manager import (
    InvestigationStage,
    InvestigationState,
    create_initial_state,
    validate_state,
)
from leadgraph.extraction.extractor import Entity, EntityExtractor, ExtractionResult
from leadgraph.extraction.noise import scrub_record, record_text
from leadgraph.graph.builder import CorrelationGraph, CorrelationGraphBuilder
from leadgraph.insights.heuristics import generate_insights
from leadgraph.insights.summarizer import InsightSummarizer
from leadgraph.search.client import RecordSearchClient
from leadgraph.search.responses import parse_search_response
from leadgraph.search.results import SearchResult, build_search_result

logger = get_logger(__name__)

RECURSION_HEADROOM = 10


class InvestigationError(RuntimeError):
    """Fatal failure of the investigation pipeline itself."""


# ============================================================================
# INVESTIGATION ORCHESTRATOR
# ============================================================================

class InvestigationOrchestrator:
    """
    Main investigation engine built on LangGraph.

    Architecture:
    +-----------------------------------------------------------+
    |  Initialize (validate limits, run id)                      |
    |    v                                                       |
    |  Seed Queue (extract query, HIGH then MEDIUM entities)     |
    |    v                                                       |
    |  +=============================================+           |
    |  ||  LEAD DISCOVERY LOOP                      ||           |
    |  ||  Search Batch: look up each queued entity ||           |
    |  ||  and enqueue new leads from the records   ||           |
    |  ||    |-- continue -> next batch             ||           |
    |  ||    '-- finish -> exit loop                ||           |
    |  +=============================================+           |
    |    v                                                       |
    |  Post Filter (LOW entities, fail open) + dedup             |
    |    v                                                       |
    |  Build Graph + Insights                                    |
    |    v                                                       |
    |  Summarize (model or fallback)                             |
    |    v                                                       |
    |  Finalize                                                  |
    +-----------------------------------------------------------+

    Example:
        >>> async with InvestigationOrchestrator() as orchestrator:
        ...     result = await orchestrator.investigate("9876543210")
        >>> result["metadata"]["entities_searched"]
        3
    """

    def __init__(
        self,
        record_client=None,
        extractor: Optional[EntityExtractor] = None,
        summarizer: Optional[InsightSummarizer] = None,
        max_iterations: Optional[int] = None,
        max_total_entities: Optional[int] = None,
        max_results_per_entity: Optional[int] = None,
        result_cap: Optional[int] = None,
        enable_llm: Optional[bool] = None,
        execution_log: bool = False
    ):
        """
        Args:
            record_client: Object with an async search(term, limit) method
                (a RecordSearchClient configured from settings if None)
            extractor: Entity extractor shared by seeding, discovery and the graph
            summarizer: Insight summarizer (built from settings if None)
            max_iterations: Discovery iterations (settings.MAX_ITERATIONS)
            max_total_entities: Cap on entities looked up (settings.MAX_TOTAL_ENTITIES)
            max_results_per_entity: Limit sent with each lookup
            result_cap: Results returned to callers (settings.RESULT_CAP)
            enable_llm: Use a model for the summary (settings.LLM_ENABLED)
            execution_log: Write a JSONL execution log per investigation
        """
        self.max_iterations = _positive(
            max_iterations, settings.MAX_ITERATIONS, "max_iterations"
        )
        self.max_total_entities = _positive(
            max_total_entities, settings.MAX_TOTAL_ENTITIES, "max_total_entities"
        )
        self.max_results_per_entity = _positive(
            max_results_per_entity, settings.MAX_RESULTS_PER_ENTITY, "max_results_per_entity"
        )
        self.result_cap = _positive(result_cap, settings.RESULT_CAP, "result_cap")
        self.execution_log = execution_log

        self._owns_client = record_client is None
        self.record_client = record_client or RecordSearchClient()
        self.extractor = extractor or EntityExtractor()
        self.graph_builder = CorrelationGraphBuilder(self.extractor)
        self.summarizer = summarizer or InsightSummarizer(enabled=enable_llm)

        self.workflow = self._build_workflow()

        # Set per investigate() call
        self._exec_logger = None

        logger.info(
            "Investigation orchestrator initialized",
            extra={
                "max_iterations": self.max_iterations,
                "max_total_entities": self.max_total_entities,
                "max_results_per_entity": self.max_results_per_entity,
                "result_cap": self.result_cap,
                "llm_enabled": self.summarizer.enabled
            }
        )

    async def __aenter__(self) -> "InvestigationOrchestrator":
        if self._owns_client:
            await self.record_client.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self.record_client.close()

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def investigate(self, query: str) -> Dict[str, Any]:
        """
        Run one investigation.

        Returns:
            Dictionary with:
            - query: The query as given
            - extraction: Entities of the query
            - results: Filtered, deduplicated results (at most result_cap)
            - correlation_graph: nodes, edges, clusters
            - insights: Heuristic insights
            - summary: Model-written or fallback summary
            - metadata: Counters and timing

        Raises:
            ValueError: If query is not a non-empty string
            InvestigationError: If the pipeline itself fails
        """
        if not isinstance(query, str) or not query.strip():
            raise ValueError("query cannot be empty")

        initial_state = create_initial_state(
            query=query,
            max_iterations=self.max_iterations,
            max_total_entities=self.max_total_entities,
            max_results_per_entity=self.max_results_per_entity,
            result_cap=self.result_cap,
        )
        run_id = initial_state["run_id"]

        logger.info("Starting investigation", extra={"query": query, "run_id": run_id})

        if self.execution_log:
            self._exec_logger = setup_execution_logging(run_id, console=False)
        log_event(self._exec_logger, "investigation_started", run_id, {
            "query": query,
            "max_iterations": self.max_iterations,
            "max_total_entities": self.max_total_entities
        })

        try:
            final_state = await self.workflow.ainvoke(
                initial_state,
                config={"recursion_limit": self.max_iterations + RECURSION_HEADROOM}
            )
            result = self._format_results(final_state)
        except Exception as e:
            logger.error(
                "Investigation failed",
                extra={"query": query, "run_id": run_id, "error": str(e)},
                exc_info=True
            )
            log_event(self._exec_logger, "investigation_failed", run_id, {
                "error": str(e),
                "error_type": type(e).__name__
            })
            raise InvestigationError(f"Investigation failed for {query!r}: {e}") from e
        finally:
            if self._exec_logger is not None:
                close_execution_logging(self._exec_logger)
                self._exec_logger = None

        logger.info(
            "Investigation complete",
            extra={
                "query": query,
                "run_id": run_id,
                "results": result["metadata"]["total_records"],
                "iterations": result["metadata"]["iterations_performed"],
                "search_time_ms": result["metadata"]["search_time_ms"]
            }
        )

        return result

    # ========================================================================
    # LANGGRAPH WORKFLOW CONSTRUCTION
    # ========================================================================

    def _build_workflow(self):
        workflow = StateGraph(InvestigationState)

        workflow.add_node("initialize", self._node_initialize)
        workflow.add_node("seed_queue", self._node_seed_queue)
        workflow.add_node("search_batch", self._node_search_batch)
        workflow.add_node("post_filter", self._node_post_filter)
        workflow.add_node("build_graph", self._node_build_graph)
        workflow.add_node("summarize", self._node_summarize)
        workflow.add_node("finalize", self._node_finalize)

        workflow.set_entry_point("initialize")
        workflow.add_edge("initialize", "seed_queue")

        workflow.add_conditional_edges(
            "seed_queue",
            self._decide_continue_or_finish,
            {"continue": "search_batch", "finish": "post_filter"}
        )
        workflow.add_conditional_edges(
            "search_batch",
            self._decide_continue_or_finish,
            {"continue": "search_batch", "finish": "post_filter"}
        )

        workflow.add_edge("post_filter", "build_graph")
        workflow.add_edge("build_graph", "summarize")
        workflow.add_edge("summarize", "finalize")
        workflow.add_edge("finalize", END)

        return workflow.compile()

    # ========================================================================
    # WORKFLOW NODES
    # ========================================================================

    async def _node_initialize(self, state: InvestigationState) -> Dict[str, Any]:
        logger.debug("Node: Initialize", extra={"run_id": state["run_id"]})
        validate_state(state)
        return {"stage": InvestigationStage.INITIALIZATION.value}

    async def _node_seed_queue(self, state: InvestigationState) -> Dict[str, Any]:
        """Extract the query; HIGH then MEDIUM entities seed the queue."""
        with log_stage(self._exec_logger, "seed_queue", state["run_id"]):
            extraction = self.extractor.extract(state["query"])

            queue: List[Entity] = []
            queued = set()
            for entity in extraction.high_value_entities + extraction.medium_value_entities:
                if entity.key not in queued:
                    queued.add(entity.key)
                    queue.append(entity)

        logger.info(
            "Query entities extracted",
            extra={
                "high_value": len(extraction.high_value_entities),
                "medium_value": len(extraction.medium_value_entities),
                "low_value": len(extraction.low_value_entities),
                "queued": len(queue)
            }
        )

        return {
            "stage": InvestigationStage.SEEDING.value,
            "extraction": extraction,
            "search_queue": queue,
            "queued_keys": queued,
        }

    async def _node_search_batch(self, state: InvestigationState) -> Dict[str, Any]:
        """
        One discovery iteration.

        The queue is snapshotted and cleared; every entity in the snapshot is
        looked up in order, and leads found in its records are queued for
        the next iteration.
        """
        iteration = state["iteration"] + 1
        run_id = state["run_id"]
        cap = state["max_total_entities"]
        max_iterations = state["max_iterations"]

        batch = list(state["search_queue"])
        pending = {e.key for e in batch}
        queue: List[Entity] = []
        queued = set()
        searched = set(state["searched_keys"])
        searched_entities = list(state["searched_entities"])
        raw_results = list(state["raw_results"])
        errors = list(state["errors"])
        api_calls = state["api_calls"]
        total_fetched = state["total_fetched"]
        failed_lookups = state["failed_lookups"]
        leads_discovered = state["leads_discovered"]

        logger.info(
            f"Iteration {iteration}/{max_iterations}",
            extra={"batch_size": len(batch), "searched_so_far": len(searched)}
        )

        with log_stage(self._exec_logger, f"search_batch_{iteration}", run_id):
            for entity in batch:
                if entity.key in searched:
                    continue
                if len(searched) >= cap:
                    logger.debug("Entity cap reached, skipping lookup", extra={"entity": entity.key})
                    continue

                searched.add(entity.key)
                searched_entities.append(entity)

                start = time.time()
                api_calls += 1
                try:
                    payload = await self.record_client.search(
                        entity.value, limit=state["max_results_per_entity"]
                    )
                except Exception as e:
                    failed_lookups += 1
                    errors.append({"entity": entity.key, "error": str(e), "error_type": type(e).__name__})
                    logger.warning(
                        f"Search failed for entity: {entity.value}",
                        extra={"entity_type": entity.type.value, "error": str(e), "error_type": type(e).__name__}
                    )
                    log_entity_search(
                        self._exec_logger, run_id, entity.value, entity.type.value,
                        0, 0, time.time() - start, success=False
                    )
                    continue

                parsed = parse_search_response(payload)
                total_fetched += len(parsed.records)
                new_results = [build_search_result(raw, entity) for raw in parsed.records]
                raw_results.extend(new_results)

                log_entity_search(
                    self._exec_logger, run_id, entity.value, entity.type.value,
                    len(parsed.records), len(new_results), time.time() - start
                )

                if iteration < max_iterations and len(searched) < cap:
                    for result in new_results:
                        for lead in self._discover_leads(result):
                            if len(searched) >= cap:
                                break
                            if lead.key in searched or lead.key in pending or lead.key in queued:
                                continue
                            queued.add(lead.key)
                            queue.append(lead)
                            leads_discovered += 1
                            log_lead_discovered(
                                self._exec_logger, run_id, lead.value,
                                lead.type.value, result.id, iteration
                            )

        logger.info(
            f"Iteration {iteration} complete",
            extra={"results_so_far": len(raw_results), "new_leads": len(queue)}
        )

        return {
            "stage": InvestigationStage.SEARCHING.value,
            "iteration": iteration,
            "search_queue": queue,
            "queued_keys": queued,
            "searched_keys": searched,
            "searched_entities": searched_entities,
            "raw_results": raw_results,
            "errors": errors,
            "api_calls": api_calls,
            "total_fetched": total_fetched,
            "failed_lookups": failed_lookups,
            "leads_discovered": leads_discovered,
        }

    def _discover_leads(self, result: SearchResult) -> List[Entity]:
        extraction = self.extractor.extract_from_record(
            scrub_record(result.record), table=result.table
        )
        return extraction.high_value_entities + extraction.medium_value_entities

    async def _node_post_filter(self, state: InvestigationState) -> Dict[str, Any]:
        """Narrow with LOW query entities (fail open), then dedupe by id."""
        with log_stage(self._exec_logger, "post_filter", state["run_id"]):
            results = filter_results(state["raw_results"], state["extraction"])
            results = dedupe_results(results)

        logger.info(
            "Results filtered",
            extra={"raw": len(state["raw_results"]), "kept": len(results)}
        )

        return {"stage": InvestigationStage.FILTERING.value, "results": results}

    async def _node_build_graph(self, state: InvestigationState) -> Dict[str, Any]:
        with log_stage(self._exec_logger, "build_graph", state["run_id"]):
            graph = self.graph_builder.build(state["results"])
            insights = generate_insights(state["results"], state["extraction"], graph)

        return {
            "stage": InvestigationStage.GRAPH_BUILDING.value,
            "graph": graph,
            "insights": insights,
        }

    async def _node_summarize(self, state: InvestigationState) -> Dict[str, Any]:
        with log_stage(self._exec_logger, "summarize", state["run_id"]):
            summary = await self.summarizer.summarize(
                state["query"],
                state["results"],
                state["graph"],
                state["insights"],
                exec_logger=self._exec_logger,
                run_id=state["run_id"],
            )

        return {"stage": InvestigationStage.SUMMARIZING.value, "summary": summary}

    async def _node_finalize(self, state: InvestigationState) -> Dict[str, Any]:
        completed_at = datetime.now(timezone.utc)
        log_event(self._exec_logger, "investigation_completed", state["run_id"], {
            "results": len(state["results"]),
            "iterations": state["iteration"],
            "api_calls": state["api_calls"]
        })
        return {"stage": InvestigationStage.COMPLETED.value, "completed_at": completed_at}

    def _decide_continue_or_finish(self, state: InvestigationState) -> str:
        if state["iteration"] >= state["max_iterations"]:
            logger.info(f"Max iterations ({state['max_iterations']}) reached")
            return "finish"
        if not state["search_queue"]:
            logger.info("No more leads to search")
            return "finish"
        return "continue"

    # ========================================================================
    # RESULT FORMATTING
    # ========================================================================

    def _format_results(self, state: InvestigationState) -> Dict[str, Any]:
        results = state["results"]
        graph: CorrelationGraph = state["graph"]
        summary = state["summary"]
        completed_at = state.get("completed_at") or datetime.now(timezone.utc)

        return {
            "query": state["query"],
            "extraction": state["extraction"].to_dict(),
            "results": [r.to_dict() for r in results[:state["result_cap"]]],
            "correlation_graph": graph.to_dict(),
            "insights": state["insights"].to_dict(),
            "summary": summary.to_dict(),
            "metadata": {
                "run_id": state["run_id"],
                "search_time_ms": round(
                    (completed_at - state["start_time"]).total_seconds() * 1000, 1
                ),
                "iterations_performed": state["iteration"],
                "api_calls": state["api_calls"],
                "total_fetched": state["total_fetched"],
                "total_records": len(results),
                "entities_searched": len(state["searched_entities"]),
                "searched_entities": [e.key for e in state["searched_entities"]],
                "failed_lookups": state["failed_lookups"],
                "leads_discovered": state["leads_discovered"],
                "llm_used": not summary.used_fallback,
            }
        }


# ============================================================================
# FILTERING
# ============================================================================

def filter_results(
    results: List[SearchResult],
    extraction: ExtractionResult
) -> List[SearchResult]:
    """
    Keep results whose record mentions at least one LOW query entity.

    No LOW entities means no filtering. When the filter would remove every
    result the input is returned unchanged.
    """
    terms = [e.value.lower() for e in extraction.low_value_entities]
    if not terms:
        return list(results)

    kept = [r for r in results if any(t in record_text(r.record).lower() for t in terms)]
    if not kept and results:
        logger.info("Filtering removed all results, keeping unfiltered")
        return list(results)
    return kept


def dedupe_results(results: List[SearchResult]) -> List[SearchResult]:
    """First occurrence of each result id, order preserved."""
    seen = set()
    unique = []
    for result in results:
        if result.id in seen:
            continue
        seen.add(result.id)
        unique.append(result)
    return unique


def _positive(value: Optional[int], default: int, name: str) -> int:
    value = default if value is None else value
    if not isinstance(value, int) or value < 1:
        raise ValueError(f"{name} must be a positive integer")
    return value


# ============================================================================
# CONVENIENCE FUNCTION
# ============================================================================

async def investigate(query: str, **options) -> Dict[str, Any]:
    """
    Convenience function for a one-off investigation.

    Example:
        >>> from leadgraph.core.workflow import investigate
        >>> result = await investigate("Contact RAHUL SHARMA at 9876543210")
        >>> print(result["summary"]["summary"])
    """
    async with InvestigationOrchestrator(**options) as orchestrator:
        return await orchestrator.investigate(query)


__all__ = [
    "InvestigationOrchestrator",
    "InvestigationError",
    "filter_results",
    "dedupe_results",
    "investigate",
]
