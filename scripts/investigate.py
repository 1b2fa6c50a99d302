#!/usr/bin/env python3
"""
Investigation Script - Run one investigation from the command line

Usage examples:
    python scripts/investigate.py "9876543210"
    python scripts/investigate.py "Contact RAHUL SHARMA at rahul.sharma@gmail.com" --save
    python scripts/investigate.py "PAN ABCDE1234F in Delhi" -i 3 --no-llm
    python scripts/investigate.py "9876543210" --api-url http://records:8080 --token $TOKEN -s -o out/run.json

Prints the query extraction, discovery statistics, top results, the
correlation graph, heuristic insights and the summary; optionally saves the
full result as JSON.
"""

import argparse
import asyncio
import json
import re
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

# Project root must be importable when run as a plain script
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from leadgraph.core.workflow import InvestigationOrchestrator, InvestigationError
from leadgraph.search.client import RecordSearchClient
from config.logging_config import get_logger
from config.settings import settings

logger = get_logger(__name__)

TOP_RESULTS_SHOWN = 10
RULE_WIDTH = 80
RESULTS_DIR = "investigation_results"


# ============================================================================
# FORMATTING UTILITIES
# ============================================================================

def banner(title: str) -> str:
    rule = "=" * RULE_WIDTH
    return f"\n{rule}\n{title}\n{rule}\n"


def section(title: str) -> str:
    return f"\n{title}\n{'-' * RULE_WIDTH}"


# ============================================================================
# RESULT DISPLAY
# ============================================================================

def display_results(result: Dict[str, Any], duration: float):
    extraction = result["extraction"]
    metadata = result["metadata"]
    graph = result["correlation_graph"]
    insights = result["insights"]
    summary = result["summary"]

    print(banner("INVESTIGATION RESULTS"))

    print(section("QUERY ENTITIES"))
    if not extraction["entities"]:
        print("  (none recognized)")
    for entity in extraction["entities"]:
        print(
            f"  [{entity['search_value']:<6}] {entity['type']:<10} {entity['value']}"
            f"  (confidence {entity['confidence']:.2f})"
        )

    print(section("DISCOVERY"))
    print(f"  Iterations:        {metadata['iterations_performed']}")
    print(f"  Entities searched: {metadata['entities_searched']}")
    print(f"  Leads discovered:  {metadata['leads_discovered']}")
    print(f"  API calls:         {metadata['api_calls']} ({metadata['failed_lookups']} failed)")
    print(f"  Records fetched:   {metadata['total_fetched']:,}")
    print(f"  Unique results:    {metadata['total_records']:,}")
    print(f"  Duration:          {duration:.1f}s")

    if result["results"]:
        print(section(f"TOP RESULTS (showing {min(TOP_RESULTS_SHOWN, len(result['results']))})"))
        ranked = sorted(result["results"], key=lambda r: r["score"], reverse=True)
        for i, item in enumerate(ranked[:TOP_RESULTS_SHOWN], 1):
            fields = ", ".join(item["matched_fields"]) or "-"
            print(f"  {i:>2}. {item['table']:<20} score {item['score']:.2f}  matched: {fields}")

    print(section("CORRELATION GRAPH"))
    print(f"  Nodes: {len(graph['nodes'])}  Edges: {len(graph['edges'])}  Clusters: {len(graph['clusters'])}")
    for edge in [e for e in graph["edges"] if e["strength"] != "weak"][:5]:
        print(f"  {edge['source']} <-> {edge['target']}  ({edge['strength']}, weight {edge['weight']})")

    print(section(f"INSIGHTS (risk: {insights['risk_level'].upper()})"))
    for flag in insights["red_flags"]:
        print(f"  ! {flag}")
    for pattern in insights["patterns"]:
        print(f"  * {pattern}")
    for rec in insights["recommendations"]:
        print(f"  > {rec}")

    source = "fallback" if summary["used_fallback"] else summary["model_used"]
    print(section(f"SUMMARY ({source})"))
    print(f"  {summary['summary']}")
    for finding in summary["key_findings"]:
        print(f"  - {finding}")
    for connection in summary["entity_connections"]:
        print(f"  - {connection}")

    print(banner("INVESTIGATION COMPLETE"))


# ============================================================================
# FILE PERSISTENCE
# ============================================================================

def default_output_path(query: str) -> Path:
    slug = re.sub(r"[^A-Za-z0-9_-]+", "_", query).strip("_")[:60] or "query"
    return Path(RESULTS_DIR) / f"{slug}_{datetime.now():%Y%m%d_%H%M%S}.json"


def write_result_file(query: str, result: Dict[str, Any], duration: float, path: Path) -> bool:
    document = {
        "query": query,
        "saved_at": datetime.now().isoformat(),
        "duration_seconds": round(duration, 3),
        "investigation": result,
    }
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(document, indent=2, ensure_ascii=False, default=str), encoding="utf-8")
    except OSError as e:
        logger.error("Could not write result file", extra={"path": str(path), "error": str(e)})
        print(f"\nFailed to save results: {e}")
        return False

    print(f"\nResults saved: {path} ({path.stat().st_size / 1024:.1f} KB)")
    return True


# ============================================================================
# RUN
# ============================================================================

async def run(args: argparse.Namespace) -> Optional[Dict[str, Any]]:
    query = args.query.strip()
    print(banner("LEADGRAPH INVESTIGATION"))
    print(f"Query:          {query}")
    print(f"Max Iterations: {args.iterations}")
    print(f"Record store:   {args.api_url or settings.RECORD_API_BASE_URL}")
    print(f"LLM summary:    {not args.no_llm}")

    started = time.perf_counter()
    async with RecordSearchClient(base_url=args.api_url, bearer_token=args.token) as client:
        orchestrator = InvestigationOrchestrator(
            record_client=client,
            max_iterations=args.iterations,
            max_results_per_entity=args.max_results,
            enable_llm=not args.no_llm,
            execution_log=True
        )
        try:
            result = await orchestrator.investigate(query)
        except InvestigationError as e:
            print(f"\nInvestigation failed: {e}")
            return None
    elapsed = time.perf_counter() - started

    display_results(result, elapsed)

    if args.save or args.output:
        path = Path(args.output) if args.output else default_output_path(query)
        write_result_file(query, result, elapsed, path)

    return result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="investigate",
        description="leadgraph - entity extraction, lead discovery and correlation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "examples:\n"
            '  investigate "9876543210"\n'
            '  investigate "RAHUL SHARMA rahul.sharma@gmail.com" --save\n'
            '  investigate "PAN ABCDE1234F in Delhi" -i 3 --no-llm'
        ),
    )
    parser.add_argument("query", help="Free-text query (phone, email, ID, name, place...)")
    parser.add_argument("-i", "--iterations", type=int, default=settings.MAX_ITERATIONS,
                        help=f"Max discovery iterations (default: {settings.MAX_ITERATIONS})")
    parser.add_argument("--max-results", type=int, default=settings.MAX_RESULTS_PER_ENTITY,
                        help=f"Records requested per entity (default: {settings.MAX_RESULTS_PER_ENTITY})")
    parser.add_argument("--api-url", help="Record store base URL")
    parser.add_argument("--token", help="Record store bearer token")
    parser.add_argument("--no-llm", action="store_true", help="Use the heuristic summary only")
    parser.add_argument("-s", "--save", action="store_true", help="Save results to JSON")
    parser.add_argument("-o", "--output", help="Output file path (implies --save)")
    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    if not args.query.strip():
        parser.error("Query cannot be empty")
    if not 1 <= args.iterations <= 50:
        parser.error("--iterations must be between 1 and 50")
    if args.max_results < 1:
        parser.error("--max-results must be positive")

    sys.exit(0 if asyncio.run(run(args)) else 1)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(130)
