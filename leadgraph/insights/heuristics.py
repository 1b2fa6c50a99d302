"""
Heuristic Insights

Deterministic observations drawn from simple counts over the results and the
correlation graph. They feed the summary prompt, and they are what the user
gets when no language model is reachable.

Features:
- Entity breakdown of the query, top entities by occurrence
- Red flags: highly connected entities, cross-source entities, reused phones
- Patterns: shared contacts, shared locations, links through one identifier
- Recommendations
- Risk level (low / medium / high)
- Fallback summary with the same shape as a model-written one
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from leadgraph.extraction.extractor import EntityType, ExtractionResult
from leadgraph.graph.builder import CorrelationGraph, GraphNode
from leadgraph.search.results import SearchResult

TOP_ENTITY_LIMIT = 10
HIGH_CONNECTION_THRESHOLD = 3
LARGE_RESULT_SET = 10
BROAD_RESULT_SET = 50
FALLBACK_CONFIDENCE = 0.7


@dataclass
class Insights:
    high_value_matches: int = 0
    total_connections: int = 0
    entity_breakdown: Dict[str, int] = field(default_factory=dict)
    top_entities: List[Dict[str, Any]] = field(default_factory=list)
    red_flags: List[str] = field(default_factory=list)
    patterns: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    risk_level: str = "low"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "high_value_matches": self.high_value_matches,
            "total_connections": self.total_connections,
            "entity_breakdown": dict(self.entity_breakdown),
            "top_entities": list(self.top_entities),
            "red_flags": list(self.red_flags),
            "patterns": list(self.patterns),
            "recommendations": list(self.recommendations),
            "risk_level": self.risk_level,
        }


def risk_level(red_flag_count: int, result_count: int) -> str:
    if red_flag_count >= 5 or result_count > 100:
        return "high"
    if red_flag_count >= 3 or result_count > 50:
        return "medium"
    return "low"


# ============================================================================
# RELATIONSHIP PATTERNS
# ============================================================================

CONTACT_TYPES = (EntityType.PHONE, EntityType.EMAIL)
PARTY_TYPES = (EntityType.NAME, EntityType.COMPANY)
LINKING_TYPES = (EntityType.PHONE, EntityType.EMAIL, EntityType.ID_NUMBER, EntityType.ACCOUNT)
SHARED_ADDRESS_MIN_PARTIES = 3
TRANSITIVE_LINK_LIMIT = 5


def _linked_parties(graph: CorrelationGraph, node: GraphNode) -> List[GraphNode]:
    linked = (graph.get_node(other) for other in node.connections)
    return [n for n in linked if n is not None and n.entity_type in PARTY_TYPES]


def shared_contact_patterns(graph: CorrelationGraph) -> List[str]:
    """One line per phone or email that links two or more names/companies."""
    patterns = []
    for node in graph.nodes:
        if node.entity_type not in CONTACT_TYPES:
            continue
        parties = _linked_parties(graph, node)
        if len(parties) >= 2:
            patterns.append(
                f"{len(parties)} parties share the same {node.display_type}: {node.value}"
            )
    return patterns


def shared_address_patterns(graph: CorrelationGraph) -> List[str]:
    patterns = []
    for node in graph.nodes:
        if node.entity_type != EntityType.LOCATION:
            continue
        parties = _linked_parties(graph, node)
        if len(parties) < SHARED_ADDRESS_MIN_PARTIES:
            continue
        persons = sum(1 for p in parties if p.entity_type == EntityType.NAME)
        patterns.append(
            f"{len(parties)} parties ({persons} persons, {len(parties) - persons} companies) "
            f"share the location: {node.value}"
        )
    return patterns


def transitive_links(
    graph: CorrelationGraph,
    limit: int = TRANSITIVE_LINK_LIMIT
) -> List[str]:
    """
    Names/companies never seen together but joined through one identifier.

    Each unordered pair is reported once, via the first identifier found.
    """
    links = []
    seen = set()
    for party in graph.nodes:
        if party.entity_type not in PARTY_TYPES:
            continue
        for via_id in party.connections:
            via = graph.get_node(via_id)
            if via is None or via.entity_type not in LINKING_TYPES:
                continue
            for other in _linked_parties(graph, via):
                pair = frozenset((party.id, other.id))
                if other.id == party.id or other.id in party.connections or pair in seen:
                    continue
                seen.add(pair)
                links.append(
                    f'Possible link: "{party.value}" and "{other.value}" '
                    f"through {via.display_type} {via.value}"
                )
                if len(links) >= limit:
                    return links
    return links


def generate_insights(
    results: Sequence[SearchResult],
    extraction: ExtractionResult,
    graph: CorrelationGraph
) -> Insights:
    """
    Count-based insights for one investigation.

    Args:
        results: Final (filtered, deduplicated) results
        extraction: Extraction of the original query
        graph: Correlation graph built from results

    Returns:
        Insights
    """
    breakdown = Counter(e.type.value for e in extraction.entities)

    ranked = sorted(graph.nodes, key=lambda n: n.occurrences, reverse=True)
    top_entities = [
        {"value": n.value, "type": n.entity_type.value, "occurrences": n.occurrences}
        for n in ranked[:TOP_ENTITY_LIMIT]
    ]

    red_flags = []
    highly_connected = [
        n for n in graph.nodes if len(n.connections) > HIGH_CONNECTION_THRESHOLD
    ]
    if highly_connected:
        red_flags.append(
            f"{len(highly_connected)} entities with unusually high connections detected"
        )

    cross_source = [n for n in graph.nodes if len(n.sources) > 1]
    if cross_source:
        red_flags.append(f"{len(cross_source)} entities found across multiple data sources")

    reused_phones = [
        n for n in graph.nodes
        if n.entity_type == EntityType.PHONE and n.occurrences > 1
    ]
    if reused_phones:
        red_flags.append(f"{len(reused_phones)} phone numbers associated with multiple records")

    patterns = []
    if extraction.high_value_entities:
        patterns.append(
            f"Search initiated with {len(extraction.high_value_entities)} unique identifier(s)"
        )
    if len(results) > LARGE_RESULT_SET:
        patterns.append(
            f"Large result set ({len(results)} records) indicates potential data correlation"
        )
    shared_contacts = shared_contact_patterns(graph)
    patterns.extend(shared_contacts)
    patterns.extend(shared_address_patterns(graph))
    patterns.extend(transitive_links(graph))

    recommendations = []
    if top_entities:
        top = top_entities[0]
        recommendations.append(
            f'Investigate "{top["value"]}" - highest occurrence entity '
            f'({top["occurrences"]} occurrences)'
        )
    if red_flags:
        recommendations.append("Review detected red flags for potential anomalies")
    if shared_contacts:
        recommendations.append("Verify whether parties sharing contact details are distinct")
    if len(results) > BROAD_RESULT_SET:
        recommendations.append("Consider narrowing search criteria for more focused results")

    return Insights(
        high_value_matches=len(extraction.high_value_entities),
        total_connections=len(graph.edges),
        entity_breakdown=dict(breakdown),
        top_entities=top_entities,
        red_flags=red_flags,
        patterns=patterns,
        recommendations=recommendations,
        risk_level=risk_level(len(red_flags), len(results)),
    )


def fallback_summary(
    query: str,
    results: Sequence[SearchResult],
    graph: CorrelationGraph
) -> Dict[str, Any]:
    """Summary fields built from counts alone."""
    if not results:
        summary = f'No results found for "{query}".'
    else:
        summary = (
            f'Found {len(results)} results for "{query}". '
            f"Discovered {len(graph.nodes)} entities with {len(graph.edges)} connections."
        )

    repeated = sorted(
        (n for n in graph.nodes if n.occurrences >= 2),
        key=lambda n: n.occurrences,
        reverse=True
    )[:5]
    key_findings = [
        f'"{n.value}" appears {n.occurrences} times across {len(n.sources)} tables'
        for n in repeated
    ]

    entity_connections = []
    for edge in [e for e in graph.edges if e.weight >= 2][:5]:
        source = graph.get_node(edge.source)
        target = graph.get_node(edge.target)
        entity_connections.append(
            f'Strong link: "{source.value if source else edge.source}" ↔ '
            f'"{target.value if target else edge.target}" ({edge.weight} co-occurrences)'
        )

    recommendations = []
    if len(results) > 100:
        recommendations.append("Many results found - consider adding more specific filters")
    if graph.clusters:
        recommendations.append(
            f"Found {len(graph.clusters)} entity clusters worth investigating"
        )
    if sum(1 for n in graph.nodes if n.entity_type == EntityType.PHONE) > 1:
        recommendations.append("Multiple phone numbers discovered - investigate connections")

    return {
        "summary": summary,
        "key_findings": key_findings,
        "entity_connections": entity_connections,
        "recommendations": recommendations,
        "confidence": FALLBACK_CONFIDENCE,
    }


__all__ = [
    "Insights",
    "generate_insights",
    "fallback_summary",
    "risk_level",
    "shared_address_patterns",
    "shared_contact_patterns",
    "transitive_links",
]
