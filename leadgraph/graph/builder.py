"""
Correlation Graph Builder

Builds a co-occurrence graph from a set of search results: every entity found
in a record becomes a node, and every pair of entities found in the same
record is joined by an edge whose weight counts the records they share.

Features:
- Noise columns scrubbed before extraction (same rules as lead discovery)
- Nodes keyed "type:value" with occurrences, source tables, adjacency
- Edges keyed by the unordered pair, weight = shared records
- Strength / confidence buckets from final weight
- Clusters of nodes joined by repeated (weight >= 2) co-occurrence
- Neighborhood and shortest-path queries on the finished graph

build() is a pure function of its input: the same results always give the
same graph. Edge pairing is O(entities^2) per record, which is only
acceptable because result sets are capped upstream.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from config.logging_config import get_logger
from leadgraph.extraction.extractor import (
    EntityExtractor,
    EntityType,
    ExtractionResult,
    SearchValue,
)
from leadgraph.extraction.noise import record_text, scrub_record
from leadgraph.search.results import SearchResult

logger = get_logger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

RISK_SCORES = {
    SearchValue.HIGH: 0.8,
    SearchValue.MEDIUM: 0.5,
    SearchValue.LOW: 0.2,
}

STRONG_WEIGHT = 5
MODERATE_WEIGHT = 2
CLUSTER_MIN_WEIGHT = 2
CLUSTER_CONFIDENCE = 0.8

DISPLAY_TYPES = {
    EntityType.PHONE: "phone",
    EntityType.EMAIL: "email",
    EntityType.NAME: "person",
    EntityType.ACCOUNT: "account",
}


def edge_strength(weight: int) -> Tuple[str, float]:
    """(strength, confidence) bucket for an edge weight."""
    if weight >= STRONG_WEIGHT:
        return "strong", 0.85
    if weight >= MODERATE_WEIGHT:
        return "moderate", 0.7
    return "weak", 0.5


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class GraphNode:
    id: str
    value: str
    entity_type: EntityType
    occurrences: int = 1
    sources: List[str] = field(default_factory=list)
    connections: List[str] = field(default_factory=list)
    risk_score: float = 0.2

    @property
    def label(self) -> str:
        return self.value

    @property
    def display_type(self) -> str:
        return DISPLAY_TYPES.get(self.entity_type, "other")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "type": self.display_type,
            "entity_type": self.entity_type.value,
            "value": self.value,
            "occurrences": self.occurrences,
            "sources": list(self.sources),
            "connections": list(self.connections),
            "risk_score": self.risk_score,
        }


@dataclass
class GraphEdge:
    id: str
    source: str
    target: str
    relationship: str = "co-occurrence"
    weight: int = 1
    sources: List[str] = field(default_factory=list)
    evidence: List[str] = field(default_factory=list)
    strength: str = "weak"
    confidence: float = 0.5

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "relationship": self.relationship,
            "weight": self.weight,
            "sources": list(self.sources),
            "evidence": list(self.evidence),
            "strength": self.strength,
            "confidence": self.confidence,
        }


@dataclass
class GraphCluster:
    id: str
    nodes: List[str]
    label: str
    confidence: float = CLUSTER_CONFIDENCE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "nodes": list(self.nodes),
            "label": self.label,
            "confidence": self.confidence,
        }


@dataclass
class CorrelationGraph:
    """Finished co-occurrence graph with a few read-only queries."""
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)
    clusters: List[GraphCluster] = field(default_factory=list)

    def __post_init__(self):
        self._node_index = {n.id: n for n in self.nodes}
        self._edge_index = {frozenset((e.source, e.target)): e for e in self.edges}

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        return self._node_index.get(node_id)

    def get_edge(self, a: str, b: str) -> Optional[GraphEdge]:
        """Edge between two node ids, in either direction."""
        return self._edge_index.get(frozenset((a, b)))

    def neighbors(self, node_id: str, depth: int = 1) -> List[str]:
        """Node ids within depth hops of node_id (excluding itself), BFS order."""
        if node_id not in self._node_index or depth < 1:
            return []
        seen = {node_id}
        found = []
        frontier = deque([(node_id, 0)])
        while frontier:
            current, dist = frontier.popleft()
            if dist >= depth:
                continue
            for nxt in self._node_index[current].connections:
                if nxt in seen:
                    continue
                seen.add(nxt)
                found.append(nxt)
                frontier.append((nxt, dist + 1))
        return found

    def shortest_path(self, start: str, end: str) -> List[str]:
        """Fewest-hop path of node ids from start to end, [] if unreachable."""
        if start not in self._node_index or end not in self._node_index:
            return []
        if start == end:
            return [start]
        previous: Dict[str, Optional[str]] = {start: None}
        queue = deque([start])
        while queue:
            current = queue.popleft()
            for nxt in self._node_index[current].connections:
                if nxt in previous:
                    continue
                previous[nxt] = current
                if nxt == end:
                    path = [end]
                    while previous[path[-1]] is not None:
                        path.append(previous[path[-1]])
                    return list(reversed(path))
                queue.append(nxt)
        return []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "clusters": [c.to_dict() for c in self.clusters],
        }


# ============================================================================
# BUILDER
# ============================================================================

class CorrelationGraphBuilder:
    """
    Builds CorrelationGraph instances from search results.

    Example:
        >>> builder = CorrelationGraphBuilder(EntityExtractor())
        >>> graph = builder.build(results)
        >>> graph.get_node("phone:9000000000").occurrences
        2
    """

    def __init__(self, extractor: Optional[EntityExtractor] = None):
        self.extractor = extractor or EntityExtractor()

    def build(self, results: Iterable[SearchResult]) -> CorrelationGraph:
        nodes: Dict[str, GraphNode] = {}
        edges: Dict[frozenset, GraphEdge] = {}
        # Keyed by scrubbed record content; repeated records are extracted once
        extraction_cache: Dict[str, ExtractionResult] = {}

        result_count = 0
        for result in results:
            result_count += 1
            record = scrub_record(result.record)
            cache_key = record_text(record)
            extraction = extraction_cache.get(cache_key)
            if extraction is None:
                extraction = self.extractor.extract_from_record(record, table=result.table)
                extraction_cache[cache_key] = extraction

            ids = []
            for entity in extraction.entities:
                node_id = entity.key
                ids.append(node_id)
                node = nodes.get(node_id)
                if node is None:
                    nodes[node_id] = GraphNode(
                        id=node_id,
                        value=entity.value,
                        entity_type=entity.type,
                        sources=[result.table],
                        risk_score=RISK_SCORES.get(entity.search_value, 0.2),
                    )
                else:
                    node.occurrences += 1
                    if result.table not in node.sources:
                        node.sources.append(result.table)

            for i in range(len(ids)):
                for j in range(i + 1, len(ids)):
                    self._link(nodes, edges, ids[i], ids[j], result)

        for edge in edges.values():
            edge.strength, edge.confidence = edge_strength(edge.weight)

        graph_nodes = list(nodes.values())
        graph_edges = list(edges.values())
        clusters = self._find_clusters(graph_nodes, edges)

        logger.debug(
            "Correlation graph built",
            extra={
                "results": result_count,
                "nodes": len(graph_nodes),
                "edges": len(graph_edges),
                "clusters": len(clusters),
            }
        )

        return CorrelationGraph(nodes=graph_nodes, edges=graph_edges, clusters=clusters)

    def _link(
        self,
        nodes: Dict[str, GraphNode],
        edges: Dict[frozenset, GraphEdge],
        source: str,
        target: str,
        result: SearchResult
    ) -> None:
        pair = frozenset((source, target))
        edge = edges.get(pair)
        if edge is None:
            edges[pair] = GraphEdge(
                id=f"{source}-{target}",
                source=source,
                target=target,
                sources=[result.table],
                evidence=[result.id],
            )
        else:
            edge.weight += 1
            if result.table not in edge.sources:
                edge.sources.append(result.table)
            if result.id not in edge.evidence:
                edge.evidence.append(result.id)

        if target not in nodes[source].connections:
            nodes[source].connections.append(target)
        if source not in nodes[target].connections:
            nodes[target].connections.append(source)

    def _find_clusters(
        self,
        nodes: List[GraphNode],
        edges: Dict[frozenset, GraphEdge]
    ) -> List[GraphCluster]:
        """
        A node plus its direct neighbours over weight >= 2 edges.

        Nodes already placed in a cluster do not start another one.
        """
        clusters = []
        visited = set()

        for node in nodes:
            if node.id in visited:
                continue
            members = [node.id]
            visited.add(node.id)

            for other in node.connections:
                edge = edges.get(frozenset((node.id, other)))
                if edge is not None and edge.weight >= CLUSTER_MIN_WEIGHT:
                    members.append(other)
                    visited.add(other)

            if len(members) > 1:
                clusters.append(GraphCluster(
                    id=f"cluster_{len(clusters)}",
                    nodes=members,
                    label=f"{node.entity_type.value}: {node.value}",
                ))

        return sorted(clusters, key=lambda c: len(c.nodes), reverse=True)


def build_correlation_graph(
    results: Iterable[SearchResult],
    extractor: Optional[EntityExtractor] = None
) -> CorrelationGraph:
    """Convenience wrapper around CorrelationGraphBuilder.build()."""
    return CorrelationGraphBuilder(extractor).build(results)


__all__ = [
    "GraphNode",
    "GraphEdge",
    "GraphCluster",
    "CorrelationGraph",
    "CorrelationGraphBuilder",
    "build_correlation_graph",
    "edge_strength",
]
