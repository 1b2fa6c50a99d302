"""
Correlation Graph & Heuristic Insights Tests
"""

from leadgraph.extraction.extractor import EntityExtractor
from leadgraph.graph.builder import build_correlation_graph, edge_strength
from leadgraph.insights.heuristics import (
    fallback_summary,
    generate_insights,
    risk_level,
    shared_address_patterns,
    shared_contact_patterns,
    transitive_links,
)
from leadgraph.search.results import SearchResult


def _result(record_id, record, table="b2b"):
    return SearchResult(id=f"{table}_{record_id}", table=table, record=record)


def _two_record_results():
    return [
        _result(1, {"id": 1, "phone": "9000000000", "city": "Delhi"}),
        _result(2, {"id": 2, "phone": "9000000000", "email": "a@b.com"}),
    ]


# ============================================================================
# GRAPH
# ============================================================================

def test_shared_phone_links_both_records():
    graph = build_correlation_graph(_two_record_results())

    phone = graph.get_node("phone:9000000000")
    assert phone.occurrences == 2
    assert phone.sources == ["b2b"]
    assert phone.display_type == "phone"
    assert phone.risk_score == 0.8

    assert graph.get_node("location:delhi") is not None
    assert graph.get_node("email:a@b.com") is not None

    to_city = graph.get_edge("phone:9000000000", "location:delhi")
    to_email = graph.get_edge("email:a@b.com", "phone:9000000000")
    assert to_city.weight == 1
    assert to_email.weight == 1
    assert to_city.strength == "weak"
    assert to_email.evidence == ["b2b_2"]

    assert graph.get_edge("location:delhi", "email:a@b.com") is None
    assert graph.clusters == []


def test_bookkeeping_columns_do_not_become_nodes():
    graph = build_correlation_graph([
        _result(1, {"id": 1, "customer_id": 9876543210, "phone": "9000000000"}),
    ])
    assert [n.id for n in graph.nodes] == ["phone:9000000000"]


def test_build_is_deterministic():
    first = build_correlation_graph(_two_record_results()).to_dict()
    second = build_correlation_graph(_two_record_results()).to_dict()
    assert first == second


def _weights(graph):
    occurrences = {n.id: n.occurrences for n in graph.nodes}
    sources = {n.id: sorted(n.sources) for n in graph.nodes}
    weights = {frozenset((e.source, e.target)): e.weight for e in graph.edges}
    return occurrences, sources, weights


def test_record_order_does_not_change_weights():
    results = [
        _result(1, {"phone": "9000000000", "email": "a@b.com"}),
        _result(2, {"phone": "9000000000", "city": "Pune"}, table="telecom"),
        _result(3, {"email": "a@b.com", "pan": "ABCDE1234F"}),
        _result(4, {"phone": "9000000000", "email": "a@b.com"}, table="telecom"),
    ]
    expected = _weights(build_correlation_graph(results))

    for permuted in (results[::-1], results[2:] + results[:2], [results[1], results[3], results[0], results[2]]):
        assert _weights(build_correlation_graph(permuted)) == expected


def test_results_sharing_an_id_keep_their_own_entities():
    results = [
        SearchResult(id="unknown_1", table="unknown", record={"phone": "9000000001"}),
        SearchResult(id="unknown_1", table="unknown", record={"phone": "9000000002"}),
    ]
    graph = build_correlation_graph(results)

    assert sorted(n.id for n in graph.nodes) == ["phone:9000000001", "phone:9000000002"]


def test_identical_records_are_counted_per_result():
    record = {"phone": "9000000000", "email": "a@b.com"}
    graph = build_correlation_graph([_result(1, dict(record)), _result(2, dict(record))])

    assert graph.get_node("phone:9000000000").occurrences == 2
    assert graph.get_edge("phone:9000000000", "email:a@b.com").weight == 2


def test_edge_strength_buckets():
    assert edge_strength(1) == ("weak", 0.5)
    assert edge_strength(2) == ("moderate", 0.7)
    assert edge_strength(4) == ("moderate", 0.7)
    assert edge_strength(5) == ("strong", 0.85)


def test_repeated_co_occurrence_forms_cluster():
    results = [
        _result(i, {"id": i, "phone": "9000000000", "email": "a@b.com"})
        for i in range(1, 4)
    ]
    results.append(_result(4, {"id": 4, "phone": "9000000000", "city": "Pune"}))

    graph = build_correlation_graph(results)

    edge = graph.get_edge("phone:9000000000", "email:a@b.com")
    assert edge.weight == 3
    assert edge.strength == "moderate"
    assert edge.evidence == ["b2b_1", "b2b_2", "b2b_3"]

    assert len(graph.clusters) == 1
    cluster = graph.clusters[0]
    assert cluster.nodes == ["phone:9000000000", "email:a@b.com"]
    assert cluster.label == "phone: 9000000000"


def test_neighbors_and_shortest_path():
    graph = build_correlation_graph(_two_record_results())

    assert sorted(graph.neighbors("phone:9000000000")) == ["email:a@b.com", "location:delhi"]
    assert sorted(graph.neighbors("location:delhi", depth=2)) == [
        "email:a@b.com", "phone:9000000000"
    ]
    assert graph.shortest_path("location:delhi", "email:a@b.com") == [
        "location:delhi", "phone:9000000000", "email:a@b.com"
    ]
    assert graph.shortest_path("location:delhi", "phone:0000") == []


def test_empty_input_gives_empty_graph():
    graph = build_correlation_graph([])
    assert graph.to_dict() == {"nodes": [], "edges": [], "clusters": []}


# ============================================================================
# INSIGHTS
# ============================================================================

def test_generate_insights_counts():
    results = _two_record_results()
    graph = build_correlation_graph(results)
    extraction = EntityExtractor().extract("9000000000")

    insights = generate_insights(results, extraction, graph)

    assert insights.high_value_matches == 1
    assert insights.total_connections == 2
    assert insights.entity_breakdown == {"phone": 1}
    assert insights.top_entities[0] == {
        "value": "9000000000", "type": "phone", "occurrences": 2
    }
    assert insights.red_flags == ["1 phone numbers associated with multiple records"]
    assert insights.patterns == ["Search initiated with 1 unique identifier(s)"]
    assert insights.recommendations == [
        'Investigate "9000000000" - highest occurrence entity (2 occurrences)',
        "Review detected red flags for potential anomalies",
    ]
    assert insights.risk_level == "low"


def _household_results():
    return [
        _result(1, {"name": "Rahul Sharma", "phone": "9000000000", "city": "Pune"}),
        _result(2, {"name": "Amit Verma", "phone": "9000000000", "city": "Pune"}),
        _result(3, {"name": "Priya Nair", "city": "Pune"}),
    ]


def test_shared_phone_and_location_patterns():
    graph = build_correlation_graph(_household_results())

    assert shared_contact_patterns(graph) == ["2 parties share the same phone: 9000000000"]
    assert shared_address_patterns(graph) == [
        "3 parties (3 persons, 0 companies) share the location: pune"
    ]


def test_parties_joined_through_one_identifier():
    graph = build_correlation_graph(_household_results())

    assert transitive_links(graph) == [
        'Possible link: "rahul sharma" and "amit verma" through phone 9000000000'
    ]


def test_parties_seen_together_are_not_transitive_links():
    graph = build_correlation_graph([
        _result(1, {"name": "Rahul Sharma", "phone": "9000000000"}),
        _result(2, {"name": "Amit Verma", "phone": "9000000000"}),
        _result(3, {"name": "Rahul Sharma", "fathers_name": "Amit Verma"}),
    ])

    assert graph.get_edge("name:rahul sharma", "name:amit verma") is not None
    assert transitive_links(graph) == []


def test_relationship_patterns_reach_insights():
    results = _household_results()
    graph = build_correlation_graph(results)

    insights = generate_insights(results, EntityExtractor().extract(""), graph)

    assert "2 parties share the same phone: 9000000000" in insights.patterns
    assert any(p.startswith("Possible link:") for p in insights.patterns)
    assert "Verify whether parties sharing contact details are distinct" in insights.recommendations


def test_cross_source_entities_flagged():
    results = [
        _result(1, {"id": 1, "phone": "9000000000"}, table="b2b"),
        _result(1, {"id": 1, "phone": "9000000000"}, table="telecom"),
    ]
    graph = build_correlation_graph(results)
    insights = generate_insights(results, EntityExtractor().extract(""), graph)
    assert "1 entities found across multiple data sources" in insights.red_flags


def test_risk_level_thresholds():
    assert risk_level(0, 10) == "low"
    assert risk_level(3, 0) == "medium"
    assert risk_level(0, 51) == "medium"
    assert risk_level(5, 0) == "high"
    assert risk_level(0, 101) == "high"


def test_fallback_summary():
    results = _two_record_results()
    graph = build_correlation_graph(results)

    summary = fallback_summary("9000000000", results, graph)

    assert summary["summary"] == (
        'Found 2 results for "9000000000". Discovered 3 entities with 2 connections.'
    )
    assert summary["key_findings"] == ['"9000000000" appears 2 times across 1 tables']
    assert summary["entity_connections"] == []
    assert summary["recommendations"] == []
    assert summary["confidence"] == 0.7


def test_fallback_summary_without_results():
    summary = fallback_summary("hello world", [], build_correlation_graph([]))
    assert summary["summary"] == 'No results found for "hello world".'
    assert summary["key_findings"] == []
