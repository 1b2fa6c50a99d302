"""Correlation graph module"""
from .builder import (
    GraphNode,
    GraphEdge,
    GraphCluster,
    CorrelationGraph,
    CorrelationGraphBuilder,
    build_correlation_graph,
)

__all__ = [
    "GraphNode",
    "GraphEdge",
    "GraphCluster",
    "CorrelationGraph",
    "CorrelationGraphBuilder",
    "build_correlation_graph",
]
