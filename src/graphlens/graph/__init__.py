"""Graph primitives - traversal contract, result cache, batch ingestion.

This module holds the backend-independent pieces every storage adapter
builds on, plus the Mermaid parser and the built-in sample graphs.
"""

from graphlens.graph.batching import BatchPlan, iter_batches, rows_per_statement
from graphlens.graph.cache import GraphCache
from graphlens.graph.mermaid import parse_mermaid
from graphlens.graph.samples import SampleGraph, dense_graph, europe_cities, example_workflow
from graphlens.graph.traversal import (
    MAX_TRAVERSAL_DEPTH,
    build_impact_result,
    clamp_depth,
    level_synchronous_bfs,
    ordered_subgraph,
)

__all__ = [
    # Traversal
    "MAX_TRAVERSAL_DEPTH",
    "build_impact_result",
    "clamp_depth",
    "level_synchronous_bfs",
    "ordered_subgraph",
    # Cache
    "GraphCache",
    # Ingestion
    "BatchPlan",
    "iter_batches",
    "rows_per_statement",
    # Parsing and samples
    "parse_mermaid",
    "SampleGraph",
    "dense_graph",
    "europe_cities",
    "example_workflow",
]
