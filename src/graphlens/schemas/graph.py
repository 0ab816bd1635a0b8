"""Pydantic schemas for graphs, traversal results and cache introspection."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator


class GraphNode(BaseModel):
    """A node of a stored graph."""

    id: str = Field(..., min_length=1, max_length=255)
    label: str = ""
    node_type: str = "default"
    properties: dict[str, Any] = Field(default_factory=dict)


class GraphEdge(BaseModel):
    """A directed edge. Parallel edges and self-loops are allowed."""

    id: str | None = None
    source: str = Field(..., min_length=1, max_length=255)
    target: str = Field(..., min_length=1, max_length=255)
    label: str | None = None
    edge_type: str = "default"
    properties: dict[str, Any] = Field(default_factory=dict)


class GraphData(BaseModel):
    """Nodes and edges of a graph or subgraph."""

    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)


class GraphSummary(BaseModel):
    """Graph metadata as listed."""

    id: str
    title: str
    description: str
    graph_type: str
    node_count: int
    edge_count: int


class Graph(GraphSummary):
    """Graph metadata returned on creation."""

    created_at: datetime


class GraphStats(BaseModel):
    """Per-graph statistics."""

    node_count: int
    edge_count: int
    node_types: dict[str, int] = Field(default_factory=dict)
    average_degree: float = 0.0


class ImpactedNode(BaseModel):
    """A node reached by impact propagation."""

    node_id: str
    level: int = Field(..., ge=1)


class ImpactResult(BaseModel):
    """Downstream impact of a failing node."""

    source_node_id: str
    impacted_nodes: list[ImpactedNode] = Field(default_factory=list)
    depth: int
    elapsed_ms: float
    engine: str


CacheStatus = Literal["HIT", "MISS", "BYPASS"]


class GraphRead(BaseModel):
    """A full-graph read plus out-of-band observability signals."""

    data: GraphData
    cache_status: CacheStatus
    elapsed_ms: float
    parallel_queries: bool
    engine: str


class CacheStats(BaseModel):
    """Result cache counters."""

    hits: int
    misses: int
    bypasses: int
    cached_graphs: int
    keys: list[str]
    ttl_seconds: int


class CacheClearResult(BaseModel):
    """Keys removed by a cache clear."""

    cleared: list[str]


class CreateGraphRequest(BaseModel):
    """Graph creation from explicit nodes/edges or from Mermaid text."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    graph_type: str = "flowchart"
    nodes: list[GraphNode] | None = None
    edges: list[GraphEdge] | None = None
    mermaid_code: str | None = None

    @model_validator(mode="after")
    def check_source(self) -> "CreateGraphRequest":
        """Require either Mermaid text or a non-empty node list."""
        if not self.mermaid_code and not self.nodes:
            raise ValueError("Provide either mermaid_code or a non-empty nodes array")
        return self


class ImpactRequest(BaseModel):
    """Request body for server-side impact analysis.

    A missing depth falls back to the configured default (5).
    """

    node_id: str = Field(..., min_length=1)
    depth: int | None = Field(default=None, ge=1)


class RawQueryRequest(BaseModel):
    """Backend-native query text (Cypher or SQL)."""

    query: str = Field(..., min_length=1)


class RawQueryResult(BaseModel):
    """Rows returned by a raw query."""

    rows: list[dict[str, Any]]
    elapsed_ms: float
    row_count: int
    engine: str
