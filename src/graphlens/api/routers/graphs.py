"""Graph API endpoints: storage, full reads, neighbors and impact."""

from typing import Annotated

from fastapi import APIRouter, Query, Response, status

from graphlens.api.dependencies import AppSettings, DatabaseParam, Store
from graphlens.common.logging import get_logger
from graphlens.graph.mermaid import parse_mermaid
from graphlens.schemas.graph import (
    CreateGraphRequest,
    Graph,
    GraphData,
    GraphNode,
    GraphStats,
    GraphSummary,
    ImpactRequest,
    ImpactResult,
)
from graphlens.stores.base import generate_graph_id

logger = get_logger(__name__)

router = APIRouter(prefix="/graphs", tags=["graphs"])


@router.get("", response_model=list[GraphSummary])
async def list_graphs(store: Store, database: DatabaseParam = None) -> list[GraphSummary]:
    """List graphs of a database, newest first."""
    return await store.list_graphs(database)


@router.post("", response_model=Graph, status_code=status.HTTP_201_CREATED)
async def create_graph(
    data: CreateGraphRequest,
    store: Store,
    database: DatabaseParam = None,
) -> Graph:
    """Create a graph from explicit nodes and edges, or from Mermaid text.

    Mermaid text takes precedence when both are given.
    """
    if data.mermaid_code:
        nodes, edges = parse_mermaid(data.mermaid_code)
    else:
        nodes, edges = data.nodes or [], data.edges or []

    graph_id = generate_graph_id()
    return await store.create_graph(
        graph_id=graph_id,
        title=data.title,
        description=data.description,
        graph_type=data.graph_type,
        nodes=nodes,
        edges=edges,
        database=database,
    )


@router.get("/{graph_id}", response_model=GraphData)
async def get_graph(
    graph_id: str,
    store: Store,
    database: DatabaseParam = None,
    bypass_cache: Annotated[bool, Query(description="Skip the result cache")] = False,
) -> Response:
    """Full node and edge set of a graph.

    Cache outcome and timing are reported in headers so the body stays the
    plain graph payload.
    """
    read = await store.read_graph(graph_id, database, bypass_cache=bypass_cache)
    body = read.data.model_dump_json().encode("utf-8")

    return Response(
        content=body,
        media_type="application/json",
        headers={
            "X-Cache": read.cache_status,
            "X-Response-Time": f"{read.elapsed_ms}ms",
            "X-Parallel-Queries": "true" if read.parallel_queries else "false",
            "X-Engine": read.engine,
            "X-Content-Length-Raw": str(len(body)),
        },
    )


@router.get("/{graph_id}/stats", response_model=GraphStats)
async def get_graph_stats(graph_id: str, store: Store, database: DatabaseParam = None) -> GraphStats:
    """Node/edge counts, node type histogram and average degree."""
    return await store.get_graph_stats(graph_id, database)


@router.get("/{graph_id}/starting-node", response_model=GraphNode)
async def get_starting_node(graph_id: str, store: Store, database: DatabaseParam = None) -> GraphNode:
    """Any node of the graph, as an entry point for exploration."""
    return await store.get_starting_node(graph_id, database)


@router.get("/{graph_id}/nodes/{node_id}/neighbors", response_model=GraphData)
async def get_neighbors(
    graph_id: str,
    node_id: str,
    store: Store,
    settings: AppSettings,
    database: DatabaseParam = None,
    depth: Annotated[int | None, Query(description="Hops in either direction, clamped to 1..15")] = None,
) -> GraphData:
    """Nodes within ``depth`` hops of a node and the edges among them."""
    if depth is None:
        depth = settings.traversal.default_neighbor_depth
    return await store.get_neighbors(graph_id, node_id, depth, database)


@router.post("/{graph_id}/impact", response_model=ImpactResult)
async def compute_impact(
    graph_id: str,
    data: ImpactRequest,
    store: Store,
    settings: AppSettings,
    database: DatabaseParam = None,
) -> ImpactResult:
    """Downstream impact of a failing node along outgoing edges."""
    depth = data.depth if data.depth is not None else settings.traversal.default_impact_depth
    result = await store.compute_impact(graph_id, data.node_id, depth, database)

    logger.info(
        "Impact computed",
        engine=result.engine,
        graph_id=graph_id,
        node_id=data.node_id,
        depth=result.depth,
        impacted=len(result.impacted_nodes),
        elapsed_ms=result.elapsed_ms,
    )
    return result


@router.delete("/{graph_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_graph(graph_id: str, store: Store, database: DatabaseParam = None) -> None:
    """Delete a graph with its nodes and edges. Absent graphs succeed."""
    await store.delete_graph(graph_id, database)
