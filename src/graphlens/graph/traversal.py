"""Backend-independent traversal contract.

Every storage adapter computes neighbor sets and impact sets with its own
algorithm, but all of them go through the helpers here so that depth
clamping, level semantics and result ordering are identical everywhere.

Semantics:
    - depth is clamped to [1, MAX_TRAVERSAL_DEPTH] whatever the caller asks
    - a level is the minimum number of directed hops from the source
    - the source is never part of an impact result
    - impact results are ordered by (level, node_id)
"""

import time
from collections.abc import Awaitable, Callable, Hashable, Iterable
from typing import TypeVar

from graphlens.common.logging import get_logger
from graphlens.common.metrics import GRAPH_TRAVERSAL_DURATION, GRAPH_TRAVERSAL_NODES
from graphlens.schemas.graph import GraphData, GraphEdge, GraphNode, ImpactedNode, ImpactResult

logger = get_logger(__name__)

MAX_TRAVERSAL_DEPTH = 15

K = TypeVar("K", bound=Hashable)

FrontierExpander = Callable[[set[K]], Awaitable[set[K]]]


def clamp_depth(depth: int | None, ceiling: int = MAX_TRAVERSAL_DEPTH) -> int:
    """Clamp a caller-supplied depth to the hard traversal ceiling.

    Args:
        depth: Requested depth. None or values below 1 become 1.
        ceiling: Upper bound, never above MAX_TRAVERSAL_DEPTH.

    Returns:
        Depth in [1, ceiling].
    """
    ceiling = min(ceiling, MAX_TRAVERSAL_DEPTH)
    if depth is None or depth < 1:
        return 1
    return min(int(depth), ceiling)


async def level_synchronous_bfs(
    source: K,
    depth: int,
    expand: FrontierExpander[K],
) -> dict[K, int]:
    """Breadth-first search processed one full frontier at a time.

    ``expand`` receives the current frontier and returns every node one hop
    away from it (in whatever direction the caller is following). Nodes
    already visited are dropped before they can be expanded again, so each
    node is expanded at most once over the whole traversal.

    Args:
        source: Start node id. Level 0, excluded from the result.
        depth: Inclusive hop bound.
        expand: Async callable mapping a frontier to its one-hop neighbors.

    Returns:
        Mapping of reached node id to its minimum level.
    """
    visited: dict[K, int] = {source: 0}
    frontier: set[K] = {source}
    level = 0

    while frontier and level < depth:
        level += 1
        reached = await expand(frontier)

        inserted = {node_id for node_id in reached if node_id not in visited}
        for node_id in inserted:
            visited[node_id] = level

        frontier = inserted

    del visited[source]
    return visited


def build_impact_result(
    source_node_id: str,
    levels: dict[str, int],
    depth: int,
    elapsed_ms: float,
    engine: str,
) -> ImpactResult:
    """Normalize raw per-node levels into an ImpactResult.

    Drops the source and anything outside [1, depth] so that every engine
    honors the same invariant, then orders by (level, node_id).
    """
    impacted = [
        ImpactedNode(node_id=node_id, level=level)
        for node_id, level in levels.items()
        if node_id != source_node_id and 1 <= level <= depth
    ]
    impacted.sort(key=lambda n: (n.level, n.node_id))

    return ImpactResult(
        source_node_id=source_node_id,
        impacted_nodes=impacted,
        depth=depth,
        elapsed_ms=round(elapsed_ms, 3),
        engine=engine,
    )


def min_levels(rows: Iterable[tuple[str, int]]) -> dict[str, int]:
    """Collapse (node_id, level) pairs to the minimum level per node."""
    levels: dict[str, int] = {}
    for node_id, level in rows:
        current = levels.get(node_id)
        if current is None or level < current:
            levels[node_id] = level
    return levels


def ordered_subgraph(nodes: Iterable[GraphNode], edges: Iterable[GraphEdge]) -> GraphData:
    """Deduplicate and order a neighbor subgraph.

    Nodes are keyed by id; edges by id when present, otherwise kept as-is.
    Edges with an endpoint outside the node set are dropped.
    """
    node_map = {node.id: node for node in nodes}

    edge_list: list[GraphEdge] = []
    seen_edge_ids: set[str] = set()
    for edge in edges:
        if edge.source not in node_map or edge.target not in node_map:
            continue
        if edge.id is not None:
            if edge.id in seen_edge_ids:
                continue
            seen_edge_ids.add(edge.id)
        edge_list.append(edge)

    edge_list.sort(key=lambda e: (e.source, e.target, e.id or ""))
    return GraphData(
        nodes=sorted(node_map.values(), key=lambda n: n.id),
        edges=edge_list,
    )


class TraversalTimer:
    """Times a traversal and records it in the traversal metrics.

    Usage:
        timer = TraversalTimer("sql", "impact")
        ...
        timer.finish(node_count=len(levels))
        elapsed = timer.elapsed_ms
    """

    def __init__(self, engine: str, operation: str) -> None:
        self.engine = engine
        self.operation = operation
        self._start = time.perf_counter()
        self.elapsed_ms = 0.0

    def finish(self, node_count: int) -> float:
        """Stop the timer, observe metrics and return elapsed milliseconds."""
        elapsed = time.perf_counter() - self._start
        self.elapsed_ms = elapsed * 1000

        GRAPH_TRAVERSAL_DURATION.labels(engine=self.engine, operation=self.operation).observe(elapsed)
        GRAPH_TRAVERSAL_NODES.labels(engine=self.engine, operation=self.operation).observe(node_count)

        logger.debug(
            "Traversal completed",
            engine=self.engine,
            operation=self.operation,
            node_count=node_count,
            elapsed_ms=round(self.elapsed_ms, 2),
        )
        return self.elapsed_ms
