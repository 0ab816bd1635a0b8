"""Batch ingestion strategy.

Large node and edge lists are split into chunks sized for the backend's
limits and written one chunk at a time. Writes are sequential, so when a
chunk fails every earlier chunk is already committed and every later one
was never attempted.
"""

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import TypeVar

from graphlens.schemas.graph import GraphEdge, GraphNode

T = TypeVar("T")


@dataclass(frozen=True)
class BatchPlan:
    """Chunk sizes for one backend.

    Attributes:
        node_batch_size: Nodes per bulk write.
        edge_batch_size: Edges per bulk write.
    """

    node_batch_size: int
    edge_batch_size: int

    @classmethod
    def fixed(cls, batch_size: int) -> "BatchPlan":
        """Same chunk size for nodes and edges (transaction-size bound)."""
        size = max(1, batch_size)
        return cls(node_batch_size=size, edge_batch_size=size)

    @classmethod
    def from_parameter_limit(
        cls,
        max_parameters: int,
        node_params_per_row: int,
        edge_params_per_row: int,
        shared_params: int = 1,
        max_rows: int | None = None,
    ) -> "BatchPlan":
        """Derive chunk sizes from a bound-parameter ceiling.

        SQL Server, for instance, rejects statements with more than 2100
        parameters. A multi-row INSERT of ``n`` rows binds
        ``shared_params + n * params_per_row`` parameters.

        Args:
            max_parameters: Parameter ceiling of one statement.
            node_params_per_row: Parameters bound per node row.
            edge_params_per_row: Parameters bound per edge row.
            shared_params: Parameters bound once per statement.
            max_rows: Optional cap on rows per statement.
        """
        return cls(
            node_batch_size=rows_per_statement(max_parameters, node_params_per_row, shared_params, max_rows),
            edge_batch_size=rows_per_statement(max_parameters, edge_params_per_row, shared_params, max_rows),
        )


def rows_per_statement(
    max_parameters: int,
    params_per_row: int,
    shared_params: int = 0,
    max_rows: int | None = None,
) -> int:
    """Largest row count that keeps a statement under the parameter ceiling."""
    rows = max(1, (max_parameters - shared_params) // max(1, params_per_row))
    if max_rows is not None:
        rows = min(rows, max_rows)
    return max(1, rows)


def iter_batches(items: Sequence[T], batch_size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most ``batch_size`` items."""
    size = max(1, batch_size)
    for start in range(0, len(items), size):
        yield items[start : start + size]


def dedupe_nodes(nodes: Iterable[GraphNode]) -> list[GraphNode]:
    """Keep the first occurrence of every node id, preserving order."""
    seen: set[str] = set()
    unique: list[GraphNode] = []
    for node in nodes:
        if node.id in seen:
            continue
        seen.add(node.id)
        unique.append(node)
    return unique


def assign_edge_ids(edges: Iterable[GraphEdge]) -> list[GraphEdge]:
    """Give every edge a unique id within its graph.

    Supplied ids are kept unless already taken; the rest become ``e<n>``
    where ``n`` is the edge's input position.
    """
    edges = list(edges)
    taken = {edge.id for edge in edges if edge.id is not None}
    seen: set[str] = set()
    result: list[GraphEdge] = []

    for index, edge in enumerate(edges):
        if edge.id is not None and edge.id not in seen:
            seen.add(edge.id)
            result.append(edge)
            continue

        candidate = f"e{index}"
        while candidate in taken or candidate in seen:
            candidate = f"{candidate}_"
        seen.add(candidate)
        result.append(edge.model_copy(update={"id": candidate}))

    return result


def resolve_edges(
    edges: Iterable[GraphEdge],
    node_keys: dict[str, T],
) -> tuple[list[tuple[GraphEdge, T, T]], int]:
    """Map edge endpoints to backend row keys.

    Edges whose source or target is not among the inserted nodes are
    skipped rather than failing the whole ingestion.

    Args:
        edges: Edges as supplied by the caller.
        node_keys: Node id to backend key (generated row id, for instance).

    Returns:
        Resolved (edge, source_key, target_key) triples and the number of
        skipped edges.
    """
    resolved: list[tuple[GraphEdge, T, T]] = []
    skipped = 0
    for edge in edges:
        source_key = node_keys.get(edge.source)
        target_key = node_keys.get(edge.target)
        if source_key is None or target_key is None:
            skipped += 1
            continue
        resolved.append((edge, source_key, target_key))
    return resolved, skipped
