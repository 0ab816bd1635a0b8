"""Storage adapter contract and shared behavior.

GraphStore is the protocol every backend satisfies. BaseGraphStore holds
what is identical across backends: argument validation, depth clamping,
cache wiring, timing and result ordering. Backends implement the
underscore-prefixed hooks against their own storage model.
"""

import asyncio
import re
import time
import uuid
from collections.abc import Awaitable, Iterable
from datetime import datetime
from typing import Any, Protocol, TypeVar, runtime_checkable

from graphlens.common.config import Settings, get_settings
from graphlens.common.exceptions import (
    EmptyGraphError,
    InvalidDatabaseNameError,
    UnsupportedOperationError,
)
from graphlens.common.logging import LoggerMixin
from graphlens.graph.batching import assign_edge_ids, dedupe_nodes
from graphlens.graph.cache import GraphCache
from graphlens.graph.traversal import (
    TraversalTimer,
    build_impact_result,
    clamp_depth,
    ordered_subgraph,
)
from graphlens.schemas.database import DatabaseInfo, DatabaseStats
from graphlens.schemas.graph import (
    CacheClearResult,
    CacheStats,
    Graph,
    GraphData,
    GraphEdge,
    GraphNode,
    GraphRead,
    GraphStats,
    GraphSummary,
    ImpactResult,
    RawQueryResult,
)

T = TypeVar("T")

DATABASE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")


def validate_database_name(name: str) -> str:
    """Reject database names that are not plain identifiers.

    Names end up interpolated into DDL (CREATE/DROP DATABASE, SQLite file
    names), so anything beyond letters, digits and underscores is refused.
    """
    if not name or not DATABASE_NAME_PATTERN.match(name):
        raise InvalidDatabaseNameError(details={"database": name})
    return name


def generate_graph_id() -> str:
    """New graph identifier: ``graph_<epoch ms>_<random>``."""
    return f"graph_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def build_graph_stats(node_count: int, edge_count: int, node_types: dict[str, int]) -> GraphStats:
    """Assemble GraphStats, average degree being edges per node."""
    return GraphStats(
        node_count=node_count,
        edge_count=edge_count,
        node_types=dict(sorted(node_types.items())),
        average_degree=edge_count / node_count if node_count else 0.0,
    )


async def gather_reads(*reads: Awaitable[T]) -> list[T]:
    """Run independent reads concurrently.

    All reads are awaited before returning, so no session outlives a
    failed call; the first failure in argument order then propagates.
    """
    results = await asyncio.gather(*reads, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)


@runtime_checkable
class GraphStore(Protocol):
    """Operations every storage backend provides."""

    engine: str
    default_database: str

    async def initialize(self) -> None: ...

    async def close(self) -> None: ...

    async def health_check(self) -> bool: ...

    async def create_graph(
        self,
        graph_id: str,
        title: str,
        description: str,
        graph_type: str,
        nodes: list[GraphNode],
        edges: list[GraphEdge],
        database: str | None = None,
    ) -> Graph: ...

    async def get_graph(
        self, graph_id: str, database: str | None = None, bypass_cache: bool = False
    ) -> GraphData: ...

    async def read_graph(
        self, graph_id: str, database: str | None = None, bypass_cache: bool = False
    ) -> GraphRead: ...

    async def list_graphs(self, database: str | None = None) -> list[GraphSummary]: ...

    async def get_graph_stats(self, graph_id: str, database: str | None = None) -> GraphStats: ...

    async def delete_graph(self, graph_id: str, database: str | None = None) -> None: ...

    async def get_starting_node(self, graph_id: str, database: str | None = None) -> GraphNode: ...

    async def get_neighbors(
        self, graph_id: str, node_id: str, depth: int = 1, database: str | None = None
    ) -> GraphData: ...

    async def compute_impact(
        self, graph_id: str, node_id: str, depth: int = 5, database: str | None = None
    ) -> ImpactResult: ...

    async def list_databases(self) -> list[DatabaseInfo]: ...

    async def create_database(self, name: str) -> None: ...

    async def delete_database(self, name: str) -> None: ...

    async def get_database_stats(self, name: str) -> DatabaseStats: ...

    async def execute_raw_query(self, query: str, database: str | None = None) -> RawQueryResult: ...

    def get_cache_stats(self) -> CacheStats: ...

    def clear_cache(self, graph_id: str | None = None, database: str | None = None) -> CacheClearResult: ...


class BaseGraphStore(LoggerMixin):
    """Shared implementation of the GraphStore operations.

    Subclasses set ``engine`` and implement the hooks. Every public method
    resolves the database argument first, so hooks always receive a
    validated, non-empty database name.
    """

    engine: str = "base"

    # Whether full-graph reads issue node and edge queries concurrently
    parallel_reads: bool = True

    # Single-database engines refuse any database other than the default
    supports_databases: bool = True

    def __init__(self, default_database: str, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.default_database = default_database
        self.max_depth = self.settings.traversal.max_depth
        self.cache = GraphCache(
            engine=self.engine,
            default_database=default_database,
            ttl_seconds=self.settings.cache.ttl_seconds,
            check_period=self.settings.cache.check_period_seconds,
        )
        self._closed = False

    def log_context(self) -> dict[str, Any]:
        return {"engine": self.engine}

    # Lifecycle

    async def initialize(self) -> None:
        """Prepare schema, indexes and connectivity."""

    async def close(self) -> None:
        """Release the connection pool. Later calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        await self._close()
        self.logger.info("Graph store closed")

    async def health_check(self) -> bool:
        """Whether the backend currently answers."""
        return True

    def resolve_database(self, database: str | None) -> str:
        """Validate a database argument, substituting the default for None."""
        if database is None or database == self.default_database:
            return self.default_database
        if not self.supports_databases:
            raise UnsupportedOperationError(
                f"{self.engine} has a single database; '{database}' is not available",
                details={"database": database},
            )
        return validate_database_name(database)

    # Graph operations

    async def create_graph(
        self,
        graph_id: str,
        title: str,
        description: str,
        graph_type: str,
        nodes: list[GraphNode],
        edges: list[GraphEdge],
        database: str | None = None,
    ) -> Graph:
        """Persist a graph, its nodes and its edges.

        Nodes with a duplicate id keep their first occurrence. Edges whose
        endpoints are not among the nodes are skipped, so ``edge_count`` in
        the result may be lower than ``len(edges)``.

        Raises:
            EmptyGraphError: If no node is supplied.
            GraphAlreadyExistsError: If the id is taken in this database.
        """
        db = self.resolve_database(database)
        if not nodes:
            raise EmptyGraphError(details={"graph_id": graph_id})

        unique_nodes = dedupe_nodes(nodes)
        prepared_edges = assign_edge_ids(edges)

        try:
            graph = await self._create_graph(
                graph_id, title, description, graph_type, unique_nodes, prepared_edges, db
            )
        finally:
            self.cache.invalidate(db, graph_id)

        self.logger.info(
            "Graph created",
            database=db,
            graph_id=graph_id,
            node_count=graph.node_count,
            edge_count=graph.edge_count,
            skipped_edges=len(prepared_edges) - graph.edge_count,
        )
        return graph

    async def get_graph(
        self, graph_id: str, database: str | None = None, bypass_cache: bool = False
    ) -> GraphData:
        """Full node and edge set of a graph, cache first unless bypassed.

        Raises:
            GraphNotFoundError: If the graph does not exist.
        """
        read = await self.read_graph(graph_id, database, bypass_cache)
        return read.data

    async def read_graph(
        self, graph_id: str, database: str | None = None, bypass_cache: bool = False
    ) -> GraphRead:
        """Like get_graph, with cache status and timing attached."""
        db = self.resolve_database(database)
        start = time.perf_counter()

        data, status = await self.cache.read_through(
            db, graph_id, bypass_cache, lambda: self._load_graph(graph_id, db)
        )

        return GraphRead(
            data=data,
            cache_status=status,
            elapsed_ms=round((time.perf_counter() - start) * 1000, 3),
            parallel_queries=self.parallel_reads and status != "HIT",
            engine=self.engine,
        )

    async def list_graphs(self, database: str | None = None) -> list[GraphSummary]:
        """Graphs of a database, newest first."""
        return await self._list_graphs(self.resolve_database(database))

    async def get_graph_stats(self, graph_id: str, database: str | None = None) -> GraphStats:
        """Node/edge counts, node type histogram and average degree."""
        return await self._graph_stats(graph_id, self.resolve_database(database))

    async def delete_graph(self, graph_id: str, database: str | None = None) -> None:
        """Delete a graph and everything it owns. Absent graphs are a no-op."""
        db = self.resolve_database(database)
        try:
            await self._delete_graph(graph_id, db)
        finally:
            self.cache.invalidate(db, graph_id)
        self.logger.info("Graph deleted", database=db, graph_id=graph_id)

    async def get_starting_node(self, graph_id: str, database: str | None = None) -> GraphNode:
        """Any node of the graph, as an entry point for exploration.

        Raises:
            GraphNotFoundError: If the graph is missing or has no nodes.
        """
        return await self._starting_node(graph_id, self.resolve_database(database))

    async def get_neighbors(
        self, graph_id: str, node_id: str, depth: int = 1, database: str | None = None
    ) -> GraphData:
        """Nodes within ``depth`` hops in either direction, plus the edges among them.

        Raises:
            GraphNotFoundError: If the graph does not exist.
            NodeNotFoundError: If the node is not in the graph.
        """
        db = self.resolve_database(database)
        depth = clamp_depth(depth, self.max_depth)

        timer = TraversalTimer(self.engine, "neighbors")
        nodes, edges = await self._neighbors(graph_id, node_id, depth, db)
        result = ordered_subgraph(nodes, edges)
        timer.finish(node_count=len(result.nodes))
        return result

    async def compute_impact(
        self, graph_id: str, node_id: str, depth: int = 5, database: str | None = None
    ) -> ImpactResult:
        """Nodes reachable from ``node_id`` along outgoing edges, with hop level.

        Raises:
            GraphNotFoundError: If the graph does not exist.
            NodeNotFoundError: If the node is not in the graph.
        """
        db = self.resolve_database(database)
        depth = clamp_depth(depth, self.max_depth)

        timer = TraversalTimer(self.engine, "impact")
        levels = await self._impact_levels(graph_id, node_id, depth, db)
        elapsed_ms = timer.finish(node_count=len(levels))
        return build_impact_result(node_id, levels, depth, elapsed_ms, self.engine)

    # Database administration

    async def list_databases(self) -> list[DatabaseInfo]:
        """Databases known to the backend."""
        return [DatabaseInfo(name=self.default_database, default=True, status="online")]

    async def create_database(self, name: str) -> None:
        """Create a database. Existing databases are left untouched."""
        raise UnsupportedOperationError(f"{self.engine} does not support creating databases")

    async def delete_database(self, name: str) -> None:
        """Drop a database. The default and system databases are protected."""
        raise UnsupportedOperationError(f"{self.engine} does not support deleting databases")

    async def get_database_stats(self, name: str) -> DatabaseStats:
        """Totals across every graph of a database."""
        return await self._database_stats(self.resolve_database(name))

    async def execute_raw_query(self, query: str, database: str | None = None) -> RawQueryResult:
        """Run backend-native query text."""
        raise UnsupportedOperationError(f"{self.engine} does not support raw queries")

    # Cache introspection

    def get_cache_stats(self) -> CacheStats:
        return self.cache.stats

    def clear_cache(self, graph_id: str | None = None, database: str | None = None) -> CacheClearResult:
        return self.cache.clear(graph_id=graph_id, database=database)

    # Backend hooks

    async def _close(self) -> None:
        pass

    async def _create_graph(
        self,
        graph_id: str,
        title: str,
        description: str,
        graph_type: str,
        nodes: list[GraphNode],
        edges: list[GraphEdge],
        database: str,
    ) -> Graph:
        raise NotImplementedError

    async def _load_graph(self, graph_id: str, database: str) -> GraphData:
        raise NotImplementedError

    async def _list_graphs(self, database: str) -> list[GraphSummary]:
        raise NotImplementedError

    async def _graph_stats(self, graph_id: str, database: str) -> GraphStats:
        raise NotImplementedError

    async def _delete_graph(self, graph_id: str, database: str) -> None:
        raise NotImplementedError

    async def _starting_node(self, graph_id: str, database: str) -> GraphNode:
        raise NotImplementedError

    async def _neighbors(
        self, graph_id: str, node_id: str, depth: int, database: str
    ) -> tuple[Iterable[GraphNode], Iterable[GraphEdge]]:
        raise NotImplementedError

    async def _impact_levels(
        self, graph_id: str, node_id: str, depth: int, database: str
    ) -> dict[str, int]:
        raise NotImplementedError

    async def _database_stats(self, database: str) -> DatabaseStats:
        raise NotImplementedError


def to_json_value(value: Any) -> Any:
    """Normalize a driver value into something JSON can encode."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_json_value(v) for v in value]
    if isinstance(value, bytes):
        return value.hex()
    return str(value)
