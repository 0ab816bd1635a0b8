"""Cypher graph store shared by Neo4j and Memgraph.

Both engines speak Bolt and Cypher, so one store class runs against
either; the differences (path length function, multi-database support,
schema DDL, protected databases) live in a CypherDialect value.

Storage layout per database:
    (:Graph {id, title, description, graph_type, node_count, edge_count, created_at})
    (:GraphNode {graph_id, node_id, label, node_type, properties})
    (:GraphNode)-[:CONNECTED_TO {graph_id, edge_id, label, edge_type, properties}]->(:GraphNode)

Properties are stored as JSON strings; Bolt properties cannot hold maps.
"""

import asyncio
import json
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from neo4j import AsyncDriver
from neo4j.exceptions import (
    ConnectionAcquisitionTimeoutError,
    DatabaseUnavailable,
    Neo4jError,
    ServiceUnavailable,
    SessionExpired,
)

from graphlens.common.config import Settings
from graphlens.common.exceptions import (
    BackendUnavailableError,
    DatabaseNotFoundError,
    GraphAlreadyExistsError,
    GraphNotFoundError,
    NodeNotFoundError,
    ProtectedDatabaseError,
)
from graphlens.common.metrics import INGESTION_BATCHES, INGESTION_SKIPPED_EDGES
from graphlens.graph.batching import BatchPlan, iter_batches
from graphlens.graph.traversal import min_levels, ordered_subgraph
from graphlens.models.base import utcnow
from graphlens.schemas.database import DatabaseInfo, DatabaseStats
from graphlens.schemas.graph import (
    Graph,
    GraphData,
    GraphEdge,
    GraphNode,
    GraphStats,
    GraphSummary,
    RawQueryResult,
)
from graphlens.stores.base import (
    BaseGraphStore,
    build_graph_stats,
    gather_reads,
    to_json_value,
    validate_database_name,
)

DATABASE_NOT_FOUND_CODE = "Neo.ClientError.Database.DatabaseNotFound"

# Connection loss, pool exhaustion and unavailable databases
UNAVAILABLE_ERRORS = (
    ServiceUnavailable,
    SessionExpired,
    DatabaseUnavailable,
    ConnectionAcquisitionTimeoutError,
)


@dataclass(frozen=True)
class CypherDialect:
    """What differs between Cypher engines.

    Attributes:
        engine: Engine name reported in results and metrics.
        path_length: Cypher expression for the hop count of ``path``.
        default_database: Database used when callers pass none.
        supports_databases: Whether sessions can target a named database.
        system_database: Database that runs administration commands.
        protected_databases: Databases that can never be dropped.
        schema_queries: Constraint and index DDL run at startup.
    """

    engine: str
    path_length: str
    default_database: str
    supports_databases: bool = True
    system_database: str | None = None
    protected_databases: frozenset[str] = frozenset()
    schema_queries: tuple[str, ...] = field(default_factory=tuple)


GRAPH_EXISTS = "MATCH (g:Graph {id: $graph_id}) RETURN count(g) AS count"

CREATE_GRAPH = """
CREATE (g:Graph {
    id: $graph_id,
    title: $title,
    description: $description,
    graph_type: $graph_type,
    node_count: $node_count,
    edge_count: 0,
    created_at: $created_at
})
"""

CREATE_NODES = """
UNWIND $batch AS node
CREATE (n:GraphNode {
    graph_id: $graph_id,
    node_id: node.node_id,
    label: node.label,
    node_type: node.node_type,
    properties: node.properties
})
"""

# MATCH drops rows whose endpoints do not exist, so unknown edges are skipped
CREATE_EDGES = """
UNWIND $batch AS edge
MATCH (source:GraphNode {graph_id: $graph_id, node_id: edge.source})
MATCH (target:GraphNode {graph_id: $graph_id, node_id: edge.target})
CREATE (source)-[:CONNECTED_TO {
    graph_id: $graph_id,
    edge_id: edge.edge_id,
    label: edge.label,
    edge_type: edge.edge_type,
    properties: edge.properties
}]->(target)
RETURN count(*) AS created
"""

SET_EDGE_COUNT = "MATCH (g:Graph {id: $graph_id}) SET g.edge_count = $edge_count"

NODE_FIELDS = "n.node_id AS id, n.label AS label, n.node_type AS node_type, n.properties AS properties"

EDGE_FIELDS = (
    "r.edge_id AS id, s.node_id AS source, t.node_id AS target, "
    "r.label AS label, r.edge_type AS edge_type, r.properties AS properties"
)

READ_NODES = f"MATCH (n:GraphNode {{graph_id: $graph_id}}) RETURN {NODE_FIELDS}"

READ_EDGES = (
    "MATCH (s:GraphNode {graph_id: $graph_id})-[r:CONNECTED_TO]->(t:GraphNode {graph_id: $graph_id}) "
    f"RETURN {EDGE_FIELDS}"
)

READ_NODE = f"MATCH (n:GraphNode {{graph_id: $graph_id, node_id: $node_id}}) RETURN {NODE_FIELDS} LIMIT 1"

STARTING_NODE = f"MATCH (n:GraphNode {{graph_id: $graph_id}}) RETURN {NODE_FIELDS} LIMIT 1"

LIST_GRAPHS = """
MATCH (g:Graph)
RETURN g.id AS id, g.title AS title, g.description AS description,
       g.graph_type AS graph_type, g.node_count AS node_count, g.edge_count AS edge_count
ORDER BY g.created_at DESC, g.id
"""

NODE_TYPE_COUNTS = (
    "MATCH (n:GraphNode {graph_id: $graph_id}) RETURN n.node_type AS node_type, count(*) AS count"
)

EDGE_COUNT = (
    "MATCH (:GraphNode {graph_id: $graph_id})-[r:CONNECTED_TO]->(:GraphNode {graph_id: $graph_id}) "
    "RETURN count(r) AS count"
)

DELETE_NODES = "MATCH (n:GraphNode {graph_id: $graph_id}) DETACH DELETE n"

DELETE_GRAPH = "MATCH (g:Graph {id: $graph_id}) DELETE g"

# Depth is an int clamped to [1, 15] before interpolation
IMPACT = """
MATCH path = (source:GraphNode {{graph_id: $graph_id, node_id: $node_id}})
             -[:CONNECTED_TO*1..{depth}]->
             (n:GraphNode {{graph_id: $graph_id}})
WHERE n <> source
RETURN n.node_id AS node_id, min({path_length}) AS level
"""

NEIGHBOR_NODES = """
MATCH (start:GraphNode {{graph_id: $graph_id, node_id: $node_id}})
      -[:CONNECTED_TO*1..{depth}]-
      (n:GraphNode {{graph_id: $graph_id}})
RETURN DISTINCT {fields}
"""

EDGES_AMONG = (
    "MATCH (s:GraphNode {graph_id: $graph_id})-[r:CONNECTED_TO]->(t:GraphNode {graph_id: $graph_id}) "
    f"WHERE s.node_id IN $node_ids AND t.node_id IN $node_ids RETURN {EDGE_FIELDS}"
)

COUNT_NODES = "MATCH (n:GraphNode) RETURN count(n) AS count"
COUNT_RELATIONSHIPS = "MATCH ()-[r:CONNECTED_TO]->() RETURN count(r) AS count"
COUNT_GRAPHS = "MATCH (g:Graph) RETURN count(g) AS count"


def _load_properties(raw: Any) -> dict[str, Any]:
    if not raw:
        return {}
    if isinstance(raw, dict):
        return raw
    return json.loads(raw)


def _node_from(row: dict[str, Any]) -> GraphNode:
    return GraphNode(
        id=row["id"],
        label=row.get("label") or "",
        node_type=row.get("node_type") or "default",
        properties=_load_properties(row.get("properties")),
    )


def _edge_from(row: dict[str, Any]) -> GraphEdge:
    return GraphEdge(
        id=row.get("id"),
        source=row["source"],
        target=row["target"],
        label=row.get("label") or None,
        edge_type=row.get("edge_type") or "default",
        properties=_load_properties(row.get("properties")),
    )


class CypherGraphStore(BaseGraphStore):
    """Graph store over a Bolt driver.

    Traversals are single var-length path queries; the engine walks its
    own adjacency and ``min(path length)`` collapses duplicate arrivals.
    """

    def __init__(self, dialect: CypherDialect, driver: AsyncDriver, settings: Settings | None = None) -> None:
        self.dialect = dialect
        self.engine = dialect.engine
        self.supports_databases = dialect.supports_databases
        super().__init__(dialect.default_database, settings)

        self._driver = driver
        self.batch_plan = BatchPlan.fixed(self.settings.ingestion.cypher_batch_size)

    # Query execution

    def _session_kwargs(self, database: str | None) -> dict[str, Any]:
        if not self.supports_databases:
            return {}
        return {"database": database or self.default_database}

    @asynccontextmanager
    async def _translate_errors(self, database: str | None) -> AsyncGenerator[None, None]:
        """Map driver failures to GraphLens errors."""
        try:
            yield
        except UNAVAILABLE_ERRORS as exc:
            self.logger.warning(
                "Cypher backend unavailable",
                database=database,
                error=str(exc),
            )
            raise BackendUnavailableError(
                f"{self.engine} backend unavailable",
                details={"database": database},
                cause=exc,
            ) from exc
        except Neo4jError as exc:
            if exc.code == DATABASE_NOT_FOUND_CODE:
                raise DatabaseNotFoundError(details={"database": database}, cause=exc) from exc
            raise

    async def _run(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
        database: str | None = None,
    ) -> list[dict[str, Any]]:
        """Run one auto-commit query and return its records as dicts."""
        async with self._translate_errors(database):
            async with self._driver.session(**self._session_kwargs(database)) as session:
                result = await session.run(query, parameters or {})
                return await result.data()

    async def _count(self, query: str, parameters: dict[str, Any], database: str) -> int:
        rows = await self._run(query, parameters, database)
        return int(rows[0]["count"]) if rows else 0

    async def _graph_exists(self, graph_id: str, database: str) -> bool:
        return await self._count(GRAPH_EXISTS, {"graph_id": graph_id}, database) > 0

    async def _require_graph(self, graph_id: str, database: str) -> None:
        if not await self._graph_exists(graph_id, database):
            raise GraphNotFoundError(details={"graph_id": graph_id, "database": database})

    async def _require_node(self, graph_id: str, node_id: str, database: str) -> GraphNode:
        rows = await self._run(READ_NODE, {"graph_id": graph_id, "node_id": node_id}, database)
        if not rows:
            await self._require_graph(graph_id, database)
            raise NodeNotFoundError(details={"graph_id": graph_id, "node_id": node_id})
        return _node_from(rows[0])

    # Lifecycle

    async def initialize(self) -> None:
        """Check connectivity, then create constraints and indexes.

        Schema statements that fail (typically because the constraint
        already exists on engines without IF NOT EXISTS) are logged and
        skipped; a connectivity failure is raised.
        """
        async with self._translate_errors(self.default_database):
            await self._driver.verify_connectivity()

        for query in self.dialect.schema_queries:
            try:
                await self._run(query, database=self.default_database)
            except Neo4jError as exc:
                self.logger.debug("Schema statement skipped", query=query, error=str(exc))

        self.logger.info(
            "Cypher graph store initialized",
            database=self.default_database,
            batch_size=self.batch_plan.node_batch_size,
        )

    async def _close(self) -> None:
        await self._driver.close()

    async def health_check(self) -> bool:
        try:
            await self._run("RETURN 1 AS ok", database=self.default_database)
            return True
        except BackendUnavailableError:
            return False

    # Graph operations

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
        if await self._graph_exists(graph_id, database):
            raise GraphAlreadyExistsError(details={"graph_id": graph_id, "database": database})

        created_at = utcnow()
        await self._run(CREATE_GRAPH, {
            "graph_id": graph_id,
            "title": title,
            "description": description,
            "graph_type": graph_type,
            "node_count": len(nodes),
            "created_at": created_at.isoformat(),
        }, database)

        for batch in iter_batches(nodes, self.batch_plan.node_batch_size):
            await self._run(CREATE_NODES, {
                "graph_id": graph_id,
                "batch": [
                    {
                        "node_id": node.id,
                        "label": node.label,
                        "node_type": node.node_type,
                        "properties": json.dumps(node.properties),
                    }
                    for node in batch
                ],
            }, database)
            INGESTION_BATCHES.labels(engine=self.engine, kind="nodes").inc()

        created = 0
        for batch in iter_batches(edges, self.batch_plan.edge_batch_size):
            rows = await self._run(CREATE_EDGES, {
                "graph_id": graph_id,
                "batch": [
                    {
                        "edge_id": edge.id,
                        "source": edge.source,
                        "target": edge.target,
                        "label": edge.label or "",
                        "edge_type": edge.edge_type,
                        "properties": json.dumps(edge.properties),
                    }
                    for edge in batch
                ],
            }, database)
            created += int(rows[0]["created"]) if rows else 0
            INGESTION_BATCHES.labels(engine=self.engine, kind="edges").inc()

        await self._run(SET_EDGE_COUNT, {"graph_id": graph_id, "edge_count": created}, database)

        skipped = len(edges) - created
        if skipped:
            INGESTION_SKIPPED_EDGES.labels(engine=self.engine).inc(skipped)
            self.logger.warning("Skipped edges with unknown endpoints", graph_id=graph_id, skipped=skipped)

        return Graph(
            id=graph_id,
            title=title,
            description=description,
            graph_type=graph_type,
            node_count=len(nodes),
            edge_count=created,
            created_at=created_at,
        )

    async def _load_graph(self, graph_id: str, database: str) -> GraphData:
        params = {"graph_id": graph_id}
        exists, node_rows, edge_rows = await gather_reads(
            self._graph_exists(graph_id, database),
            self._run(READ_NODES, params, database),
            self._run(READ_EDGES, params, database),
        )
        if not exists:
            raise GraphNotFoundError(details={"graph_id": graph_id, "database": database})
        return ordered_subgraph(
            (_node_from(row) for row in node_rows),
            (_edge_from(row) for row in edge_rows),
        )

    async def _list_graphs(self, database: str) -> list[GraphSummary]:
        rows = await self._run(LIST_GRAPHS, database=database)
        return [
            GraphSummary(
                id=row["id"],
                title=row.get("title") or "",
                description=row.get("description") or "",
                graph_type=row.get("graph_type") or "flowchart",
                node_count=int(row.get("node_count") or 0),
                edge_count=int(row.get("edge_count") or 0),
            )
            for row in rows
        ]

    async def _graph_stats(self, graph_id: str, database: str) -> GraphStats:
        await self._require_graph(graph_id, database)
        params = {"graph_id": graph_id}
        type_rows, edge_count = await gather_reads(
            self._run(NODE_TYPE_COUNTS, params, database),
            self._count(EDGE_COUNT, params, database),
        )
        node_types = {row["node_type"]: int(row["count"]) for row in type_rows}
        return build_graph_stats(sum(node_types.values()), edge_count, node_types)

    async def _delete_graph(self, graph_id: str, database: str) -> None:
        params = {"graph_id": graph_id}
        await self._run(DELETE_NODES, params, database)
        await self._run(DELETE_GRAPH, params, database)

    async def _starting_node(self, graph_id: str, database: str) -> GraphNode:
        rows = await self._run(STARTING_NODE, {"graph_id": graph_id}, database)
        if not rows:
            raise GraphNotFoundError("Graph not found or has no nodes", details={"graph_id": graph_id})
        return _node_from(rows[0])

    # Traversals

    async def _impact_levels(
        self, graph_id: str, node_id: str, depth: int, database: str
    ) -> dict[str, int]:
        await self._require_node(graph_id, node_id, database)
        query = IMPACT.format(depth=int(depth), path_length=self.dialect.path_length)
        rows = await self._run(query, {"graph_id": graph_id, "node_id": node_id}, database)
        return min_levels((row["node_id"], int(row["level"])) for row in rows)

    async def _neighbors(
        self, graph_id: str, node_id: str, depth: int, database: str
    ) -> tuple[list[GraphNode], list[GraphEdge]]:
        start = await self._require_node(graph_id, node_id, database)
        params = {"graph_id": graph_id, "node_id": node_id}

        query = NEIGHBOR_NODES.format(depth=int(depth), fields=NODE_FIELDS)
        nodes = [start, *(_node_from(row) for row in await self._run(query, params, database))]

        node_ids = sorted({node.id for node in nodes})
        edge_rows = await self._run(EDGES_AMONG, {"graph_id": graph_id, "node_ids": node_ids}, database)
        return nodes, [_edge_from(row) for row in edge_rows]

    # Database administration

    async def list_databases(self) -> list[DatabaseInfo]:
        """SHOW DATABASES, bounded by a timeout on multi-database engines."""
        if not self.supports_databases:
            return await super().list_databases()

        timeout = self.settings.neo4j.list_databases_timeout
        try:
            rows = await asyncio.wait_for(
                self._run("SHOW DATABASES", database=self.dialect.system_database),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            raise BackendUnavailableError(
                f"SHOW DATABASES timed out after {timeout:g}s",
                cause=exc,
            ) from exc

        databases: dict[str, DatabaseInfo] = {}
        for row in rows:
            name = row["name"]
            status = row.get("currentStatus") or "unknown"
            info = DatabaseInfo(
                name=name,
                default=bool(row.get("default")),
                status=status if status in ("online", "offline") else "unknown",
            )
            # Clustered deployments report one row per member
            if name not in databases or info.status == "online":
                databases[name] = info
        return [databases[name] for name in sorted(databases)]

    async def create_database(self, name: str) -> None:
        if not self.supports_databases:
            return await super().create_database(name)

        validate_database_name(name)
        await self._run(f"CREATE DATABASE `{name}` IF NOT EXISTS", database=self.dialect.system_database)
        self.logger.info("Database created", database=name)

    async def delete_database(self, name: str) -> None:
        if not self.supports_databases:
            return await super().delete_database(name)

        validate_database_name(name)
        if name == self.default_database or name in self.dialect.protected_databases:
            raise ProtectedDatabaseError(details={"database": name})

        await self._run(f"DROP DATABASE `{name}` IF EXISTS", database=self.dialect.system_database)
        self.cache.invalidate_database(name)
        self.logger.info("Database deleted", database=name)

    async def _database_stats(self, database: str) -> DatabaseStats:
        node_count, relationship_count, graph_count = await gather_reads(
            self._count(COUNT_NODES, {}, database),
            self._count(COUNT_RELATIONSHIPS, {}, database),
            self._count(COUNT_GRAPHS, {}, database),
        )
        return DatabaseStats(
            node_count=node_count,
            relationship_count=relationship_count,
            graph_count=graph_count,
        )

    async def execute_raw_query(self, query: str, database: str | None = None) -> RawQueryResult:
        """Run raw Cypher. Driver values are converted to JSON-safe values."""
        db = self.resolve_database(database)
        start = time.perf_counter()
        rows = await self._run(query, database=db)
        return RawQueryResult(
            rows=[{key: to_json_value(value) for key, value in row.items()} for row in rows],
            elapsed_ms=round((time.perf_counter() - start) * 1000, 3),
            row_count=len(rows),
            engine=self.engine,
        )
