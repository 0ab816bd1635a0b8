"""Unit tests for the Cypher store with a fake async Bolt driver."""

from typing import Any

import pytest
from neo4j.exceptions import ConnectionAcquisitionTimeoutError, ServiceUnavailable

from graphlens.common.config import Settings
from graphlens.common.exceptions import (
    BackendUnavailableError,
    GraphAlreadyExistsError,
    GraphNotFoundError,
    NodeNotFoundError,
    ProtectedDatabaseError,
    UnsupportedOperationError,
)
from graphlens.schemas.graph import GraphEdge, GraphNode
from graphlens.stores import cypher
from graphlens.stores.cypher import CypherGraphStore
from graphlens.stores.memgraph_store import MEMGRAPH_DIALECT
from graphlens.stores.neo4j_store import neo4j_dialect


class FakeResult:
    def __init__(self, rows: list[dict[str, Any]]) -> None:
        self._rows = rows

    async def data(self) -> list[dict[str, Any]]:
        return self._rows


class FakeSession:
    def __init__(self, driver: "FakeDriver", kwargs: dict[str, Any]) -> None:
        self.driver = driver
        self.kwargs = kwargs

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> bool:
        return False

    async def run(self, query: str, parameters: dict[str, Any] | None = None) -> FakeResult:
        parameters = parameters or {}
        self.driver.calls.append((query, parameters, self.kwargs))
        rows = self.driver.respond(query, parameters)
        if isinstance(rows, Exception):
            raise rows
        return FakeResult(rows)


class FakeDriver:
    """Records every query; answers from a list of (substring, rows) rules."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any], dict[str, Any]]] = []
        self.rules: list[tuple[str, Any]] = []
        self.closed = 0

    def on(self, fragment: str, rows: Any) -> None:
        self.rules.append((fragment, rows))

    def respond(self, query: str, parameters: dict[str, Any]) -> Any:
        for fragment, rows in self.rules:
            if fragment in query:
                return rows(parameters) if callable(rows) else rows
        return []

    def session(self, **kwargs: Any) -> FakeSession:
        return FakeSession(self, kwargs)

    async def verify_connectivity(self) -> None:
        return None

    async def close(self) -> None:
        self.closed += 1

    def queries(self, fragment: str) -> list[tuple[str, dict[str, Any], dict[str, Any]]]:
        return [call for call in self.calls if fragment in call[0]]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        ingestion={"cypher_batch_size": 2},
        logging={"format": "console", "level": "WARNING"},
    )


@pytest.fixture
def driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def neo4j_store(driver, settings) -> CypherGraphStore:
    return CypherGraphStore(neo4j_dialect(), driver, settings)


@pytest.fixture
def memgraph_store(driver, settings) -> CypherGraphStore:
    return CypherGraphStore(MEMGRAPH_DIALECT, driver, settings)


def existing_node(node_id: str = "A") -> list[dict[str, Any]]:
    return [{"id": node_id, "label": node_id, "node_type": "process", "properties": "{}"}]


@pytest.mark.unit
class TestCypherImpact:
    """Test cases for var-length impact queries."""

    @pytest.mark.asyncio
    async def test_neo4j_query_and_levels(self, neo4j_store, driver):
        """Test the hop bound, path length function and level collapsing."""
        driver.on("LIMIT 1", existing_node("A"))
        driver.on("min(", [
            {"node_id": "D", "level": 2},
            {"node_id": "C", "level": 1},
            {"node_id": "B", "level": 1},
        ])

        result = await neo4j_store.compute_impact("g", "A", 2)

        assert [(n.node_id, n.level) for n in result.impacted_nodes] == [("B", 1), ("C", 1), ("D", 2)]
        assert result.engine == "neo4j"
        query, params, session_kwargs = driver.queries("min(")[0]
        assert "*1..2]->" in query
        assert "min(length(path))" in query
        assert params == {"graph_id": "g", "node_id": "A"}
        assert session_kwargs == {"database": "neo4j"}

    @pytest.mark.asyncio
    async def test_memgraph_dialect(self, memgraph_store, driver):
        """Test Memgraph path length and database-less sessions."""
        driver.on("LIMIT 1", existing_node("A"))

        await memgraph_store.compute_impact("g", "A", 3)

        query, _, session_kwargs = driver.queries("min(")[0]
        assert "min(size(relationships(path)))" in query
        assert session_kwargs == {}

    @pytest.mark.asyncio
    async def test_depth_clamped_in_query(self, neo4j_store, driver):
        """Test a huge depth is interpolated as 15."""
        driver.on("LIMIT 1", existing_node("A"))

        result = await neo4j_store.compute_impact("g", "A", 999)

        assert result.depth == 15
        assert "*1..15]->" in driver.queries("min(")[0][0]

    @pytest.mark.asyncio
    async def test_out_of_range_levels_dropped(self, neo4j_store, driver):
        """Test the source and levels beyond depth never leak through."""
        driver.on("LIMIT 1", existing_node("A"))
        driver.on("min(", [{"node_id": "A", "level": 3}, {"node_id": "B", "level": 1}])

        result = await neo4j_store.compute_impact("g", "A", 2)

        assert [n.node_id for n in result.impacted_nodes] == ["B"]

    @pytest.mark.asyncio
    async def test_unknown_node(self, neo4j_store, driver):
        """Test missing node vs missing graph."""
        driver.on("count(g)", [{"count": 1}])

        with pytest.raises(NodeNotFoundError):
            await neo4j_store.compute_impact("g", "Z", 2)

    @pytest.mark.asyncio
    async def test_unknown_graph(self, neo4j_store, driver):
        """Test a missing graph is reported as such."""
        driver.on("count(g)", [{"count": 0}])

        with pytest.raises(GraphNotFoundError):
            await neo4j_store.compute_impact("missing", "A", 2)


@pytest.mark.unit
class TestCypherNeighbors:
    """Test cases for undirected neighbor expansion."""

    @pytest.mark.asyncio
    async def test_neighbors(self, neo4j_store, driver):
        """Test the start node is included and edges are ordered."""
        driver.on("LIMIT 1", existing_node("B"))
        driver.on("RETURN DISTINCT", [
            {"id": "D", "label": "D", "node_type": "process", "properties": None},
            {"id": "A", "label": "A", "node_type": "start", "properties": '{"x": 1}'},
        ])
        driver.on("IN $node_ids", [
            {"id": "e2", "source": "B", "target": "D", "label": "", "edge_type": "next", "properties": "{}"},
            {"id": "e0", "source": "A", "target": "B", "label": "go", "edge_type": "next", "properties": "{}"},
        ])

        data = await neo4j_store.get_neighbors("g", "B", 1)

        assert [n.id for n in data.nodes] == ["A", "B", "D"]
        assert data.nodes[0].properties == {"x": 1}
        assert [e.id for e in data.edges] == ["e0", "e2"]
        assert data.edges[1].label is None
        _, params, _ = driver.queries("IN $node_ids")[0]
        assert params["node_ids"] == ["A", "B", "D"]
        assert "-[:CONNECTED_TO*1..1]-" in driver.queries("RETURN DISTINCT")[0][0]


@pytest.mark.unit
class TestCypherIngestion:
    """Test cases for batched graph creation."""

    @pytest.mark.asyncio
    async def test_batches_and_edge_count(self, neo4j_store, driver):
        """Test UNWIND batches and the MATCH-based skipped edge count."""
        driver.on("count(g)", [{"count": 0}])
        driver.on("RETURN count(*) AS created", lambda params: [
            {"created": sum(1 for edge in params["batch"] if edge["target"] != "ghost")}
        ])

        nodes = [GraphNode(id=node_id) for node_id in ("A", "B", "C")]
        edges = [
            GraphEdge(source="A", target="B"),
            GraphEdge(source="B", target="C"),
            GraphEdge(source="C", target="ghost"),
        ]

        graph = await neo4j_store.create_graph("g", "G", "", "flowchart", nodes, edges)

        assert (graph.node_count, graph.edge_count) == (3, 2)
        node_batches = [params["batch"] for _, params, _ in driver.queries("UNWIND $batch AS node")]
        assert [len(batch) for batch in node_batches] == [2, 1]
        assert node_batches[0][0]["properties"] == "{}"
        edge_batches = [params["batch"] for _, params, _ in driver.queries("UNWIND $batch AS edge")]
        assert [[edge["edge_id"] for edge in batch] for batch in edge_batches] == [["e0", "e1"], ["e2"]]
        _, params, _ = driver.queries("SET g.edge_count")[0]
        assert params["edge_count"] == 2

    @pytest.mark.asyncio
    async def test_duplicate_graph(self, neo4j_store, driver):
        """Test an existing graph id is refused before any write."""
        driver.on("count(g)", [{"count": 1}])

        with pytest.raises(GraphAlreadyExistsError):
            await neo4j_store.create_graph("g", "G", "", "flowchart", [GraphNode(id="A")], [])

        assert driver.queries("CREATE (g:Graph") == []


@pytest.mark.unit
class TestCypherReads:
    """Test cases for full-graph reads and the cache."""

    @pytest.mark.asyncio
    async def test_read_is_cached(self, neo4j_store, driver):
        """Test the second read does not reach the driver."""
        driver.on("count(g)", [{"count": 1}])
        driver.on("RETURN n.node_id AS id", existing_node("A"))

        first = await neo4j_store.read_graph("g")
        calls = len(driver.calls)
        second = await neo4j_store.read_graph("g")

        assert (first.cache_status, second.cache_status) == ("MISS", "HIT")
        assert first.parallel_queries is True
        assert len(driver.calls) == calls

    @pytest.mark.asyncio
    async def test_missing_graph(self, neo4j_store, driver):
        """Test reading a missing graph raises and caches nothing."""
        driver.on("count(g)", [{"count": 0}])

        with pytest.raises(GraphNotFoundError):
            await neo4j_store.get_graph("missing")

        assert neo4j_store.get_cache_stats().cached_graphs == 0


@pytest.mark.unit
class TestCypherErrors:
    """Test cases for driver error translation."""

    @pytest.mark.asyncio
    async def test_service_unavailable(self, neo4j_store, driver):
        """Test connection failures surface as BackendUnavailableError."""
        driver.on("count(g)", ServiceUnavailable("connection refused"))

        with pytest.raises(BackendUnavailableError):
            await neo4j_store.get_graph("g")

    @pytest.mark.asyncio
    async def test_pool_exhaustion(self, neo4j_store, driver):
        """Test a connection acquisition timeout surfaces as a 503."""
        driver.on(
            "count(g)",
            ConnectionAcquisitionTimeoutError("failed to obtain a connection from the pool within 10.0s"),
        )

        with pytest.raises(BackendUnavailableError) as exc_info:
            await neo4j_store.get_graph_stats("g")

        assert exc_info.value.status_code == 503
        assert isinstance(exc_info.value.cause, ConnectionAcquisitionTimeoutError)

    @pytest.mark.asyncio
    async def test_health_check(self, neo4j_store, driver):
        """Test health reflects driver availability."""
        assert await neo4j_store.health_check() is True

        driver.on("RETURN 1", ServiceUnavailable("down"))
        assert await neo4j_store.health_check() is False


@pytest.mark.unit
class TestCypherDatabases:
    """Test cases for database administration."""

    @pytest.mark.asyncio
    async def test_list_databases_dedupes_cluster_rows(self, neo4j_store, driver):
        """Test one entry per name, preferring the online row."""
        driver.on("SHOW DATABASES", [
            {"name": "neo4j", "currentStatus": "online", "default": True},
            {"name": "system", "currentStatus": "online", "default": False},
            {"name": "sales", "currentStatus": "offline", "default": False},
            {"name": "sales", "currentStatus": "online", "default": False},
        ])

        databases = await neo4j_store.list_databases()

        assert [(d.name, d.default, d.status) for d in databases] == [
            ("neo4j", True, "online"),
            ("sales", False, "online"),
            ("system", False, "online"),
        ]
        assert driver.queries("SHOW DATABASES")[0][2] == {"database": "system"}

    @pytest.mark.asyncio
    async def test_create_and_drop(self, neo4j_store, driver):
        """Test DDL is sent to the system database."""
        await neo4j_store.create_database("sales")
        await neo4j_store.delete_database("sales")

        queries = [(query, kwargs) for query, _, kwargs in driver.calls]
        assert ("CREATE DATABASE `sales` IF NOT EXISTS", {"database": "system"}) in queries
        assert ("DROP DATABASE `sales` IF EXISTS", {"database": "system"}) in queries

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["neo4j", "system"])
    async def test_protected(self, neo4j_store, driver, name):
        """Test default and system databases cannot be dropped."""
        with pytest.raises(ProtectedDatabaseError):
            await neo4j_store.delete_database(name)
        assert driver.calls == []

    @pytest.mark.asyncio
    async def test_memgraph_single_database(self, memgraph_store):
        """Test Memgraph refuses database administration and other databases."""
        with pytest.raises(UnsupportedOperationError):
            await memgraph_store.create_database("sales")
        with pytest.raises(UnsupportedOperationError):
            await memgraph_store.delete_database("sales")
        with pytest.raises(UnsupportedOperationError):
            await memgraph_store.list_graphs("sales")

        databases = await memgraph_store.list_databases()
        assert [(d.name, d.default) for d in databases] == [("memgraph", True)]


@pytest.mark.unit
class TestCypherLifecycle:
    """Test cases for initialize and close."""

    @pytest.mark.asyncio
    async def test_initialize_runs_schema(self, neo4j_store, driver):
        """Test constraint and index statements are issued."""
        await neo4j_store.initialize()

        assert len(driver.queries("IF NOT EXISTS")) == 3

    @pytest.mark.asyncio
    async def test_close_once(self, neo4j_store, driver):
        """Test the driver is closed exactly once."""
        await neo4j_store.close()
        await neo4j_store.close()

        assert driver.closed == 1

    @pytest.mark.asyncio
    async def test_raw_query(self, neo4j_store, driver):
        """Test raw Cypher rows are returned as JSON-safe values."""
        driver.on("RETURN 42", [{"answer": 42, "items": ("a", "b")}])

        result = await neo4j_store.execute_raw_query("RETURN 42 AS answer")

        assert result.rows == [{"answer": 42, "items": ["a", "b"]}]
        assert result.row_count == 1
        assert result.engine == "neo4j"


@pytest.mark.unit
def test_dialect_constants():
    """Test both dialects share the Cypher store module."""
    assert cypher.CypherDialect is type(MEMGRAPH_DIALECT)
    assert neo4j_dialect("custom").protected_databases >= {"neo4j", "system", "custom"}
