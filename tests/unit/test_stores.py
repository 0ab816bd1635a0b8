"""Unit tests for the storage adapter contract.

Every test runs against the in-memory store and the SQL store on SQLite.
"""

import asyncio

import pytest

from graphlens.common.exceptions import (
    DatabaseNotFoundError,
    EmptyGraphError,
    GraphAlreadyExistsError,
    GraphNotFoundError,
    InvalidDatabaseNameError,
    NodeNotFoundError,
    ProtectedDatabaseError,
)
from graphlens.schemas.graph import GraphEdge, GraphNode
from graphlens.stores.base import GraphStore


def impact_pairs(result):
    return [(n.node_id, n.level) for n in result.impacted_nodes]


async def create(store, graph_id, graph, database=None):
    nodes, edges = graph
    return await store.create_graph(graph_id, graph_id.title(), "", "flowchart", nodes, edges, database)


@pytest.mark.unit
class TestGraphLifecycle:
    """Test cases for create, read, list and delete."""

    @pytest.mark.asyncio
    async def test_satisfies_protocol(self, store):
        """Test every adapter is a GraphStore."""
        assert isinstance(store, GraphStore)

    @pytest.mark.asyncio
    async def test_create_and_read(self, store, diamond):
        """Test counts and content survive a round trip."""
        graph = await create(store, "diamond", diamond)

        assert (graph.node_count, graph.edge_count) == (4, 4)

        data = await store.get_graph("diamond", bypass_cache=True)
        assert [n.id for n in data.nodes] == ["A", "B", "C", "D"]
        assert [(e.source, e.target) for e in data.edges] == [("A", "B"), ("A", "C"), ("B", "D"), ("C", "D")]
        assert [e.id for e in data.edges] == ["e0", "e1", "e2", "e3"]

    @pytest.mark.asyncio
    async def test_edge_to_unknown_node_dropped(self, store):
        """Test an edge with a missing endpoint is skipped, not fatal."""
        nodes = [GraphNode(id="A"), GraphNode(id="B")]
        edges = [GraphEdge(source="A", target="B"), GraphEdge(source="A", target="ghost")]

        graph = await store.create_graph("g", "G", "", "flowchart", nodes, edges)

        assert graph.edge_count == 1
        data = await store.get_graph("g")
        assert len(data.edges) == 1
        assert (await store.list_graphs())[0].edge_count == 1

    @pytest.mark.asyncio
    async def test_properties_round_trip(self, store):
        """Test free-form properties on nodes and edges."""
        nodes = [
            GraphNode(id="A", label="Alpha", node_type="start", properties={"weight": 3, "tags": ["x", "y"]}),
            GraphNode(id="B", properties={"nested": {"ok": True}}),
        ]
        edges = [GraphEdge(id="ab", source="A", target="B", label="go", edge_type="next", properties={"km": 12.5})]

        await store.create_graph("props", "Props", "", "flowchart", nodes, edges)
        data = await store.get_graph("props", bypass_cache=True)

        assert data.nodes[0].properties == {"weight": 3, "tags": ["x", "y"]}
        assert data.nodes[0].node_type == "start"
        assert data.nodes[1].properties == {"nested": {"ok": True}}
        assert data.edges[0].model_dump() == {
            "id": "ab",
            "source": "A",
            "target": "B",
            "label": "go",
            "edge_type": "next",
            "properties": {"km": 12.5},
        }

    @pytest.mark.asyncio
    async def test_parallel_edges_and_self_loops(self, store):
        """Test multigraph edges are all kept."""
        nodes = [GraphNode(id="A"), GraphNode(id="B")]
        edges = [
            GraphEdge(source="A", target="A"),
            GraphEdge(source="A", target="B", edge_type="one"),
            GraphEdge(source="A", target="B", edge_type="two"),
        ]

        graph = await store.create_graph("multi", "Multi", "", "network", nodes, edges)

        assert graph.edge_count == 3
        data = await store.get_graph("multi")
        assert len(data.edges) == 3

    @pytest.mark.asyncio
    async def test_duplicate_node_ids_keep_first(self, store):
        """Test duplicate node ids do not fail creation."""
        nodes = [GraphNode(id="A", label="first"), GraphNode(id="A", label="second")]

        graph = await store.create_graph("dup", "Dup", "", "flowchart", nodes, [])

        assert graph.node_count == 1
        assert (await store.get_graph("dup")).nodes[0].label == "first"

    @pytest.mark.asyncio
    async def test_empty_graph_rejected(self, store):
        """Test creation without nodes fails."""
        with pytest.raises(EmptyGraphError):
            await store.create_graph("empty", "Empty", "", "flowchart", [], [])

    @pytest.mark.asyncio
    async def test_duplicate_graph_id_conflicts(self, store, diamond):
        """Test re-creating an existing id fails."""
        await create(store, "diamond", diamond)

        with pytest.raises(GraphAlreadyExistsError):
            await create(store, "diamond", diamond)

    @pytest.mark.asyncio
    async def test_unknown_graph(self, store):
        """Test reads of a missing graph raise GraphNotFoundError."""
        with pytest.raises(GraphNotFoundError):
            await store.get_graph("missing")
        with pytest.raises(GraphNotFoundError):
            await store.get_graph_stats("missing")
        with pytest.raises(GraphNotFoundError):
            await store.get_starting_node("missing")
        with pytest.raises(GraphNotFoundError):
            await store.compute_impact("missing", "A", 3)

    @pytest.mark.asyncio
    async def test_list_graphs_newest_first(self, store, diamond, cycle):
        """Test listing order."""
        await create(store, "older", diamond)
        await asyncio.sleep(0.01)
        await create(store, "newer", cycle)

        summaries = await store.list_graphs()

        assert [s.id for s in summaries] == ["newer", "older"]
        assert (summaries[0].node_count, summaries[0].edge_count) == (3, 3)

    @pytest.mark.asyncio
    async def test_stats(self, store, diamond):
        """Test node type histogram and average degree."""
        await create(store, "diamond", diamond)

        stats = await store.get_graph_stats("diamond")

        assert (stats.node_count, stats.edge_count) == (4, 4)
        assert stats.node_types == {"process": 4}
        assert stats.average_degree == 1.0

    @pytest.mark.asyncio
    async def test_starting_node(self, store, diamond):
        """Test any node of the graph is returned."""
        await create(store, "diamond", diamond)

        node = await store.get_starting_node("diamond")

        assert node.id in {"A", "B", "C", "D"}

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, store, diamond):
        """Test deleting twice succeeds and the graph is gone."""
        await create(store, "diamond", diamond)

        await store.delete_graph("diamond")
        await store.delete_graph("diamond")

        assert await store.list_graphs() == []
        with pytest.raises(GraphNotFoundError):
            await store.get_graph("diamond")


@pytest.mark.unit
class TestImpact:
    """Test cases for downstream impact."""

    @pytest.mark.asyncio
    async def test_diamond(self, store, diamond):
        """Test minimum levels on a diamond."""
        await create(store, "diamond", diamond)

        result = await store.compute_impact("diamond", "A", 2)

        assert impact_pairs(result) == [("B", 1), ("C", 1), ("D", 2)]
        assert result.engine == store.engine
        assert result.source_node_id == "A"

    @pytest.mark.asyncio
    async def test_cycle(self, store, cycle):
        """Test a cycle terminates and never reports the source."""
        await create(store, "cycle", cycle)

        result = await store.compute_impact("cycle", "A", 5)

        assert impact_pairs(result) == [("B", 1), ("C", 2)]

    @pytest.mark.asyncio
    async def test_depth_clamped(self, store, chain):
        """Test depth 999 behaves like 15."""
        await create(store, "chain", chain)

        deep = await store.compute_impact("chain", "N00", 999)
        capped = await store.compute_impact("chain", "N00", 15)

        assert impact_pairs(deep) == impact_pairs(capped)
        assert deep.depth == 15
        assert impact_pairs(deep)[-1] == ("N15", 15)

    @pytest.mark.asyncio
    async def test_depth_bounds_levels(self, store, chain):
        """Test no level exceeds the depth."""
        await create(store, "chain", chain)

        result = await store.compute_impact("chain", "N05", 3)

        assert impact_pairs(result) == [("N06", 1), ("N07", 2), ("N08", 3)]

    @pytest.mark.asyncio
    async def test_outgoing_only(self, store, diamond):
        """Test impact ignores incoming edges."""
        await create(store, "diamond", diamond)

        result = await store.compute_impact("diamond", "D", 5)

        assert result.impacted_nodes == []

    @pytest.mark.asyncio
    async def test_unknown_node(self, store, diamond):
        """Test a node outside the graph raises NodeNotFoundError."""
        await create(store, "diamond", diamond)

        with pytest.raises(NodeNotFoundError):
            await store.compute_impact("diamond", "Z", 3)


@pytest.mark.unit
class TestNeighbors:
    """Test cases for bounded neighborhood expansion."""

    @pytest.mark.asyncio
    async def test_undirected_one_hop(self, store, diamond):
        """Test expansion follows edges in both directions."""
        await create(store, "diamond", diamond)

        data = await store.get_neighbors("diamond", "D", 1)

        assert [n.id for n in data.nodes] == ["B", "C", "D"]
        assert [(e.source, e.target) for e in data.edges] == [("B", "D"), ("C", "D")]

    @pytest.mark.asyncio
    async def test_two_hops(self, store, diamond):
        """Test two hops from B reach the whole diamond."""
        await create(store, "diamond", diamond)

        data = await store.get_neighbors("diamond", "B", 2)

        assert [n.id for n in data.nodes] == ["A", "B", "C", "D"]
        assert len(data.edges) == 4

    @pytest.mark.asyncio
    async def test_depth_zero_means_one(self, store, chain):
        """Test depth below 1 is clamped to 1."""
        await create(store, "chain", chain)

        data = await store.get_neighbors("chain", "N05", 0)

        assert [n.id for n in data.nodes] == ["N04", "N05", "N06"]

    @pytest.mark.asyncio
    async def test_isolated_node(self, store):
        """Test a node without edges returns itself."""
        await store.create_graph("solo", "Solo", "", "flowchart", [GraphNode(id="A"), GraphNode(id="B")], [])

        data = await store.get_neighbors("solo", "A", 3)

        assert [n.id for n in data.nodes] == ["A"]
        assert data.edges == []

    @pytest.mark.asyncio
    async def test_unknown_node(self, store, diamond):
        """Test a node outside the graph raises NodeNotFoundError."""
        await create(store, "diamond", diamond)

        with pytest.raises(NodeNotFoundError):
            await store.get_neighbors("diamond", "Z", 1)


@pytest.mark.unit
class TestResultCache:
    """Test cases for cache behavior through the adapter."""

    @pytest.mark.asyncio
    async def test_second_read_hits(self, store, diamond):
        """Test two reads without mutation return identical data, the second from cache."""
        await create(store, "diamond", diamond)

        first = await store.read_graph("diamond")
        second = await store.read_graph("diamond")

        assert (first.cache_status, second.cache_status) == ("MISS", "HIT")
        assert first.data == second.data
        assert second.parallel_queries is False
        assert store.get_cache_stats().keys == [f"graph:{store.default_database}:diamond"]

    @pytest.mark.asyncio
    async def test_bypass(self, store, diamond):
        """Test bypassed reads are counted and never cached."""
        await create(store, "diamond", diamond)

        read = await store.read_graph("diamond", bypass_cache=True)

        assert read.cache_status == "BYPASS"
        assert store.get_cache_stats().bypasses == 1
        assert store.get_cache_stats().cached_graphs == 0

    @pytest.mark.asyncio
    async def test_no_stale_data_after_delete_and_recreate(self, store, diamond, cycle):
        """Test mutations invalidate the cached read."""
        await create(store, "g", diamond)
        await store.get_graph("g")

        await store.delete_graph("g")
        with pytest.raises(GraphNotFoundError):
            await store.get_graph("g")

        await create(store, "g", cycle)
        read = await store.read_graph("g")

        assert read.cache_status == "MISS"
        assert [n.id for n in read.data.nodes] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_clear_cache(self, store, diamond):
        """Test flushing the cache forces a reload."""
        await create(store, "diamond", diamond)
        await store.get_graph("diamond")

        cleared = store.clear_cache()

        assert cleared.cleared == [f"graph:{store.default_database}:diamond"]
        assert (await store.read_graph("diamond")).cache_status == "MISS"

    @pytest.mark.asyncio
    async def test_traversals_not_cached(self, store, diamond):
        """Test neighbor and impact results leave the cache untouched."""
        await create(store, "diamond", diamond)

        await store.get_neighbors("diamond", "A", 1)
        await store.compute_impact("diamond", "A", 2)

        assert store.get_cache_stats().cached_graphs == 0


@pytest.mark.unit
class TestDatabases:
    """Test cases for database administration."""

    @pytest.mark.asyncio
    async def test_create_list_stats_delete(self, store, diamond):
        """Test the full lifecycle of a secondary database."""
        await store.create_database("other")
        await store.create_database("other")
        await create(store, "diamond", diamond, database="other")

        names = [db.name for db in await store.list_databases()]
        assert "other" in names
        assert store.default_database in names

        stats = await store.get_database_stats("other")
        assert (stats.node_count, stats.relationship_count, stats.graph_count) == (4, 4, 1)

        await store.delete_database("other")

        with pytest.raises(DatabaseNotFoundError):
            await store.get_database_stats("other")

    @pytest.mark.asyncio
    async def test_same_graph_id_in_two_databases(self, store, diamond, cycle):
        """Test databases are independent namespaces."""
        await store.create_database("other")
        await create(store, "g", diamond)
        await create(store, "g", cycle, database="other")

        default_data = await store.get_graph("g")
        other_data = await store.get_graph("g", database="other")

        assert len(default_data.nodes) == 4
        assert len(other_data.nodes) == 3

    @pytest.mark.asyncio
    async def test_delete_database_drops_cache_entries(self, store, diamond):
        """Test cached reads of a dropped database disappear."""
        await store.create_database("other")
        await create(store, "g", diamond, database="other")
        await store.get_graph("g", database="other")

        await store.delete_database("other")

        assert "graph:other:g" not in store.get_cache_stats().keys

    @pytest.mark.asyncio
    async def test_default_database_protected(self, store):
        """Test the default database cannot be dropped."""
        with pytest.raises(ProtectedDatabaseError):
            await store.delete_database(store.default_database)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["bad-name", "drop table", "x;y", ""])
    async def test_invalid_names(self, store, name):
        """Test names outside [A-Za-z0-9_] are rejected."""
        with pytest.raises(InvalidDatabaseNameError):
            await store.create_database(name)

    @pytest.mark.asyncio
    async def test_unknown_database(self, store, diamond):
        """Test graph operations against a missing database."""
        with pytest.raises(DatabaseNotFoundError):
            await store.list_graphs("nowhere")

    @pytest.mark.asyncio
    async def test_invalid_database_argument(self, store):
        """Test database arguments are validated on graph operations."""
        with pytest.raises(InvalidDatabaseNameError):
            await store.list_graphs("bad-name")
