"""In-process graph store backed by networkx.

Each database is a namespace of graphs; each graph is one
``networkx.MultiDiGraph`` keyed by node id, with edge ids as multi-edge
keys. Nothing is persisted, which makes this backend the reference for
cross-backend equivalence tests and the default for local runs.
"""

from collections import Counter
from dataclasses import dataclass

import networkx as nx

from graphlens.common.config import Settings
from graphlens.common.exceptions import (
    DatabaseNotFoundError,
    GraphAlreadyExistsError,
    GraphNotFoundError,
    NodeNotFoundError,
    ProtectedDatabaseError,
)
from graphlens.common.metrics import INGESTION_SKIPPED_EDGES
from graphlens.graph.batching import resolve_edges
from graphlens.graph.traversal import ordered_subgraph
from graphlens.models.base import utcnow
from graphlens.schemas.database import DatabaseInfo, DatabaseStats
from graphlens.schemas.graph import (
    Graph,
    GraphData,
    GraphEdge,
    GraphNode,
    GraphStats,
    GraphSummary,
)
from graphlens.stores.base import BaseGraphStore, build_graph_stats, validate_database_name

DEFAULT_DATABASE = "default"


@dataclass
class _StoredGraph:
    meta: Graph
    graph: nx.MultiDiGraph


def _node_from(graph: nx.MultiDiGraph, node_id: str) -> GraphNode:
    attrs = graph.nodes[node_id]
    return GraphNode(
        id=node_id,
        label=attrs["label"],
        node_type=attrs["node_type"],
        properties=attrs["properties"],
    )


def _edges_from(graph: nx.MultiDiGraph) -> list[GraphEdge]:
    return [
        GraphEdge(
            id=key,
            source=source,
            target=target,
            label=attrs["label"],
            edge_type=attrs["edge_type"],
            properties=attrs["properties"],
        )
        for source, target, key, attrs in graph.edges(keys=True, data=True)
    ]


class MemoryGraphStore(BaseGraphStore):
    """Graph store holding everything in process memory.

    Traversals walk the adjacency dicts directly: impact uses
    ``single_source_shortest_path_length`` on the directed graph, neighbors
    use the same call on an undirected view.
    """

    engine = "memory"
    parallel_reads = False

    def __init__(self, settings: Settings | None = None) -> None:
        super().__init__(DEFAULT_DATABASE, settings)
        self._databases: dict[str, dict[str, _StoredGraph]] = {DEFAULT_DATABASE: {}}

    async def initialize(self) -> None:
        self.logger.info("Memory graph store ready", databases=len(self._databases))

    async def _close(self) -> None:
        self._databases.clear()

    def _graphs(self, database: str) -> dict[str, _StoredGraph]:
        graphs = self._databases.get(database)
        if graphs is None:
            raise DatabaseNotFoundError(details={"database": database})
        return graphs

    def _stored(self, graph_id: str, database: str) -> _StoredGraph:
        stored = self._graphs(database).get(graph_id)
        if stored is None:
            raise GraphNotFoundError(details={"graph_id": graph_id, "database": database})
        return stored

    def _graph_with_node(self, graph_id: str, node_id: str, database: str) -> nx.MultiDiGraph:
        graph = self._stored(graph_id, database).graph
        if node_id not in graph:
            raise NodeNotFoundError(details={"graph_id": graph_id, "node_id": node_id})
        return graph

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
        graphs = self._graphs(database)
        if graph_id in graphs:
            raise GraphAlreadyExistsError(details={"graph_id": graph_id, "database": database})

        graph = nx.MultiDiGraph()
        for node in nodes:
            graph.add_node(node.id, label=node.label, node_type=node.node_type, properties=node.properties)

        resolved, skipped = resolve_edges(edges, {node.id: node.id for node in nodes})
        for edge, source, target in resolved:
            graph.add_edge(
                source,
                target,
                key=edge.id,
                label=edge.label,
                edge_type=edge.edge_type,
                properties=edge.properties,
            )

        if skipped:
            INGESTION_SKIPPED_EDGES.labels(engine=self.engine).inc(skipped)
            self.logger.warning("Skipped edges with unknown endpoints", graph_id=graph_id, skipped=skipped)

        meta = Graph(
            id=graph_id,
            title=title,
            description=description,
            graph_type=graph_type,
            node_count=graph.number_of_nodes(),
            edge_count=graph.number_of_edges(),
            created_at=utcnow(),
        )
        graphs[graph_id] = _StoredGraph(meta=meta, graph=graph)
        return meta

    async def _load_graph(self, graph_id: str, database: str) -> GraphData:
        graph = self._stored(graph_id, database).graph
        nodes = [_node_from(graph, node_id) for node_id in graph.nodes]
        return ordered_subgraph(nodes, _edges_from(graph))

    async def _list_graphs(self, database: str) -> list[GraphSummary]:
        metas = sorted(
            (stored.meta for stored in self._graphs(database).values()),
            key=lambda meta: meta.created_at,
            reverse=True,
        )
        return [GraphSummary(**meta.model_dump(exclude={"created_at"})) for meta in metas]

    async def _graph_stats(self, graph_id: str, database: str) -> GraphStats:
        graph = self._stored(graph_id, database).graph
        node_types = Counter(attrs["node_type"] for _, attrs in graph.nodes(data=True))
        return build_graph_stats(graph.number_of_nodes(), graph.number_of_edges(), dict(node_types))

    async def _delete_graph(self, graph_id: str, database: str) -> None:
        self._graphs(database).pop(graph_id, None)

    async def _starting_node(self, graph_id: str, database: str) -> GraphNode:
        graph = self._stored(graph_id, database).graph
        for node_id in graph.nodes:
            return _node_from(graph, node_id)
        raise GraphNotFoundError("Graph has no nodes", details={"graph_id": graph_id})

    async def _neighbors(
        self, graph_id: str, node_id: str, depth: int, database: str
    ) -> tuple[list[GraphNode], list[GraphEdge]]:
        graph = self._graph_with_node(graph_id, node_id, database)

        reached = nx.single_source_shortest_path_length(
            graph.to_undirected(as_view=True), node_id, cutoff=depth
        )
        subgraph = graph.subgraph(reached)
        nodes = [_node_from(graph, n) for n in subgraph.nodes]
        return nodes, _edges_from(subgraph)

    async def _impact_levels(
        self, graph_id: str, node_id: str, depth: int, database: str
    ) -> dict[str, int]:
        graph = self._graph_with_node(graph_id, node_id, database)
        return dict(nx.single_source_shortest_path_length(graph, node_id, cutoff=depth))

    # Database administration

    async def list_databases(self) -> list[DatabaseInfo]:
        return [
            DatabaseInfo(name=name, default=name == self.default_database, status="online")
            for name in sorted(self._databases)
        ]

    async def create_database(self, name: str) -> None:
        validate_database_name(name)
        if name not in self._databases:
            self._databases[name] = {}
            self.logger.info("Database created", database=name)

    async def delete_database(self, name: str) -> None:
        validate_database_name(name)
        if name == self.default_database:
            raise ProtectedDatabaseError(details={"database": name})

        graphs = self._databases.pop(name, None)
        if graphs is None:
            return
        self.cache.invalidate_database(name)
        self.logger.info("Database deleted", database=name, graph_count=len(graphs))

    async def _database_stats(self, database: str) -> DatabaseStats:
        graphs = self._graphs(database)
        return DatabaseStats(
            node_count=sum(stored.graph.number_of_nodes() for stored in graphs.values()),
            relationship_count=sum(stored.graph.number_of_edges() for stored in graphs.values()),
            graph_count=len(graphs),
        )
