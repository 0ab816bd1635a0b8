"""Memgraph graph store.

Memgraph speaks Bolt, so the Neo4j driver is reused. It has a single
database, no IF NOT EXISTS on schema DDL and no ``length(path)``.
"""

from neo4j import AsyncGraphDatabase

from graphlens.common.config import Settings, get_settings
from graphlens.stores.cypher import CypherDialect, CypherGraphStore

MEMGRAPH_DATABASE = "memgraph"

MEMGRAPH_DIALECT = CypherDialect(
    engine="memgraph",
    path_length="size(relationships(path))",
    default_database=MEMGRAPH_DATABASE,
    supports_databases=False,
    schema_queries=(
        "CREATE CONSTRAINT ON (g:Graph) ASSERT g.id IS UNIQUE",
        "CREATE INDEX ON :GraphNode(graph_id)",
        "CREATE INDEX ON :GraphNode(node_id)",
    ),
)


def create_memgraph_store(settings: Settings | None = None) -> CypherGraphStore:
    """Build a Memgraph store.

    Authentication is off by default on Memgraph; credentials are only
    sent when a user is configured.
    """
    if settings is None:
        settings = get_settings()

    memgraph_settings = settings.memgraph
    auth = None
    if memgraph_settings.user:
        auth = (memgraph_settings.user, memgraph_settings.password.get_secret_value())

    driver = AsyncGraphDatabase.driver(
        memgraph_settings.uri,
        auth=auth,
        max_connection_pool_size=memgraph_settings.max_connection_pool_size,
        connection_acquisition_timeout=memgraph_settings.connection_acquisition_timeout,
        connection_timeout=memgraph_settings.connection_timeout,
    )
    return CypherGraphStore(MEMGRAPH_DIALECT, driver, settings)
