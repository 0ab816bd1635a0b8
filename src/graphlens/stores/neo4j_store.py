"""Neo4j graph store.

Neo4j 5 over Bolt: multi-database, administered through the ``system``
database, constraints created with IF NOT EXISTS.
"""

from neo4j import AsyncGraphDatabase

from graphlens.common.config import Settings, get_settings
from graphlens.stores.cypher import CypherDialect, CypherGraphStore


def neo4j_dialect(default_database: str = "neo4j") -> CypherDialect:
    """Cypher dialect for Neo4j 5."""
    return CypherDialect(
        engine="neo4j",
        path_length="length(path)",
        default_database=default_database,
        supports_databases=True,
        system_database="system",
        protected_databases=frozenset({"neo4j", "system", default_database}),
        schema_queries=(
            "CREATE CONSTRAINT graph_id IF NOT EXISTS FOR (g:Graph) REQUIRE g.id IS UNIQUE",
            "CREATE INDEX node_graph_id IF NOT EXISTS FOR (n:GraphNode) ON (n.graph_id, n.node_id)",
            "CREATE INDEX relationship_graph_id IF NOT EXISTS FOR ()-[r:CONNECTED_TO]-() ON (r.graph_id)",
        ),
    )


def create_neo4j_store(settings: Settings | None = None) -> CypherGraphStore:
    """Build a Neo4j store with a pooled async driver.

    Args:
        settings: Application settings. Uses global settings if not provided.
    """
    if settings is None:
        settings = get_settings()

    neo4j_settings = settings.neo4j
    driver = AsyncGraphDatabase.driver(
        neo4j_settings.uri,
        auth=(neo4j_settings.user, neo4j_settings.password.get_secret_value()),
        max_connection_pool_size=neo4j_settings.max_connection_pool_size,
        connection_acquisition_timeout=neo4j_settings.connection_acquisition_timeout,
        connection_timeout=neo4j_settings.connection_timeout,
    )
    return CypherGraphStore(neo4j_dialect(neo4j_settings.database), driver, settings)
