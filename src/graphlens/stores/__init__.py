"""Storage adapters - one per backend family, selected through the registry."""

from graphlens.stores.base import BaseGraphStore, GraphStore
from graphlens.stores.cypher import CypherDialect, CypherGraphStore
from graphlens.stores.memory import MemoryGraphStore
from graphlens.stores.registry import GraphStoreRegistry
from graphlens.stores.sql import SQLGraphStore

__all__ = [
    "BaseGraphStore",
    "CypherDialect",
    "CypherGraphStore",
    "GraphStore",
    "GraphStoreRegistry",
    "MemoryGraphStore",
    "SQLGraphStore",
]
