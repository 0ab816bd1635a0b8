"""Pytest configuration and fixtures for GraphLens tests."""

from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from graphlens.api.main import create_app
from graphlens.common.config import Settings
from graphlens.schemas.graph import GraphEdge, GraphNode
from graphlens.stores.memory import MemoryGraphStore
from graphlens.stores.registry import GraphStoreRegistry
from graphlens.stores.sql import SQLGraphStore


def make_settings(sqlite_directory: Path, **overrides: Any) -> Settings:
    """Settings for a memory + SQLite deployment rooted in a temp directory."""
    values: dict[str, Any] = {
        "environment": "development",
        "debug": True,
        "sql": {"dialect": "sqlite", "sqlite_directory": sqlite_directory, "database": "graph_test"},
        "api": {"backends": "memory,sql", "default_backend": "memory"},
        "logging": {"format": "console", "level": "WARNING"},
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Get test settings."""
    return make_settings(tmp_path)


@pytest_asyncio.fixture
async def memory_store(test_settings: Settings) -> AsyncGenerator[MemoryGraphStore, None]:
    """Initialized in-memory graph store."""
    store = MemoryGraphStore(test_settings)
    await store.initialize()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def sql_store(test_settings: Settings) -> AsyncGenerator[SQLGraphStore, None]:
    """Initialized SQL graph store on a SQLite file."""
    store = SQLGraphStore(test_settings)
    await store.initialize()
    yield store
    await store.close()


@pytest_asyncio.fixture(params=["memory", "sql"])
async def store(request: pytest.FixtureRequest, test_settings: Settings) -> AsyncGenerator[Any, None]:
    """Each locally runnable backend in turn."""
    graph_store = MemoryGraphStore(test_settings) if request.param == "memory" else SQLGraphStore(test_settings)
    await graph_store.initialize()
    yield graph_store
    await graph_store.close()


@pytest_asyncio.fixture
async def async_client(test_settings: Settings) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for testing API endpoints.

    ASGITransport does not run the lifespan, so the registry is built and
    initialized here.
    """
    registry = GraphStoreRegistry.from_settings(test_settings)
    app = create_app(test_settings, registry)
    await registry.initialize_all()

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    await registry.close_all()


# =============================================================================
# Sample Data Fixtures
# =============================================================================


def nodes_of(*node_ids: str, node_type: str = "process") -> list[GraphNode]:
    """Nodes labelled after their ids."""
    return [GraphNode(id=node_id, label=node_id, node_type=node_type) for node_id in node_ids]


def edges_of(*pairs: tuple[str, str]) -> list[GraphEdge]:
    """Edges without ids, typed ``next``."""
    return [GraphEdge(source=source, target=target, edge_type="next") for source, target in pairs]


@pytest.fixture
def diamond() -> tuple[list[GraphNode], list[GraphEdge]]:
    """A -> B, A -> C, B -> D, C -> D."""
    return nodes_of("A", "B", "C", "D"), edges_of(("A", "B"), ("A", "C"), ("B", "D"), ("C", "D"))


@pytest.fixture
def cycle() -> tuple[list[GraphNode], list[GraphEdge]]:
    """A -> B -> C -> A."""
    return nodes_of("A", "B", "C"), edges_of(("A", "B"), ("B", "C"), ("C", "A"))


@pytest.fixture
def chain() -> tuple[list[GraphNode], list[GraphEdge]]:
    """N00 -> N01 -> ... -> N19, longer than the depth ceiling."""
    node_ids = [f"N{i:02d}" for i in range(20)]
    return nodes_of(*node_ids), edges_of(*zip(node_ids, node_ids[1:]))


@pytest.fixture
def sample_graph_request() -> dict[str, Any]:
    """Graph creation payload for the HTTP API."""
    return {
        "title": "Order pipeline",
        "description": "Checkout to delivery",
        "graph_type": "flowchart",
        "nodes": [
            {"id": "checkout", "label": "Checkout", "node_type": "start"},
            {"id": "payment", "label": "Payment", "node_type": "process"},
            {"id": "stock", "label": "Stock?", "node_type": "decision"},
            {"id": "ship", "label": "Ship", "node_type": "process"},
            {"id": "done", "label": "Done", "node_type": "end"},
        ],
        "edges": [
            {"source": "checkout", "target": "payment", "edge_type": "next"},
            {"source": "payment", "target": "stock", "edge_type": "next"},
            {"source": "stock", "target": "ship", "edge_type": "yes", "label": "yes"},
            {"source": "ship", "target": "done", "edge_type": "next"},
            {"source": "ship", "target": "ghost", "edge_type": "next"},
        ],
    }
