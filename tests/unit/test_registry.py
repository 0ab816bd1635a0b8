"""Unit tests for the backend registry."""

import pytest

from graphlens.common.exceptions import InvalidArgumentError, UnknownBackendError
from graphlens.stores.memory import MemoryGraphStore
from graphlens.stores.registry import GraphStoreRegistry
from graphlens.stores.sql import SQLGraphStore


class BrokenStore(MemoryGraphStore):
    """Memory store whose startup and probe always fail."""

    engine = "broken"

    def __init__(self, settings) -> None:
        super().__init__(settings)
        self.close_calls = 0

    async def initialize(self) -> None:
        raise ConnectionError("connection refused")

    async def health_check(self) -> bool:
        raise ConnectionError("connection refused")

    async def _close(self) -> None:
        self.close_calls += 1
        raise RuntimeError("close failed")


@pytest.mark.unit
class TestGraphStoreRegistry:
    """Test cases for GraphStoreRegistry."""

    def test_from_settings(self, test_settings):
        """Test one adapter per enabled backend, in configured order."""
        registry = GraphStoreRegistry.from_settings(test_settings)

        assert registry.identifiers == ["memory", "sql"]
        assert registry.default_backend == "memory"
        assert isinstance(registry.get("sql"), SQLGraphStore)
        assert [name for name, _ in registry.items()] == ["memory", "sql"]

    def test_get_default_and_case(self, test_settings):
        """Test None selects the default and identifiers are case-insensitive."""
        registry = GraphStoreRegistry.from_settings(test_settings)

        assert registry.get() is registry.get("memory")
        assert registry.get(" SQL ") is registry.get("sql")

    def test_unknown_backend(self, test_settings):
        """Test an unregistered identifier is a 400 error."""
        registry = GraphStoreRegistry.from_settings(test_settings)

        with pytest.raises(UnknownBackendError) as exc_info:
            registry.get("neo4j")

        assert isinstance(exc_info.value, InvalidArgumentError)
        assert exc_info.value.status_code == 400
        assert exc_info.value.details["enabled"] == ["memory", "sql"]

    def test_default_falls_back_to_first(self, test_settings):
        """Test a default outside the enabled set falls back to the first backend."""
        registry = GraphStoreRegistry({"memory": MemoryGraphStore(test_settings)}, "neo4j")

        assert registry.default_backend == "memory"

    def test_empty_registry_rejected(self):
        """Test at least one backend is required."""
        with pytest.raises(ValueError):
            GraphStoreRegistry({}, "memory")

    @pytest.mark.asyncio
    async def test_initialize_failure_recorded(self, test_settings):
        """Test a failing adapter stays registered and reports its error."""
        registry = GraphStoreRegistry(
            {"memory": MemoryGraphStore(test_settings), "broken": BrokenStore(test_settings)},
            "memory",
        )

        await registry.initialize_all()
        status = {entry["name"]: entry for entry in registry.status()}

        assert status["memory"]["initialized"] is True
        assert status["memory"]["error"] is None
        assert status["memory"]["default"] is True
        assert status["broken"]["initialized"] is False
        assert status["broken"]["error"] == "connection refused"
        assert registry.get("broken").engine == "broken"

    @pytest.mark.asyncio
    async def test_health(self, test_settings):
        """Test probe exceptions count as unhealthy."""
        registry = GraphStoreRegistry(
            {"memory": MemoryGraphStore(test_settings), "broken": BrokenStore(test_settings)},
            "memory",
        )

        assert await registry.health() == {"memory": True, "broken": False}

    @pytest.mark.asyncio
    async def test_close_all_once(self, test_settings):
        """Test close failures are contained and a second close is a no-op."""
        broken = BrokenStore(test_settings)
        registry = GraphStoreRegistry({"broken": broken}, "broken")

        await registry.close_all()
        await registry.close_all()

        assert broken.close_calls == 1

    def test_status_fields(self, test_settings):
        """Test static status describes each adapter."""
        registry = GraphStoreRegistry.from_settings(test_settings)

        sql = next(entry for entry in registry.status() if entry["name"] == "sql")

        assert sql["engine"] == "sql"
        assert sql["default_database"] == "graph_test"
        assert sql["supports_databases"] is True
        assert sql["initialized"] is False
