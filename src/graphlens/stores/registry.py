"""Backend registry.

Maps backend identifiers to storage adapters. The registry owns adapter
lifecycles but never sees graph data.
"""

import asyncio
from collections.abc import Callable

from graphlens.common.config import KNOWN_BACKENDS, Settings, get_settings
from graphlens.common.exceptions import UnknownBackendError
from graphlens.common.logging import get_logger
from graphlens.stores.base import BaseGraphStore
from graphlens.stores.memgraph_store import create_memgraph_store
from graphlens.stores.memory import MemoryGraphStore
from graphlens.stores.neo4j_store import create_neo4j_store
from graphlens.stores.sql import SQLGraphStore

logger = get_logger(__name__)

StoreFactory = Callable[[Settings], BaseGraphStore]

STORE_FACTORIES: dict[str, StoreFactory] = {
    "neo4j": create_neo4j_store,
    "memgraph": create_memgraph_store,
    "sql": SQLGraphStore,
    "memory": MemoryGraphStore,
}


class GraphStoreRegistry:
    """Backend identifier to adapter mapping.

    Usage:
        registry = GraphStoreRegistry.from_settings(settings)
        await registry.initialize_all()
        store = registry.get("neo4j")
        ...
        await registry.close_all()
    """

    def __init__(self, stores: dict[str, BaseGraphStore], default_backend: str) -> None:
        if not stores:
            raise ValueError("At least one backend must be enabled")
        self._stores = dict(stores)
        self.default_backend = default_backend if default_backend in stores else next(iter(stores))
        self._initialized: dict[str, bool] = {name: False for name in stores}
        self._errors: dict[str, str] = {}
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "GraphStoreRegistry":
        """Build adapters for every enabled backend."""
        if settings is None:
            settings = get_settings()

        stores = {name: STORE_FACTORIES[name](settings) for name in settings.api.backends}
        return cls(stores, settings.api.default_backend)

    @property
    def identifiers(self) -> list[str]:
        """Enabled backend identifiers."""
        return list(self._stores)

    def items(self) -> list[tuple[str, BaseGraphStore]]:
        """(identifier, adapter) pairs in registration order."""
        return list(self._stores.items())

    def get(self, identifier: str | None = None) -> BaseGraphStore:
        """Adapter for a backend identifier, or the default one.

        Raises:
            UnknownBackendError: If the identifier is not enabled.
        """
        name = (identifier or self.default_backend).strip().lower()
        store = self._stores.get(name)
        if store is None:
            raise UnknownBackendError(
                f"Unknown backend '{name}'. Enabled backends: {', '.join(self._stores)}",
                details={"backend": name, "enabled": self.identifiers, "known": list(KNOWN_BACKENDS)},
            )
        return store

    async def initialize_all(self) -> None:
        """Initialize every adapter.

        An adapter that fails is logged and reported unhealthy but stays
        registered; its operations fail with BackendUnavailableError.
        """
        for name, store in self._stores.items():
            try:
                await store.initialize()
                self._initialized[name] = True
                self._errors.pop(name, None)
            except Exception as exc:
                self._initialized[name] = False
                self._errors[name] = str(exc)
                logger.error("Backend initialization failed", backend=name, error=str(exc))

    async def close_all(self) -> None:
        """Close every adapter exactly once."""
        if self._closed:
            return
        self._closed = True

        for name, store in self._stores.items():
            try:
                await store.close()
            except Exception as exc:
                logger.warning("Backend close failed", backend=name, error=str(exc))

    async def health(self) -> dict[str, bool]:
        """Probe every adapter concurrently."""
        names = list(self._stores)
        results = await asyncio.gather(
            *(self._stores[name].health_check() for name in names),
            return_exceptions=True,
        )
        return {name: result is True for name, result in zip(names, results)}

    def status(self) -> list[dict]:
        """Static per-backend status for listings."""
        return [
            {
                "name": name,
                "engine": store.engine,
                "default": name == self.default_backend,
                "initialized": self._initialized[name],
                "default_database": store.default_database,
                "supports_databases": store.supports_databases,
                "error": self._errors.get(name),
            }
            for name, store in self._stores.items()
        ]
