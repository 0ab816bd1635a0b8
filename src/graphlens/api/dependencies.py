"""FastAPI dependency injection for API endpoints."""

from typing import Annotated

from fastapi import Depends, Query, Request

from graphlens.common.config import Settings
from graphlens.common.exceptions import BackendUnavailableError
from graphlens.stores.base import BaseGraphStore
from graphlens.stores.registry import GraphStoreRegistry


def get_registry(request: Request) -> GraphStoreRegistry:
    """Backend registry created by the application lifespan.

    Raises:
        BackendUnavailableError: If the application has not started.
    """
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise BackendUnavailableError("Backend registry is not initialized")
    return registry


# Type alias for registry dependency
Registry = Annotated[GraphStoreRegistry, Depends(get_registry)]


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings


# Type alias for application settings dependency
AppSettings = Annotated[Settings, Depends(get_app_settings)]


def get_store(
    registry: Registry,
    backend: Annotated[
        str | None,
        Query(description="Backend identifier (neo4j, memgraph, sql, memory)"),
    ] = None,
) -> BaseGraphStore:
    """Storage adapter selected by the ``backend`` query parameter.

    Raises:
        UnknownBackendError: If the backend is not enabled.
    """
    return registry.get(backend)


# Type alias for the selected storage adapter
Store = Annotated[BaseGraphStore, Depends(get_store)]

DatabaseParam = Annotated[
    str | None,
    Query(description="Database name, default database of the backend when omitted"),
]
