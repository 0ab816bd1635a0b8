"""Result cache and backend status endpoints."""

from typing import Any

from fastapi import APIRouter

from graphlens.api.dependencies import DatabaseParam, Registry, Store
from graphlens.schemas.graph import CacheClearResult, CacheStats

router = APIRouter(prefix="/optim", tags=["optim"])


@router.get("/cache/stats", response_model=CacheStats)
async def get_cache_stats(store: Store) -> CacheStats:
    """Hit, miss and bypass counters plus the cached keys."""
    return store.get_cache_stats()


@router.delete("/cache", response_model=CacheClearResult)
async def clear_cache(
    store: Store,
    graph_id: str | None = None,
    database: DatabaseParam = None,
) -> CacheClearResult:
    """Invalidate one graph, or flush the whole cache and reset counters."""
    return store.clear_cache(graph_id=graph_id, database=database)


@router.get("/status")
async def get_status(registry: Registry) -> dict[str, Any]:
    """Cache and traversal configuration of every backend."""
    return {
        "default_backend": registry.default_backend,
        "backends": {
            name: {
                "engine": store.engine,
                "parallel_reads": store.parallel_reads,
                "max_depth": store.max_depth,
                "cache": store.get_cache_stats().model_dump(exclude={"keys"}),
            }
            for name, store in registry.items()
        },
    }
