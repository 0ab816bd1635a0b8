"""Admin API endpoints - health, metrics, backends."""

from typing import Any

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from graphlens.api.dependencies import AppSettings, Registry
from graphlens.common.config import Settings
from graphlens.common.health import HealthChecker, HealthStatus
from graphlens.stores.registry import GraphStoreRegistry

router = APIRouter(tags=["admin"])


def build_health_checker(registry: GraphStoreRegistry, settings: Settings) -> HealthChecker:
    """Health checker with one component per enabled backend."""
    checker = HealthChecker(service_name="graphlens-api", version=settings.app_version)

    for status in registry.status():
        store = registry.get(status["name"])
        checker.register_check(
            status["name"],
            store.health_check,
            engine=status["engine"],
            initialized=status["initialized"],
            error=status["error"],
        )
    return checker


@router.get("/health")
async def health(registry: Registry, settings: AppSettings) -> JSONResponse:
    """Health of every enabled backend.

    Returns 503 only when no backend answers.
    """
    result = await build_health_checker(registry, settings).readiness()

    status_code = 503 if result.status == HealthStatus.UNHEALTHY else 200
    return JSONResponse(content=result.to_dict(), status_code=status_code)


@router.get("/health/live")
async def liveness() -> dict[str, str]:
    """Liveness probe.

    Returns 200 if the process is alive.
    """
    return {"status": "ok"}


@router.get("/backends")
async def list_backends(registry: Registry) -> list[dict[str, Any]]:
    """Enabled backends, the default one flagged."""
    return registry.status()


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
