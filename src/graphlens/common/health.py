"""Health check contract for GraphLens.

Provides standardized health responses for probes and monitoring. Every
enabled storage backend is reported as one component.
"""

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class HealthStatus(str, Enum):
    """Health check status values."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    """Health status of a single component."""

    name: str
    status: HealthStatus
    message: str | None = None
    latency_ms: float | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class HealthResponse:
    """Complete health check response."""

    status: HealthStatus
    timestamp: datetime
    service: str
    version: str
    components: list[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "service": self.service,
            "version": self.version,
            "components": [
                {
                    "name": c.name,
                    "status": c.status.value,
                    "message": c.message,
                    "latency_ms": c.latency_ms,
                    "details": c.details if c.details else None,
                }
                for c in self.components
            ],
        }


ProbeFunc = Callable[[], Awaitable[bool]]


class HealthChecker:
    """Aggregates per-component probes into one response.

    A probe returns True when its component answers. The overall status is
    healthy when every component is, unhealthy when none is, and degraded
    in between.
    """

    def __init__(self, service_name: str, version: str) -> None:
        self.service_name = service_name
        self.version = version
        self._checks: list[tuple[str, ProbeFunc, dict[str, Any]]] = []

    def register_check(self, name: str, probe: ProbeFunc, **details: Any) -> None:
        """Register a probe for a component.

        Args:
            name: Name of the component being checked.
            probe: Async callable returning True when healthy.
            details: Static details reported with the component.
        """
        self._checks.append((name, probe, details))

    async def check_component(
        self, name: str, probe: ProbeFunc, details: dict[str, Any]
    ) -> ComponentHealth:
        """Run one probe and time it."""
        start = time.perf_counter()
        try:
            is_healthy = await probe()
            latency = (time.perf_counter() - start) * 1000
        except Exception as e:
            latency = (time.perf_counter() - start) * 1000
            return ComponentHealth(
                name=name,
                status=HealthStatus.UNHEALTHY,
                message=f"Check failed: {str(e)}",
                latency_ms=round(latency, 2),
                details=details,
            )

        return ComponentHealth(
            name=name,
            status=HealthStatus.HEALTHY if is_healthy else HealthStatus.UNHEALTHY,
            message="Connection successful" if is_healthy else "Connection failed",
            latency_ms=round(latency, 2),
            details=details,
        )

    async def liveness(self) -> HealthResponse:
        """Liveness probe, only checks that the service can respond."""
        return HealthResponse(
            status=HealthStatus.HEALTHY,
            timestamp=datetime.now(timezone.utc),
            service=self.service_name,
            version=self.version,
        )

    async def readiness(self) -> HealthResponse:
        """Readiness probe across every registered component."""
        components = [
            await self.check_component(name, probe, details)
            for name, probe, details in self._checks
        ]

        healthy = sum(1 for c in components if c.status == HealthStatus.HEALTHY)
        if healthy == len(components):
            overall_status = HealthStatus.HEALTHY
        elif healthy == 0:
            overall_status = HealthStatus.UNHEALTHY
        else:
            overall_status = HealthStatus.DEGRADED

        return HealthResponse(
            status=overall_status,
            timestamp=datetime.now(timezone.utc),
            service=self.service_name,
            version=self.version,
            components=components,
        )
