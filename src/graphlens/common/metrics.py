"""Prometheus metrics for GraphLens.

Provides pre-defined metrics for cache efficiency, traversal cost,
ingestion and API performance, labelled by storage engine.
"""

from prometheus_client import Counter, Histogram, Info

# Application info
APP_INFO = Info(
    "graphlens",
    "GraphLens application information",
)

# Result cache metrics
GRAPH_CACHE_REQUESTS = Counter(
    "graphlens_graph_cache_requests_total",
    "Full-graph reads by cache outcome",
    ["engine", "status"],
)

# Traversal metrics
GRAPH_TRAVERSAL_DURATION = Histogram(
    "graphlens_graph_traversal_duration_seconds",
    "Neighbor and impact traversal duration",
    ["engine", "operation"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

GRAPH_TRAVERSAL_NODES = Histogram(
    "graphlens_graph_traversal_nodes",
    "Number of nodes returned by a traversal",
    ["engine", "operation"],
    buckets=[1, 5, 10, 25, 50, 100, 250, 500, 1000, 5000, 20000],
)

# Ingestion metrics
INGESTION_BATCHES = Counter(
    "graphlens_ingestion_batches_total",
    "Bulk-write batches issued during graph creation",
    ["engine", "kind"],
)

INGESTION_SKIPPED_EDGES = Counter(
    "graphlens_ingestion_skipped_edges_total",
    "Edges dropped because an endpoint was not among the inserted nodes",
    ["engine"],
)

# API metrics
API_REQUESTS = Counter(
    "graphlens_api_requests_total",
    "Total number of API requests",
    ["method", "endpoint", "status"],
)

API_REQUEST_DURATION = Histogram(
    "graphlens_api_request_duration_seconds",
    "API request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)


def set_app_info(version: str, environment: str, backends: list[str]) -> None:
    """Set application info metric.

    Args:
        version: Application version.
        environment: Deployment environment.
        backends: Enabled backend identifiers.
    """
    APP_INFO.info({
        "version": version,
        "environment": environment,
        "backends": ",".join(backends),
    })
