"""API routers."""

from graphlens.api.routers import (
    admin,
    databases,
    graphs,
    optim,
    query,
)

__all__ = [
    "admin",
    "databases",
    "graphs",
    "optim",
    "query",
]
