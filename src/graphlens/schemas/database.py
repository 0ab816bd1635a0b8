"""Pydantic schemas for database (storage namespace) administration."""

from typing import Literal

from pydantic import BaseModel, Field


class DatabaseInfo(BaseModel):
    """A storage namespace known to a backend."""

    name: str
    default: bool = False
    status: Literal["online", "offline", "unknown"] = "unknown"


class DatabaseStats(BaseModel):
    """Totals across every graph of a database."""

    node_count: int
    relationship_count: int
    graph_count: int


class CreateDatabaseRequest(BaseModel):
    """Request body for database creation."""

    name: str = Field(..., min_length=1, max_length=63)
