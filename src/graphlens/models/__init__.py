"""SQLAlchemy database models."""

from graphlens.models.base import Base
from graphlens.models.graph import EdgeRecord, GraphRecord, NodeRecord

__all__ = [
    "Base",
    "EdgeRecord",
    "GraphRecord",
    "NodeRecord",
]
