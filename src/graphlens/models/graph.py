"""Relational graph storage models.

A graph row owns its node and edge rows. Edges reference node rows by
their generated integer key rather than by the caller's node id, so an
edge can only exist between two nodes of the same graph.
"""

from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from graphlens.models.base import Base, RowKey, RowKeyMixin, TimestampMixin


class GraphRecord(Base, TimestampMixin):
    """Graph metadata."""

    __tablename__ = "graphs"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    graph_type: Mapped[str] = mapped_column(String(50), nullable=False, default="flowchart")

    node_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    edge_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<GraphRecord {self.id} nodes={self.node_count} edges={self.edge_count}>"


class NodeRecord(Base, RowKeyMixin):
    """A node of a graph."""

    __tablename__ = "graph_nodes"

    graph_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("graphs.id", ondelete="CASCADE"),
        nullable=False,
    )

    node_id: Mapped[str] = mapped_column(String(255), nullable=False)

    label: Mapped[str] = mapped_column(Text, nullable=False, default="")

    node_type: Mapped[str] = mapped_column(String(100), nullable=False, default="default")

    properties: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("graph_id", "node_id", name="uq_graph_nodes_graph_node"),
        Index("ix_graph_nodes_graph_type", "graph_id", "node_type"),
    )

    def __repr__(self) -> str:
        return f"<NodeRecord {self.graph_id}/{self.node_id}>"


class EdgeRecord(Base, RowKeyMixin):
    """A directed edge between two node rows of the same graph.

    Only the graph foreign key cascades; SQL Server rejects multiple
    cascade paths into one table. Node rows are deleted after their edges.
    """

    __tablename__ = "graph_edges"

    graph_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("graphs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    edge_id: Mapped[str] = mapped_column(String(255), nullable=False)

    source_key: Mapped[int] = mapped_column(
        RowKey,
        ForeignKey("graph_nodes.id"),
        nullable=False,
    )

    target_key: Mapped[int] = mapped_column(
        RowKey,
        ForeignKey("graph_nodes.id"),
        nullable=False,
    )

    label: Mapped[str | None] = mapped_column(Text, nullable=True)

    edge_type: Mapped[str] = mapped_column(String(100), nullable=False, default="default")

    properties: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    __table_args__ = (
        # Frontier joins in both directions
        Index("ix_graph_edges_source", "source_key", "target_key"),
        Index("ix_graph_edges_target", "target_key", "source_key"),
    )

    def __repr__(self) -> str:
        return f"<EdgeRecord {self.graph_id}/{self.edge_id} {self.source_key}->{self.target_key}>"
