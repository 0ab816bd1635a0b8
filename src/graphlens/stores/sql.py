"""Relational graph store (PostgreSQL, SQL Server, SQLite).

Adjacency is recomputed with joins, so traversals run level by level:
each BFS level issues one frontier join against ``graph_edges``, split
into chunks that respect the bound-parameter ceiling. Every node is
expanded at most once.

Databases map to server databases, or to one file per database for
SQLite. Each database gets its own async engine, created on first use.
"""

import asyncio
import time
from collections.abc import AsyncGenerator, Iterable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, event, func, insert, select, text, union, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import aliased
from sqlalchemy.pool import NullPool

from graphlens.common.config import Settings, get_settings
from graphlens.common.exceptions import (
    BackendUnavailableError,
    DatabaseNotFoundError,
    GraphAlreadyExistsError,
    GraphNotFoundError,
    NodeNotFoundError,
    ProtectedDatabaseError,
)
from graphlens.common.metrics import INGESTION_BATCHES, INGESTION_SKIPPED_EDGES
from graphlens.graph.batching import BatchPlan, iter_batches, resolve_edges, rows_per_statement
from graphlens.graph.traversal import level_synchronous_bfs
from graphlens.models import Base, EdgeRecord, GraphRecord, NodeRecord
from graphlens.models.base import utcnow
from graphlens.schemas.database import DatabaseInfo, DatabaseStats
from graphlens.schemas.graph import (
    Graph,
    GraphData,
    GraphEdge,
    GraphNode,
    GraphStats,
    GraphSummary,
    RawQueryResult,
)
from graphlens.stores.base import (
    BaseGraphStore,
    build_graph_stats,
    gather_reads,
    to_json_value,
    validate_database_name,
)

if TYPE_CHECKING:
    from sqlalchemy.pool import ConnectionPoolEntry

# Bound parameters per inserted row
NODE_PARAMS_PER_ROW = 5
EDGE_PARAMS_PER_ROW = 7

SYSTEM_DATABASES = {
    "postgresql": {"postgres", "template0", "template1"},
    "mssql": {"master", "model", "msdb", "tempdb"},
    "sqlite": set(),
}

LIST_DATABASES_SQL = {
    "postgresql": "SELECT datname AS name FROM pg_database WHERE datistemplate = false ORDER BY datname",
    "mssql": "SELECT name FROM sys.databases ORDER BY name",
}

DATABASE_EXISTS_SQL = {
    "postgresql": "SELECT 1 FROM pg_database WHERE datname = :name",
    "mssql": "SELECT 1 FROM sys.databases WHERE name = :name",
}

# Names are validated against ^[A-Za-z0-9_]+$ before interpolation
CREATE_DATABASE_SQL = {
    "postgresql": 'CREATE DATABASE "{name}"',
    "mssql": "IF DB_ID(N'{name}') IS NULL CREATE DATABASE [{name}]",
}

DROP_DATABASE_SQL = {
    "postgresql": 'DROP DATABASE IF EXISTS "{name}"',
    "mssql": (
        "IF DB_ID(N'{name}') IS NOT NULL BEGIN "
        "ALTER DATABASE [{name}] SET SINGLE_USER WITH ROLLBACK IMMEDIATE; "
        "DROP DATABASE [{name}]; END"
    ),
}

UNAVAILABLE_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)


def _node_from(record: NodeRecord) -> GraphNode:
    return GraphNode(
        id=record.node_id,
        label=record.label,
        node_type=record.node_type,
        properties=record.properties or {},
    )


def _edge_from(record: EdgeRecord, source: str, target: str) -> GraphEdge:
    return GraphEdge(
        id=record.edge_id,
        source=source,
        target=target,
        label=record.label,
        edge_type=record.edge_type,
        properties=record.properties or {},
    )


class SQLGraphStore(BaseGraphStore):
    """Graph store on a relational database through SQLAlchemy async."""

    engine = "sql"

    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        super().__init__(settings.sql.database, settings)
        self.sql = settings.sql
        self.dialect = self.sql.dialect

        self.batch_plan = BatchPlan.from_parameter_limit(
            self.sql.max_parameters,
            NODE_PARAMS_PER_ROW,
            EDGE_PARAMS_PER_ROW,
            shared_params=0,
            max_rows=self.settings.ingestion.sql_max_batch_rows,
        )
        # One IN-list element per parameter, one spare for the statement
        self.frontier_chunk_size = rows_per_statement(self.sql.max_parameters, 1, shared_params=1)

        self._engines: dict[str, AsyncEngine] = {}
        self._session_factories: dict[str, async_sessionmaker[AsyncSession]] = {}
        self._engine_lock = asyncio.Lock()

    def log_context(self) -> dict[str, Any]:
        return {**super().log_context(), "dialect": self.dialect}

    # Engines and sessions

    def _create_engine(self, database: str) -> AsyncEngine:
        engine_kwargs: dict[str, Any] = {"echo": self.sql.echo}

        if self.dialect != "sqlite":
            engine_kwargs["pool_size"] = self.sql.pool_size
            engine_kwargs["max_overflow"] = self.sql.max_overflow
            engine_kwargs["pool_timeout"] = self.sql.pool_timeout
            engine_kwargs["pool_recycle"] = self.sql.pool_recycle
            engine_kwargs["pool_pre_ping"] = True

        engine = create_async_engine(self.sql.async_url(database), **engine_kwargs)

        if self.dialect == "sqlite":
            @event.listens_for(engine.sync_engine, "connect")
            def enable_foreign_keys(
                dbapi_connection: "ConnectionPoolEntry",
                connection_record: object,
            ) -> None:
                """SQLite enforces foreign keys per connection only when asked."""
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        return engine

    def _admin_engine(self) -> AsyncEngine:
        return create_async_engine(
            self.sql.async_url(self.sql.admin_database),
            isolation_level="AUTOCOMMIT",
            poolclass=NullPool,
        )

    async def _database_exists(self, database: str) -> bool:
        if self.dialect == "sqlite":
            return (self.sql.sqlite_directory / f"{database}.db").exists()

        admin = self._admin_engine()
        try:
            async with self._translate_errors(database):
                async with admin.connect() as conn:
                    result = await conn.execute(text(DATABASE_EXISTS_SQL[self.dialect]), {"name": database})
                    return result.first() is not None
        finally:
            await admin.dispose()

    async def _engine_for(self, database: str, create: bool = False) -> AsyncEngine:
        """Engine of a database, creating tables on first use.

        Args:
            database: Validated database name.
            create: Allow a database that does not exist yet.

        Raises:
            DatabaseNotFoundError: If the database does not exist and
                ``create`` is False.
        """
        engine = self._engines.get(database)
        if engine is not None:
            return engine

        async with self._engine_lock:
            engine = self._engines.get(database)
            if engine is not None:
                return engine

            if not create and database != self.default_database and not await self._database_exists(database):
                raise DatabaseNotFoundError(details={"database": database})

            engine = self._create_engine(database)
            try:
                async with self._translate_errors(database):
                    async with engine.begin() as conn:
                        await conn.run_sync(Base.metadata.create_all)
            except Exception:
                await engine.dispose()
                raise

            self._engines[database] = engine
            self._session_factories[database] = async_sessionmaker(
                bind=engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )
            self.logger.debug("SQL engine created", database=database)
            return engine

    @asynccontextmanager
    async def _translate_errors(self, database: str) -> AsyncGenerator[None, None]:
        """Map connection-level driver failures to BackendUnavailableError."""
        try:
            yield
        except UNAVAILABLE_ERRORS as exc:
            self.logger.warning(
                "SQL backend unavailable",
                database=database,
                error=str(exc),
            )
            raise BackendUnavailableError(
                f"{self.dialect} backend unavailable",
                details={"database": database},
                cause=exc,
            ) from exc

    @asynccontextmanager
    async def _session(self, database: str) -> AsyncGenerator[AsyncSession, None]:
        """Session that commits on success and rolls back on error."""
        await self._engine_for(database)
        factory = self._session_factories[database]
        async with self._translate_errors(database):
            async with factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

    # Lifecycle

    async def initialize(self) -> None:
        """Ensure the default database and its tables exist."""
        if self.dialect == "sqlite":
            self.sql.sqlite_directory.mkdir(parents=True, exist_ok=True)
        elif not await self._database_exists(self.default_database):
            await self.create_database(self.default_database)

        await self._engine_for(self.default_database, create=True)
        self.logger.info(
            "SQL graph store initialized",
            database=self.default_database,
            node_batch_size=self.batch_plan.node_batch_size,
            edge_batch_size=self.batch_plan.edge_batch_size,
        )

    async def _close(self) -> None:
        engines = list(self._engines.values())
        self._engines.clear()
        self._session_factories.clear()
        for engine in engines:
            await engine.dispose()

    async def health_check(self) -> bool:
        try:
            async with self._session(self.default_database) as session:
                await session.execute(text("SELECT 1"))
            return True
        except BackendUnavailableError:
            return False

    # Lookups

    async def _require_graph(self, session: AsyncSession, graph_id: str, database: str) -> GraphRecord:
        record = await session.get(GraphRecord, graph_id)
        if record is None:
            raise GraphNotFoundError(details={"graph_id": graph_id, "database": database})
        return record

    async def _node_key(self, session: AsyncSession, graph_id: str, node_id: str, database: str) -> int:
        key = await session.scalar(
            select(NodeRecord.id).where(NodeRecord.graph_id == graph_id, NodeRecord.node_id == node_id)
        )
        if key is None:
            await self._require_graph(session, graph_id, database)
            raise NodeNotFoundError(details={"graph_id": graph_id, "node_id": node_id})
        return key

    async def _node_ids(self, session: AsyncSession, keys: Iterable[int]) -> dict[int, str]:
        ids: dict[int, str] = {}
        for chunk in iter_batches(sorted(keys), self.frontier_chunk_size):
            result = await session.execute(
                select(NodeRecord.id, NodeRecord.node_id).where(NodeRecord.id.in_(chunk))
            )
            ids.update({key: node_id for key, node_id in result.all()})
        return ids

    # Graph operations

    async def _create_graph(
        self,
        graph_id: str,
        title: str,
        description: str,
        graph_type: str,
        nodes: list[GraphNode],
        edges: list[GraphEdge],
        database: str,
    ) -> Graph:
        created_at = utcnow()

        async with self._session(database) as session:
            if await session.get(GraphRecord, graph_id) is not None:
                raise GraphAlreadyExistsError(details={"graph_id": graph_id, "database": database})

            session.add(GraphRecord(
                id=graph_id,
                title=title,
                description=description,
                graph_type=graph_type,
                node_count=len(nodes),
                edge_count=0,
                created_at=created_at,
            ))
            try:
                await session.commit()
            except IntegrityError as exc:
                raise GraphAlreadyExistsError(details={"graph_id": graph_id, "database": database}) from exc

            # Each chunk is committed on its own: a failure keeps the prefix
            for batch in iter_batches(nodes, self.batch_plan.node_batch_size):
                await session.execute(insert(NodeRecord), [
                    {
                        "graph_id": graph_id,
                        "node_id": node.id,
                        "label": node.label,
                        "node_type": node.node_type,
                        "properties": node.properties,
                    }
                    for node in batch
                ])
                await session.commit()
                INGESTION_BATCHES.labels(engine=self.engine, kind="nodes").inc()

            result = await session.execute(
                select(NodeRecord.node_id, NodeRecord.id).where(NodeRecord.graph_id == graph_id)
            )
            node_keys = {node_id: key for node_id, key in result.all()}

            resolved, skipped = resolve_edges(edges, node_keys)
            for batch in iter_batches(resolved, self.batch_plan.edge_batch_size):
                await session.execute(insert(EdgeRecord), [
                    {
                        "graph_id": graph_id,
                        "edge_id": edge.id,
                        "source_key": source_key,
                        "target_key": target_key,
                        "label": edge.label,
                        "edge_type": edge.edge_type,
                        "properties": edge.properties,
                    }
                    for edge, source_key, target_key in batch
                ])
                await session.commit()
                INGESTION_BATCHES.labels(engine=self.engine, kind="edges").inc()

            await session.execute(
                update(GraphRecord).where(GraphRecord.id == graph_id).values(edge_count=len(resolved))
            )

        if skipped:
            INGESTION_SKIPPED_EDGES.labels(engine=self.engine).inc(skipped)
            self.logger.warning("Skipped edges with unknown endpoints", graph_id=graph_id, skipped=skipped)

        return Graph(
            id=graph_id,
            title=title,
            description=description,
            graph_type=graph_type,
            node_count=len(nodes),
            edge_count=len(resolved),
            created_at=created_at,
        )

    async def _fetch_graph_record(self, graph_id: str, database: str) -> GraphRecord | None:
        async with self._session(database) as session:
            return await session.get(GraphRecord, graph_id)

    async def _fetch_nodes(self, graph_id: str, database: str) -> list[GraphNode]:
        async with self._session(database) as session:
            result = await session.scalars(
                select(NodeRecord).where(NodeRecord.graph_id == graph_id).order_by(NodeRecord.node_id)
            )
            return [_node_from(record) for record in result]

    async def _fetch_edges(self, graph_id: str, database: str) -> list[GraphEdge]:
        source = aliased(NodeRecord)
        target = aliased(NodeRecord)
        async with self._session(database) as session:
            result = await session.execute(
                select(EdgeRecord, source.node_id, target.node_id)
                .join(source, EdgeRecord.source_key == source.id)
                .join(target, EdgeRecord.target_key == target.id)
                .where(EdgeRecord.graph_id == graph_id)
                .order_by(source.node_id, target.node_id, EdgeRecord.edge_id)
            )
            return [_edge_from(record, src, tgt) for record, src, tgt in result.all()]

    async def _load_graph(self, graph_id: str, database: str) -> GraphData:
        await self._engine_for(database)
        record, nodes, edges = await gather_reads(
            self._fetch_graph_record(graph_id, database),
            self._fetch_nodes(graph_id, database),
            self._fetch_edges(graph_id, database),
        )
        if record is None:
            raise GraphNotFoundError(details={"graph_id": graph_id, "database": database})
        return GraphData(nodes=nodes, edges=edges)

    async def _list_graphs(self, database: str) -> list[GraphSummary]:
        async with self._session(database) as session:
            result = await session.scalars(
                select(GraphRecord).order_by(GraphRecord.created_at.desc(), GraphRecord.id)
            )
            return [
                GraphSummary(
                    id=record.id,
                    title=record.title,
                    description=record.description,
                    graph_type=record.graph_type,
                    node_count=record.node_count,
                    edge_count=record.edge_count,
                )
                for record in result
            ]

    async def _graph_stats(self, graph_id: str, database: str) -> GraphStats:
        async with self._session(database) as session:
            await self._require_graph(session, graph_id, database)

            type_rows = await session.execute(
                select(NodeRecord.node_type, func.count())
                .where(NodeRecord.graph_id == graph_id)
                .group_by(NodeRecord.node_type)
            )
            node_types = {node_type: count for node_type, count in type_rows.all()}

            edge_count = await session.scalar(
                select(func.count()).select_from(EdgeRecord).where(EdgeRecord.graph_id == graph_id)
            )

        return build_graph_stats(sum(node_types.values()), edge_count or 0, node_types)

    async def _delete_graph(self, graph_id: str, database: str) -> None:
        async with self._session(database) as session:
            await session.execute(delete(EdgeRecord).where(EdgeRecord.graph_id == graph_id))
            await session.execute(delete(NodeRecord).where(NodeRecord.graph_id == graph_id))
            await session.execute(delete(GraphRecord).where(GraphRecord.id == graph_id))

    async def _starting_node(self, graph_id: str, database: str) -> GraphNode:
        async with self._session(database) as session:
            record = await session.scalar(
                select(NodeRecord).where(NodeRecord.graph_id == graph_id).order_by(NodeRecord.id).limit(1)
            )
            if record is None:
                await self._require_graph(session, graph_id, database)
                raise GraphNotFoundError("Graph has no nodes", details={"graph_id": graph_id})
            return _node_from(record)

    # Traversals

    async def _impact_levels(
        self, graph_id: str, node_id: str, depth: int, database: str
    ) -> dict[str, int]:
        async with self._session(database) as session:
            source_key = await self._node_key(session, graph_id, node_id, database)

            async def outgoing(frontier: set[int]) -> set[int]:
                reached: set[int] = set()
                for chunk in iter_batches(sorted(frontier), self.frontier_chunk_size):
                    result = await session.scalars(
                        select(EdgeRecord.target_key).where(EdgeRecord.source_key.in_(chunk)).distinct()
                    )
                    reached.update(result)
                return reached

            levels = await level_synchronous_bfs(source_key, depth, outgoing)
            node_ids = await self._node_ids(session, levels)

        return {node_ids[key]: level for key, level in levels.items()}

    async def _neighbors(
        self, graph_id: str, node_id: str, depth: int, database: str
    ) -> tuple[list[GraphNode], list[GraphEdge]]:
        # Both directions bind the chunk, so halve it
        chunk_size = max(1, self.frontier_chunk_size // 2)

        async with self._session(database) as session:
            source_key = await self._node_key(session, graph_id, node_id, database)

            async def either_direction(frontier: set[int]) -> set[int]:
                reached: set[int] = set()
                for chunk in iter_batches(sorted(frontier), chunk_size):
                    result = await session.execute(union(
                        select(EdgeRecord.target_key).where(EdgeRecord.source_key.in_(chunk)),
                        select(EdgeRecord.source_key).where(EdgeRecord.target_key.in_(chunk)),
                    ))
                    reached.update(result.scalars())
                return reached

            levels = await level_synchronous_bfs(source_key, depth, either_direction)
            keys = {source_key, *levels}

            nodes: dict[int, NodeRecord] = {}
            edges: list[EdgeRecord] = []
            for chunk in iter_batches(sorted(keys), self.frontier_chunk_size):
                nodes.update({
                    record.id: record
                    for record in await session.scalars(select(NodeRecord).where(NodeRecord.id.in_(chunk)))
                })
                edges.extend(
                    record
                    for record in await session.scalars(select(EdgeRecord).where(EdgeRecord.source_key.in_(chunk)))
                    if record.target_key in keys
                )

        return (
            [_node_from(record) for record in nodes.values()],
            [
                _edge_from(record, nodes[record.source_key].node_id, nodes[record.target_key].node_id)
                for record in edges
            ],
        )

    # Database administration

    async def list_databases(self) -> list[DatabaseInfo]:
        if self.dialect == "sqlite":
            names = {path.stem for path in self.sql.sqlite_directory.glob("*.db")}
            names.add(self.default_database)
        else:
            admin = self._admin_engine()
            try:
                async with self._translate_errors(self.sql.admin_database or ""):
                    async with admin.connect() as conn:
                        result = await conn.execute(text(LIST_DATABASES_SQL[self.dialect]))
                        names = {row.name for row in result}
            finally:
                await admin.dispose()

        return [
            DatabaseInfo(name=name, default=name == self.default_database, status="online")
            for name in sorted(names)
        ]

    async def create_database(self, name: str) -> None:
        validate_database_name(name)

        if self.dialect != "sqlite" and not await self._database_exists(name):
            admin = self._admin_engine()
            try:
                async with self._translate_errors(name):
                    async with admin.connect() as conn:
                        await conn.execute(text(CREATE_DATABASE_SQL[self.dialect].format(name=name)))
            finally:
                await admin.dispose()

        await self._engine_for(name, create=True)
        self.logger.info("Database created", database=name)

    async def delete_database(self, name: str) -> None:
        validate_database_name(name)
        if name == self.default_database or name in SYSTEM_DATABASES[self.dialect]:
            raise ProtectedDatabaseError(details={"database": name})

        engine = self._engines.pop(name, None)
        self._session_factories.pop(name, None)
        if engine is not None:
            await engine.dispose()

        if self.dialect == "sqlite":
            (self.sql.sqlite_directory / f"{name}.db").unlink(missing_ok=True)
        else:
            admin = self._admin_engine()
            try:
                async with self._translate_errors(name):
                    async with admin.connect() as conn:
                        await conn.execute(text(DROP_DATABASE_SQL[self.dialect].format(name=name)))
            finally:
                await admin.dispose()

        self.cache.invalidate_database(name)
        self.logger.info("Database deleted", database=name)

    async def _database_stats(self, database: str) -> DatabaseStats:
        async with self._session(database) as session:
            node_count = await session.scalar(select(func.count()).select_from(NodeRecord))
            edge_count = await session.scalar(select(func.count()).select_from(EdgeRecord))
            graph_count = await session.scalar(select(func.count()).select_from(GraphRecord))

        return DatabaseStats(
            node_count=node_count or 0,
            relationship_count=edge_count or 0,
            graph_count=graph_count or 0,
        )

    async def execute_raw_query(self, query: str, database: str | None = None) -> RawQueryResult:
        """Run raw SQL. Statements that return no rows yield an empty list."""
        db = self.resolve_database(database)
        start = time.perf_counter()

        async with self._session(db) as session:
            result = await session.execute(text(query))
            if result.returns_rows:
                rows = [
                    {key: to_json_value(value) for key, value in row._mapping.items()}
                    for row in result.all()
                ]
            else:
                rows = []

        return RawQueryResult(
            rows=rows,
            elapsed_ms=round((time.perf_counter() - start) * 1000, 3),
            row_count=len(rows),
            engine=self.engine,
        )
