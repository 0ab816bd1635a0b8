"""Database (storage namespace) administration endpoints."""

from fastapi import APIRouter, status

from graphlens.api.dependencies import Store
from graphlens.schemas.database import CreateDatabaseRequest, DatabaseInfo, DatabaseStats

router = APIRouter(prefix="/databases", tags=["databases"])


@router.get("", response_model=list[DatabaseInfo])
async def list_databases(store: Store) -> list[DatabaseInfo]:
    """List databases of the selected backend."""
    return await store.list_databases()


@router.post("", response_model=DatabaseInfo, status_code=status.HTTP_201_CREATED)
async def create_database(data: CreateDatabaseRequest, store: Store) -> DatabaseInfo:
    """Create a database. An existing database is left untouched."""
    await store.create_database(data.name)
    return DatabaseInfo(name=data.name, default=data.name == store.default_database, status="online")


@router.delete("/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_database(name: str, store: Store) -> None:
    """Drop a database and every graph in it.

    The default database and system databases cannot be dropped.
    """
    await store.delete_database(name)


@router.get("/{name}/stats", response_model=DatabaseStats)
async def get_database_stats(name: str, store: Store) -> DatabaseStats:
    """Node, relationship and graph totals of a database."""
    return await store.get_database_stats(name)
