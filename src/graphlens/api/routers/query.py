"""Raw query pass-through."""

from fastapi import APIRouter

from graphlens.api.dependencies import DatabaseParam, Store
from graphlens.common.logging import get_logger
from graphlens.schemas.graph import RawQueryRequest, RawQueryResult

logger = get_logger(__name__)

router = APIRouter(tags=["query"])


@router.post("/query", response_model=RawQueryResult)
async def execute_query(
    data: RawQueryRequest,
    store: Store,
    database: DatabaseParam = None,
) -> RawQueryResult:
    """Run Cypher or SQL text against the selected backend.

    Writes issued here bypass cache invalidation; clear the cache
    afterwards if they touch stored graphs.
    """
    result = await store.execute_raw_query(data.query, database)
    logger.info(
        "Raw query executed",
        engine=result.engine,
        row_count=result.row_count,
        elapsed_ms=result.elapsed_ms,
    )
    return result
