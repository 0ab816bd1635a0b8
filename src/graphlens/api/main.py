"""GraphLens API entry point.

FastAPI application factory with all routers and middleware.
"""

import sys
import time
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import NoReturn

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from graphlens.common.config import Settings, get_settings
from graphlens.common.exceptions import GraphLensError
from graphlens.common.logging import bind_context, clear_context, get_logger, setup_logging
from graphlens.common.metrics import API_REQUESTS, API_REQUEST_DURATION, set_app_info
from graphlens.stores.registry import GraphStoreRegistry

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler.

    Builds the backend registry (unless one was supplied to create_app),
    initializes every adapter and closes them on shutdown.
    """
    settings: Settings = app.state.settings

    # Setup logging
    setup_logging(settings)

    set_app_info(
        version=settings.app_version,
        environment=settings.environment,
        backends=settings.api.backends,
    )

    logger.info(
        "Starting GraphLens API",
        version=settings.app_version,
        environment=settings.environment,
        backends=settings.api.backends,
    )

    if app.state.registry is None:
        app.state.registry = GraphStoreRegistry.from_settings(settings)

    registry: GraphStoreRegistry = app.state.registry
    await registry.initialize_all()
    logger.info("Backends initialized", backends=registry.identifiers)

    yield

    # Cleanup
    logger.info("Shutting down GraphLens API")
    await registry.close_all()
    logger.info("Backends closed")


def create_app(
    settings: Settings | None = None,
    registry: GraphStoreRegistry | None = None,
) -> FastAPI:
    """Create FastAPI application instance.

    Args:
        settings: Settings to use instead of the cached global ones.
        registry: Pre-built backend registry, mainly for tests.
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="GraphLens API",
        description="Multi-backend graph storage, neighborhood and impact analysis",
        version=settings.app_version,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        openapi_url="/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.registry = registry

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Cache",
            "X-Response-Time",
            "X-Parallel-Queries",
            "X-Engine",
            "X-Content-Length-Raw",
        ],
    )

    # Full graphs are large and repetitive JSON
    app.add_middleware(GZipMiddleware, minimum_size=settings.api.gzip_minimum_size)

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = str(uuid.uuid4())[:8]
        bind_context(request_id=request_id)

        start = time.perf_counter()

        try:
            response = await call_next(request)
            duration = time.perf_counter() - start

            # Record metrics
            API_REQUESTS.labels(
                method=request.method,
                endpoint=request.url.path,
                status=response.status_code,
            ).inc()
            API_REQUEST_DURATION.labels(
                method=request.method,
                endpoint=request.url.path,
            ).observe(duration)

            logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                backend=request.query_params.get("backend"),
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )

            return response

        except Exception as e:
            duration = time.perf_counter() - start
            logger.error(
                "Request failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                duration_ms=round(duration * 1000, 2),
            )
            raise
        finally:
            clear_context()

    # Exception handlers
    @app.exception_handler(GraphLensError)
    async def graphlens_exception_handler(
        request: Request,
        exc: GraphLensError,
    ) -> JSONResponse:
        logger.warning(
            "Application error",
            error_code=exc.error_code,
            message=exc.message,
            details=exc.details,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder(exc.to_dict()),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        logger.warning(
            "Validation error",
            errors=exc.errors(),
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        logger.error(
            "Unhandled error",
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "INTERNAL_ERROR",
                "message": "An internal error occurred",
            },
        )

    # Include routers
    from graphlens.api.routers import admin, databases, graphs, optim, query

    app.include_router(admin.router, prefix="/api")
    app.include_router(graphs.router, prefix="/api")
    app.include_router(databases.router, prefix="/api")
    app.include_router(optim.router, prefix="/api")
    app.include_router(query.router, prefix="/api")

    # Root endpoint
    @app.get("/")
    async def root() -> dict:
        return {
            "name": "GraphLens API",
            "version": settings.app_version,
            "backends": settings.api.backends,
            "default_backend": settings.api.default_backend,
            "docs": "/docs" if not settings.is_production else None,
        }

    return app


# Create app instance for uvicorn
app = create_app()


def run() -> NoReturn:
    """Run the API server."""
    import uvicorn

    settings = get_settings()

    try:
        uvicorn.run(
            "graphlens.api.main:app",
            host=settings.api.host,
            port=settings.api.port,
            workers=settings.api.workers if not settings.api.reload else 1,
            reload=settings.api.reload,
            log_level="info",
            access_log=False,  # We use our own logging
        )
        sys.exit(0)
    except KeyboardInterrupt:
        sys.exit(0)
    except Exception as e:
        logger.error("API failed to start", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    run()
