"""
FastAPI Main Application
Entry point for the Rentals Search API.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from ..backends import create_backend
from ..backends.index import IndexBackend
from ..caching import CacheService, RedisCache
from ..config import get_settings
from ..db.repository import ListingRepository
from ..db.session import create_engine_from_settings, create_session_factory
from ..indexing import ListingIndexer
from ..search.service import SearchService
from .errors import setup_error_handlers
from .middleware import RequestLoggingMiddleware, RequestTimingMiddleware
from .routers import admin_router, health_router, search_router

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Builds the engine, cache, backend and search service on startup and
    releases them on shutdown.
    """
    logger.info("Starting Rentals Search API...")

    settings = get_settings()

    engine = create_engine_from_settings(settings)
    session_factory = create_session_factory(engine)

    cache_store = RedisCache(settings) if settings.enable_cache else None
    cache_service = CacheService(cache_store, settings=settings)

    backend = create_backend(settings, session_factory=session_factory)

    app.state.settings = settings
    app.state.cache_service = cache_service
    app.state.search_service = SearchService(backend, cache_service, settings=settings)
    app.state.indexer = None

    if isinstance(backend, IndexBackend):
        repository = ListingRepository(session_factory, settings.io_timeout_seconds)
        indexer = ListingIndexer(backend.client, repository, settings=settings)
        app.state.indexer = indexer
        try:
            if await indexer.ensure_index():
                logger.info(f"Created missing index {indexer.index_name}")
        except Exception as e:
            logger.error(f"Failed to check/create index: {e}")

    logger.info(f"Rentals Search API started (backend={backend.mode.value})")

    yield

    logger.info("Shutting down Rentals Search API...")
    await backend.close()
    if cache_store is not None:
        await cache_store.close()
    await engine.dispose()


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=settings.description,
        version=settings.version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Set up CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    # Add GZip compression
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # Add custom middleware
    app.add_middleware(RequestTimingMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    setup_error_handlers(app)

    app.include_router(health_router)
    app.include_router(search_router)
    app.include_router(admin_router)

    @app.get("/")
    async def root():
        """API information."""
        return {
            "name": settings.app_name,
            "version": settings.version,
            "description": settings.description,
            "endpoints": {
                "search": "/api/v1/search",
                "health": "/health",
                "status": "/status",
                "docs": "/docs",
            },
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "rentsearch.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )
