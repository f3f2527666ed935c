"""FastAPI application factory and main entry point."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from intel_archive.config import get_settings
from intel_archive.database import get_archive_store, get_state_store
from intel_archive.exceptions import PersistenceFailure, StoreBusy
from intel_archive.logs import configure_logging

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    configure_logging()
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    store = get_archive_store()
    state = get_state_store()
    logger.info(
        f"Archive ready: {len(store)} events, "
        f"{len(state.sync_config.monitored_sources)} monitored sources"
    )

    yield

    # Shutdown
    logger.info("Shutting down application")


async def store_busy_handler(request: Request, exc: StoreBusy) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


async def persistence_failure_handler(request: Request, exc: PersistenceFailure) -> JSONResponse:
    logger.error(f"[ARCHIVE] {exc}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StoreBusy, store_busy_handler)
    app.add_exception_handler(PersistenceFailure, persistence_failure_handler)

    # Health check endpoint
    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy", "version": settings.app_version}

    # Import and include routers
    from intel_archive.routers import events, ingest, sources

    app.include_router(events.router, prefix=settings.api_prefix)
    app.include_router(sources.router, prefix=settings.api_prefix)
    app.include_router(ingest.router, prefix=settings.api_prefix)

    return app


# Create app instance for uvicorn
app = create_app()
