"""
Service app factory for crudkit services.

Creates a pre-configured FastAPI application with:
- CRUD routes of every given data provider
- CrudError -> JSON error responses
- CORS middleware
- Health check endpoint
- Lifecycle hooks for database
- Logging filter to suppress noisy healthcheck logs

Usage:
    app = create_crud_app("products", {"/products": product_provider})
"""

from __future__ import annotations


import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Callable, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..core.errors import CrudError
from ..runtime.dataprovider import DataProvider
from .database import close_database, init_database, is_database_initialized
from .router import create_crud_router
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class HealthcheckLogFilter(logging.Filter):
    """Filter out noisy healthcheck endpoint logs."""

    FILTERED_PATHS = ("/health",)

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        for path in self.FILTERED_PATHS:
            if f'"{path}' in message or f" {path} " in message:
                return False
        return True


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging and silence healthcheck access logs."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("crudkit").setLevel(level)
    logging.getLogger("uvicorn.access").addFilter(HealthcheckLogFilter())


async def crud_error_handler(request: Request, exc: CrudError) -> JSONResponse:
    """Render a CrudError as {code, error, message}."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_crud_app(
    service_name: str,
    providers: Mapping[str, DataProvider],
    *,
    settings: Optional[Settings] = None,
    on_startup: Callable | None = None,
    on_shutdown: Callable | None = None,
    init_db: bool = True,
) -> FastAPI:
    """
    Create a FastAPI app serving the CRUD routes of some entities.

    Args:
        service_name: Name of the service (used in title and logging)
        providers: Data provider per route prefix
        settings: Service settings, read from the environment when omitted
        on_startup: Additional startup hook
        on_shutdown: Additional shutdown hook
        init_db: Whether to initialize the process-wide database on startup

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        configure_logging(settings.log_level)
        owns_database = init_db and not is_database_initialized()
        if owns_database:
            init_database(settings)
        if on_startup:
            await on_startup() if asyncio.iscoroutinefunction(on_startup) else on_startup()
        logger.info(f"{service_name} started")

        yield

        # Shutdown
        if on_shutdown:
            await on_shutdown() if asyncio.iscoroutinefunction(on_shutdown) else on_shutdown()
        if owns_database:
            await close_database()

    app = FastAPI(
        title=f"{service_name.replace('_', ' ').title()} Service",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(CrudError, crud_error_handler)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        return {"status": "ok", "service": service_name}

    for prefix, provider in providers.items():
        app.include_router(create_crud_router(provider, prefix=prefix, settings=settings))

    return app
