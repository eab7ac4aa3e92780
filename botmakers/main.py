"""FastAPI application factory and composition root."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pythonjsonlogger import jsonlogger
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine
from starlette.exceptions import HTTPException as StarletteHTTPException

from botmakers import __version__
from botmakers.api.errors import http_exception_handler, unhandled_exception_handler
from botmakers.api.routes import admin, connections, integrations, tools
from botmakers.config import Settings, get_settings
from botmakers.db import create_engine, create_session_factory, init_db
from botmakers.integrations.registry import IntegrationRegistry, create_default_registry
from botmakers.services.broker import ConnectionBroker
from botmakers.services.cache import TTLCache
from botmakers.services.credentials import CredentialResolver
from botmakers.services.vault import CredentialVault
from botmakers.utils.http_client import close_http_client

logger = logging.getLogger(__name__)


def setup_logging(log_level: str = "INFO") -> None:
    """Configure JSON logging for production."""
    log_handler = logging.StreamHandler()
    formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    log_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [log_handler]
    root_logger.setLevel(log_level.upper())

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create tables, initialize integrations, and release resources on shutdown."""
    settings: Settings = app.state.settings
    setup_logging(settings.log_level)
    logger.info("Starting connection broker service")

    try:
        await init_db(app.state.engine)
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    await app.state.registry.initialize_all()
    app.state.ready = True

    yield

    logger.info("Shutting down connection broker service")
    app.state.ready = False
    await app.state.resolver.drain()
    await close_http_client()
    await app.state.engine.dispose()


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[AsyncEngine] = None,
    registry: Optional[IntegrationRegistry] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the application and every app-scoped service.

    Args:
        settings: Settings override; defaults to the environment.
        engine: Database engine override (tests pass a SQLite engine).
        registry: Integration registry override.
        http_client: HTTP client for vendor calls; defaults to the shared client.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or get_settings()
    engine = engine or create_engine(settings)
    session_factory = create_session_factory(engine)
    vault = CredentialVault(settings.encryption_key)

    app = FastAPI(
        title="BotMakers Connection Broker",
        description="Credential resolution and connection health for multi-tenant integrations",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.vault = vault
    app.state.http_client = http_client
    app.state.registry = registry or create_default_registry(settings, client=http_client)
    app.state.resolver = CredentialResolver(vault, session_factory)
    app.state.broker = ConnectionBroker(
        TTLCache(settings.connections_cache_ttl_seconds),
        session_factory,
        vault,
        query_timeout=settings.connections_query_timeout_seconds,
        retry_after=settings.connections_retry_after_seconds,
    )
    app.state.ready = False

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(connections.router)
    app.include_router(integrations.router)
    app.include_router(tools.router)
    app.include_router(admin.router)

    @app.get("/")
    async def root() -> dict:
        """Root endpoint with service info."""
        return {
            "service": "botmakers-connection-broker",
            "version": __version__,
            "status": "running",
        }

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.get("/live")
    async def liveness() -> dict:
        """Kubernetes liveness probe."""
        return {"status": "alive"}

    @app.get("/ready")
    async def readiness() -> dict:
        """Kubernetes readiness probe."""
        if not app.state.ready:
            return {"status": "not_ready", "reason": "startup_incomplete"}
        try:
            async with session_factory() as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            return {"status": "not_ready", "reason": str(e)}
        return {"status": "ready"}

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "botmakers.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=True,
    )
