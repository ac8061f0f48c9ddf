"""Craftshop Admin Backend - Main Application Module."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from beartype import beartype
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.response_patterns import ErrorResponse
from .api.v1 import router as v1_router
from .core.auth.oauth2.errors import StoreFailure
from .core.config import Settings, get_settings
from .core.database import Database
from .core.logging_utils import configure_logging, get_logger
from .services.bootstrap import bootstrap_from_settings
from .services.credential_store import CredentialStore, PostgresCredentialStore

logger = get_logger(__name__)


def _build_lifespan(settings: Settings, store: CredentialStore | None):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage application lifecycle - startup and shutdown."""
        logger.info("Starting %s in %s mode", settings.app_name, settings.api_env)

        db: Database | None = None
        if store is None:
            db = Database(settings)
            await db.connect()
            app.state.credential_store = PostgresCredentialStore(db)

        if settings.bootstrap_on_startup:
            await bootstrap_from_settings(app.state.credential_store, settings)

        yield

        logger.info("Shutting down %s", settings.app_name)
        if db is not None:
            await db.disconnect()

    return lifespan


async def store_failure_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render persistence failures as a generic 500."""
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    body = ErrorResponse(error="Internal server error", error_code="server_error")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body.model_dump(),
    )


@beartype
def create_app(
    settings: Settings | None = None,
    store: CredentialStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use instead of the cached environment settings
        store: Credential store to use instead of PostgreSQL

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()
    configure_logging(level=settings.log_level)

    app = FastAPI(
        title=settings.app_name,
        description="Access control and account management for the craftshop catalog",
        version=__version__,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        openapi_url="/openapi.json" if not settings.is_production else None,
        lifespan=_build_lifespan(settings, store),
    )
    if store is not None:
        app.state.credential_store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StoreFailure, store_failure_handler)
    app.dependency_overrides[get_settings] = lambda: settings

    app.include_router(v1_router)
    return app


# Create the application instance
app = create_app()


@beartype
def main() -> None:
    """Run the main application entry point."""
    settings = get_settings()

    uvicorn.run(
        "craftshop_admin.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level="info" if not settings.is_production else "error",
    )


if __name__ == "__main__":
    main()
