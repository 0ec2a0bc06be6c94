"""plansearch FastAPI application entry point.

Wires together all providers and services via dependency injection (see
:mod:`plansearch.bootstrap`), opens the document store for the lifetime of
the app and mounts the API router.  Loads configuration from ``.env`` and
``config/config.yaml`` and configures structured logging at import time.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from plansearch.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from plansearch.api.routes import router as api_router
from plansearch.bootstrap import build_components
from plansearch.config.loader import build_settings
from plansearch.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = build_settings()

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Build and open all components on startup; drain ingestions on shutdown."""
    components = build_components(settings)

    for key, value in components.items():
        setattr(application.state, key, value)

    document_store = components["document_store"]
    await document_store.open()

    registry = components["provider_registry"]
    _logger.info(
        "app_startup",
        version="0.1.0",
        environment=settings.app_env,
        llm=registry["llm_name"],
        embedding=registry["embedding_name"],
        database=settings.database_path,
    )

    yield

    # In-flight ingestions finish before the connection closes.
    await components["document_service"].shutdown()
    await document_store.close()
    _logger.info("app_shutdown", message="Document store closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="plansearch API",
        version="0.1.0",
        description=(
            "Upload construction drawing sets, specifications and text documents "
            "into a scope, track their ingestion, and run semantic search over "
            "the extracted chunks, visual elements and page summaries."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    # -- API routes --
    application.include_router(api_router)

    return application


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "plansearch.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "development",
    )
