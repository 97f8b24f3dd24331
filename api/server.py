"""FastAPI server for the SoftOne WooCommerce sync.

Main entry point for the API server.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import connection, health, imports, orders
from api.services.runtime import shutdown_runtime
from connectors.softone.so_config import PLUGIN_VERSION
from core.observability.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    configure_logging(json_format=os.getenv("SOFTONE_LOG_JSON", "").lower() in ("1", "true", "yes"))
    logger.info("SoftOne sync API starting up")

    yield

    await shutdown_runtime()
    logger.info("SoftOne sync API shutting down")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="SoftOne WooCommerce Sync API",
        description="Resumable catalogue import from SoftOne and order export to SoftOne",
        version=PLUGIN_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(connection.router, prefix="/connection", tags=["Connection"])
    app.include_router(imports.router, prefix="/imports", tags=["Imports"])
    app.include_router(orders.router, prefix="/orders", tags=["Orders"])

    return app


# Default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
