"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) so
tests can build isolated instances.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from sliding_limiter.api.routes import health_router, ping_router
from sliding_limiter.core.config import settings
from sliding_limiter.core.exception_handlers import setup_exception_handlers
from sliding_limiter.core.logging import configure_logging
from sliding_limiter.core.middleware import request_id_middleware
from sliding_limiter.core.store_client import reset_counter_store


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # Release pooled store connections on shutdown
    reset_counter_store()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Sliding Limiter",
        description=(
            "Distributed sliding-window request limiting shared across server "
            "processes through Redis, per route, per route and client IP, or "
            "globally."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(ping_router, prefix="/v1")
    app.include_router(health_router)

    return app
