"""
FastAPI application for the barbershop availability engine.
"""
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.api import api_router
from app.core.config import settings
from app.core.logging import setup_logging
from app.core.redis import redis_client
from app.services.config_cache import ShopConfigCache

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    setup_logging()
    logger.info("Starting availability service", environment=settings.ENVIRONMENT)

    yield

    await redis_client.close()
    logger.info("Availability service stopped")


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Slot availability and booking engine for barbershops",
        version=settings.VERSION,
        lifespan=lifespan,
    )

    # Shared per-process configuration cache, invalidated by owner tooling
    app.state.config_cache = ShopConfigCache()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health", tags=["health"])
    async def health_check():
        return {"status": "healthy", "version": settings.VERSION}

    return app


app = create_app()
