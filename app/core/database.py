import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from app.core.config import settings

logger = structlog.get_logger(__name__)

Base = declarative_base()


def build_engine(url: str = settings.DATABASE_URL) -> AsyncEngine:
    """Async engine for a database URL.

    SQLite connections wait up to ``DB_LOCK_TIMEOUT_SECONDS`` for the write
    lock, so a losing concurrent booking fails on the slot claim constraint.
    """
    if url.startswith("sqlite"):
        return create_async_engine(
            url,
            echo=settings.DB_ECHO,
            connect_args={"timeout": settings.DB_LOCK_TIMEOUT_SECONDS},
        )
    return create_async_engine(
        url,
        echo=settings.DB_ECHO,
        pool_pre_ping=True,
        pool_recycle=300,
    )


engine = build_engine()

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncSession:
    """Request-scoped session; rolled back if the request fails mid-transaction."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            await session.rollback()
            logger.error("Rolled back request session", error_type=type(e).__name__)
            raise
