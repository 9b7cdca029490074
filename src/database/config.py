"""Database engine and session factory setup."""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.core.config import DatabaseSettings
from src.core.logging import get_logger

logger = get_logger(__name__)


def normalize_database_url(url: str) -> str:
    """Map plain postgres URLs onto the asyncpg driver.

    Returns:
        SQLAlchemy async connection URL.
    """
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def create_engine(db_settings: DatabaseSettings) -> AsyncEngine:
    """Create the async engine for the configured URL.

    PostgreSQL runs every transaction SERIALIZABLE so that number
    allocation and the Review lock check read a stable snapshot.
    SQLite has a single writer and needs neither pooling options nor
    an isolation override.
    """
    url = normalize_database_url(db_settings.url)
    logger.info("Creating database engine", url=_mask_password(url))

    kwargs: dict[str, Any] = {"echo": db_settings.echo}
    if not is_sqlite(url):
        kwargs.update(
            pool_size=db_settings.pool_size,
            max_overflow=db_settings.max_overflow,
            pool_pre_ping=True,
            isolation_level="SERIALIZABLE",
        )
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory bound to `engine`."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database tables.

    Creates all tables defined in the models.
    """
    from src.database.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables initialized")


def _mask_password(url: str) -> str:
    """Mask password in database URL for logging."""
    if "@" in url and "://" in url:
        protocol, rest = url.split("://", 1)
        credentials, host_part = rest.rsplit("@", 1)
        if ":" in credentials:
            user, _ = credentials.split(":", 1)
            return f"{protocol}://{user}:***@{host_part}"
    return url
