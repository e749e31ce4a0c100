"""
Database Session Management

Async SQLAlchemy session with PostgreSQL.
"""

import logging
import ssl
from typing import AsyncGenerator, Optional
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from medimind.api.config import settings


logger = logging.getLogger(__name__)

# Module-level engine (created lazily)
_engine: Optional[AsyncEngine] = None
_async_session_maker: Optional[async_sessionmaker] = None


def _get_ssl_context(ca_file: Optional[str] = None) -> ssl.SSLContext:
    """Verifying SSL context, optionally trusting a private CA bundle."""
    return ssl.create_default_context(cafile=ca_file)


def _connect_args() -> dict:
    """Driver connect arguments derived from settings."""
    if not settings.DATABASE_SSL:
        return {}
    return {"ssl": _get_ssl_context(settings.DATABASE_SSL_CA_FILE)}


def get_engine() -> AsyncEngine:
    """Get or create the database engine."""
    global _engine

    if _engine is None:
        logger.info(
            "Creating database engine (ssl=%s)", "on" if settings.DATABASE_SSL else "off"
        )
        _engine = create_async_engine(
            settings.DATABASE_URL,
            echo=settings.DATABASE_ECHO,
            poolclass=NullPool,
            connect_args=_connect_args(),
        )

    return _engine


def get_session_maker() -> async_sessionmaker:
    """Get or create the session maker."""
    global _async_session_maker

    if _async_session_maker is None:
        _async_session_maker = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )

    return _async_session_maker


async def init_db() -> None:
    """Initialize database connection."""
    from medimind.api.db.models import Base

    engine = get_engine()
    logger.info("Initializing database connection...")

    async with engine.begin() as conn:
        # Create tables if they don't exist (dev only)
        # In production, use Alembic migrations
        if settings.DEBUG:
            logger.info("Creating tables (DEBUG mode)...")
            await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connection."""
    global _engine, _async_session_maker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_maker = None
        logger.info("Database connection closed")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a database session.

    Usage in FastAPI:
        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    session_maker = get_session_maker()
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
