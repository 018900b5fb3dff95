"""
Database configuration.

Builds the async engine and session factory from DatabaseSettings.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from core.settings.sections import DatabaseSettings


logger = logging.getLogger(__name__)


# =============================================================================
# ENGINE CREATION
# =============================================================================

def create_engine(settings: DatabaseSettings) -> AsyncEngine:
    """
    Create async SQLAlchemy engine.

    Pool options only apply to server databases; SQLite URLs use the
    driver defaults.

    Args:
        settings: DatabaseSettings section

    Returns:
        Configured async engine
    """
    logger.info(f"Creating database engine: {settings.url.split('@')[-1]}")

    if settings.url.startswith("sqlite"):
        return create_async_engine(settings.url, echo=settings.echo_sql)

    return create_async_engine(
        settings.url,
        echo=settings.echo_sql,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.pool_timeout,
        pool_recycle=settings.pool_recycle,
        pool_pre_ping=True,  # Test connections before using
    )


# =============================================================================
# SESSION FACTORY
# =============================================================================

def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """
    Session factory handed to every UnitOfWork.

    Returns:
        async_sessionmaker producing AsyncSession objects
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# =============================================================================
# DATABASE INITIALIZATION
# =============================================================================

async def init_database(engine: AsyncEngine) -> None:
    """Create all tables if they don't exist."""
    from core.infrastructure.database.models import Base

    logger.info("Initializing database...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized successfully")


async def close_database(engine: AsyncEngine) -> None:
    """Close database connections."""
    await engine.dispose()
    logger.info("Database connections closed")
