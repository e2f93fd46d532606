"""Database session management."""

from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from voicedesk.config import get_settings


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, echo: bool = False, **options) -> AsyncEngine:
    """Create an async engine for the given URL.

    SQLite connections get foreign key enforcement so ``ON DELETE`` rules
    behave the same as on PostgreSQL.
    """
    if database_url.startswith("sqlite"):
        async_engine = create_async_engine(database_url, echo=echo, **options)
        event.listen(async_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return async_engine

    options.setdefault("poolclass", NullPool)  # Disable connection pooling for async
    return create_async_engine(database_url, echo=echo, **options)


settings = get_settings()

# Create async engine
engine = build_engine(settings.database_url, echo=settings.debug)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """Initialize database tables."""
    from voicedesk.database.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
