"""Catalog database engine and schema management.

One engine per process. Repositories receive ``async_session_factory`` and open
a short-lived session per operation.
"""

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from object_vault.config import settings
from object_vault.models import Base

engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_pre_ping=True,
)

# Rows outlive their session: services hand them to callers after commit
async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


async def init_db() -> None:
    """Create the catalog tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def reset_db() -> None:
    """Drop and recreate all tables. Destroys all catalog data."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def dispose_db() -> None:
    """Close pooled connections. Call before the event loop shuts down."""
    await engine.dispose()
