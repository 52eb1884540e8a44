"""
Database session configuration.

Async SQLAlchemy engine and session factory for the ledger store: PostgreSQL
through asyncpg in deployment, a `sqlite+aiosqlite` URL for local runs.
"""

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, AsyncEngine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from hud_ledger.app.core.config import settings


def _engine_options(database_url: str) -> dict:
    options = {"echo": settings.db_echo, "future": True}
    # SQLite pools do not take sizing arguments
    if make_url(database_url).get_backend_name() != "sqlite":
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )
    return options


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

# Appended entries are handed back to callers after commit
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


async def create_tables(bind: AsyncEngine = None) -> None:
    """Create the ledger, membership and audit tables if missing."""
    # Register every mapped table on Base.metadata
    from hud_ledger.app.models import ledger_entry, organization_member, audit_log  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db():
    """
    FastAPI dependency for database sessions.

    The ledger engine commits or rolls back its own writes; closing the
    session discards anything a failed request left open.
    """
    async with AsyncSessionLocal() as session:
        yield session
