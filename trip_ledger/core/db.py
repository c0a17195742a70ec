from collections.abc import AsyncGenerator

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from trip_ledger.core.config import get_settings
from trip_ledger.models.base import Base

settings = get_settings()


def get_async_database_url(url: str) -> str:
    """Convert database URL to async-compatible format using psycopg driver."""
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    elif url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)
    elif url.startswith("sqlite://"):
        url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)

    if "channel_binding=" in url:
        import re
        url = re.sub(r'[&?]channel_binding=[^&]*', '', url)
        url = url.replace('?&', '?').rstrip('?')

    return url


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    database_url = get_async_database_url(url)
    if database_url.startswith("sqlite"):
        engine = create_async_engine(database_url, future=True, echo=echo)
        # Correction rows rely on ON DELETE CASCADE
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_async_engine(
        database_url,
        future=True,
        echo=echo,
        pool_pre_ping=True,  # Verify connections before using
        pool_recycle=3600,   # Recycle connections after 1 hour
        pool_timeout=10,     # Wait up to 10 seconds for a connection from pool
        max_overflow=10,     # Allow extra connections beyond pool_size
        connect_args={"connect_timeout": 10},
    )


print(f"[DB] Creating database engine with URL: {get_async_database_url(settings.database_url).split('@')[0]}@***")
engine: AsyncEngine = build_engine(settings.database_url, echo=settings.debug)

AsyncSessionFactory = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionFactory() as session:
        yield session


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for services that open their own transactions per attempt."""
    return AsyncSessionFactory


async def init_database() -> None:
    """Create all tables. In production use Alembic migrations instead."""
    print("[DB] Initializing database tables...")
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        print("[DB] Database tables initialized successfully")
    except Exception as e:
        # Don't fail startup - migrations are the source of truth
        print(f"[DB] WARNING: create_all failed (expected if using Alembic): {e}")


async def test_database_connection() -> bool:
    """Test database connection with timeout."""
    import asyncio
    print("[DB] Testing database connection...")

    async def _test_connection():
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            result.fetchone()

    try:
        await asyncio.wait_for(_test_connection(), timeout=10.0)
        print("[DB] Database connection test successful")
        return True
    except asyncio.TimeoutError:
        print("[DB] ERROR: Database connection test timed out after 10 seconds")
        return False
    except Exception as e:
        print(f"[DB] ERROR: Database connection test failed: {e}")
        return False
