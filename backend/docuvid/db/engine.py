"""
Async SQLAlchemy engine and session factory for docuvid.

build_engine() is also used by the test suite to get an in-memory
database with the same connection setup as production.
"""
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from docuvid.config import settings

_MEMORY_URLS = ("sqlite+aiosqlite://", "sqlite+aiosqlite:///:memory:")


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    """
    Per-connection SQLite setup.

    WAL lets the API read while a generation batch writes; foreign keys
    are off by default in SQLite and must be enabled on every connection.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=FULL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def build_engine(database_url: str) -> AsyncEngine:
    """Create an async engine for the given URL.

    In-memory SQLite URLs share one connection so every session sees the
    same database.
    """
    kwargs = {"poolclass": StaticPool} if database_url in _MEMORY_URLS else {}
    new_engine = create_async_engine(database_url, echo=False, **kwargs)
    if new_engine.dialect.name == "sqlite":
        event.listen(new_engine.sync_engine, "connect", _set_sqlite_pragmas)
    return new_engine


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Attributes stay loaded after commit; batch loops read scenes across commits
    return async_sessionmaker(bind, expire_on_commit=False, class_=AsyncSession)


engine = build_engine(settings.storage.database_url)
async_session = build_session_factory(engine)


async def get_session():
    """FastAPI dependency yielding one session per request."""
    async with async_session() as session:
        yield session


async def shutdown():
    """Dispose of the engine and close all pooled connections."""
    await engine.dispose()
