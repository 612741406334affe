from __future__ import annotations

from pathlib import Path
from typing import AsyncIterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from src.config import get_settings

settings = get_settings()


class Base(DeclarativeBase):
    pass


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # Needed for ON DELETE CASCADE from api_tasks to logs and notification links
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def configure_engine(engine: Engine, url: str) -> Engine:
    if url.startswith("sqlite"):
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


# Async engine for the HTTP API
async_engine = create_async_engine(settings.database_url)
configure_engine(async_engine.sync_engine, settings.database_url)
AsyncSessionLocal = async_sessionmaker(
    async_engine, class_=AsyncSession, expire_on_commit=False
)


async def get_db() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session


def ensure_sqlite_dir(url: str) -> None:
    """Create the parent directory of a file-based SQLite database."""
    if url.startswith("sqlite") and ":memory:" not in url and ":///" in url:
        Path(url.split(":///", 1)[1]).parent.mkdir(parents=True, exist_ok=True)


async def init_db() -> None:
    # Import models so they register with Base.metadata
    import src.models  # noqa: F401

    ensure_sqlite_dir(settings.database_url)

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def create_sync_engine(database_url: str | None = None) -> Engine:
    url = database_url or settings.sync_database_url
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
    return configure_engine(create_engine(url, connect_args=connect_args), url)


def create_sync_session_factory(database_url: str | None = None) -> sessionmaker[Session]:
    """同步 session factory（給排程與 CLI 使用）

    Objects stay readable after commit so claimed tasks can be handed to
    worker threads once their session is closed.
    """
    return sessionmaker(create_sync_engine(database_url), expire_on_commit=False)
