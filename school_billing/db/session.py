import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from school_billing.core.config import settings
from school_billing.core.exceptions import ServiceError, StorageError

logger = logging.getLogger(__name__)

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _install_sqlite_hooks(engine: AsyncEngine, journal_mode: str) -> None:
    # pysqlite/aiosqlite emit their own BEGIN lazily, which breaks SAVEPOINT.
    # Take over transaction control and turn FK enforcement on per connection.
    # journal_mode cannot change inside a transaction, so it is set here too.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.execute(f"PRAGMA journal_mode = {journal_mode}")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> AsyncEngine:
    url = make_url(database_url or settings.database_url)
    engine = create_async_engine(
        url,
        echo=settings.sql_echo if echo is None else echo,
        future=True,
    )
    if url.get_backend_name() == "sqlite":
        _install_sqlite_hooks(engine, settings.sqlite_journal_mode.upper())
    return engine


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


engine = build_engine()

AsyncSessionLocal = build_sessionmaker(engine)


async def get_db() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def transaction(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Scope one unit of work on the session.
    Commits on clean exit; rolls back on every exception path. Storage failures
    are re-raised as StorageError, service errors propagate unchanged.
    """
    try:
        yield db
        await db.commit()
    except ServiceError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Transaction rolled back: %s", e, exc_info=True)
        raise StorageError(str(e.orig) if getattr(e, "orig", None) is not None else str(e)) from e
    except BaseException:
        await db.rollback()
        raise
