"""Create the billing schema in the configured store and stamp its version."""

import asyncio
import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

import school_billing.core.models  # noqa: F401  registers tables on Base.metadata
from school_billing.db.session import Base, engine as default_engine

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

REQUIRED_TABLES = [
    "students",
    "departments",
    "student_departments",
    "bill_items",
    "bills",
    "bill_item_relations",
    "payments",
]


async def get_schema_version(engine: AsyncEngine) -> int:
    async with engine.connect() as conn:
        result = await conn.execute(text("PRAGMA user_version"))
        return int(result.scalar() or 0)


async def init_db(engine: Optional[AsyncEngine] = None) -> bool:
    """
    Create all tables and indexes if the stored schema version is behind.
    Returns True when the schema was (re)created, False when it was already current.
    """
    engine = engine or default_engine
    current = await get_schema_version(engine)
    if current >= SCHEMA_VERSION:
        logger.info("Database already at schema version %s", current)
        return False

    logger.info("Initializing database schema version %s", SCHEMA_VERSION)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.exec_driver_sql(f"PRAGMA user_version = {SCHEMA_VERSION}")
    logger.info("Database initialization complete")
    return True


async def missing_tables(engine: Optional[AsyncEngine] = None) -> list:
    engine = engine or default_engine
    async with engine.connect() as conn:
        result = await conn.execute(text("SELECT name FROM sqlite_master WHERE type = 'table'"))
        existing = {row[0] for row in result.all()}
    return [t for t in REQUIRED_TABLES if t not in existing]


async def main() -> None:
    from school_billing.core.logging_config import configure_logging

    configure_logging()
    await init_db()
    missing = await missing_tables()
    if missing:
        raise SystemExit(f"Missing tables after init: {', '.join(missing)}")


if __name__ == "__main__":
    asyncio.run(main())
