import asyncio
import logging
from typing import List

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

import campus_fees.core.models  # noqa: F401  registers the fee tables on Base.metadata
from campus_fees.db.session import Base, engine

logger = logging.getLogger(__name__)


# Dependency order: catalog -> assignments -> customizations, payments -> payment children.
REQUIRED_TABLES: List[str] = [
    "fee_structures",
    "student_fee_assignments",
    "fee_customizations",
    "student_payments",
    "payment_status_history",
    "payment_refunds",
    "fee_audit_logs",
]


async def ensure_tables(db_engine: AsyncEngine) -> List[str]:
    """
    Ensure every fee table exists in the connected database.
    Missing tables are created; existing ones are left untouched. Returns the created names.
    """
    async with db_engine.begin() as conn:
        existing = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
        missing = [name for name in REQUIRED_TABLES if name not in existing]
        if missing:
            tables = [Base.metadata.tables[name] for name in missing]
            await conn.run_sync(lambda sync_conn: Base.metadata.create_all(sync_conn, tables=tables))

    if missing:
        logger.info("Created missing tables: %s", ", ".join(missing))
    else:
        logger.info("All fee tables already exist in the database.")
    return missing


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    await ensure_tables(engine)


if __name__ == "__main__":
    asyncio.run(main())
