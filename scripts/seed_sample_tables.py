#!/usr/bin/env python3
"""
Load sample statement tables into the PostgreSQL table store.

Creates the `tables` table if needed and upserts every record from the
sample JSON, so the Postgres-backed endpoints have Samsung Electronics
data without running the upstream filing extractor.

Usage:
    uv run python scripts/seed_sample_tables.py
    uv run python scripts/seed_sample_tables.py path/to/tables.json

Figures are illustrative, in millions of KRW.
"""

import asyncio
import sys
from pathlib import Path

from sqlalchemy.dialects.postgresql import insert

from app.config import settings
from app.db.engine import async_engine
from app.db.models import Base, FinancialTable
from app.services.table_store import InMemoryTableStore


async def seed(path: Path) -> int:
    store = InMemoryTableStore.from_json_file(path)
    records = store.records

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

        for record in records:
            values = {
                "id": record.id,
                "corp_code": record.corp_code,
                "source_file": record.source_file,
                "page_number": record.page_number,
                "table_index": record.table_index,
                "data": record.data,
                "metadata": record.metadata,
            }
            stmt = insert(FinancialTable.__table__).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["id"],
                set_={
                    "data": stmt.excluded["data"],
                    "metadata": stmt.excluded["metadata"],
                    "source_file": stmt.excluded["source_file"],
                    "page_number": stmt.excluded["page_number"],
                },
            )
            await conn.execute(stmt)

    await async_engine.dispose()
    return len(records)


if __name__ == "__main__":
    source = Path(sys.argv[1] if len(sys.argv) > 1 else settings.sample_tables_path)
    count = asyncio.run(seed(source))
    print(f"Seeded {count} tables from {source}")
