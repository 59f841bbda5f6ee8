# =============================================================================
# Table Store — Statement Table Lookup Behind a Protocol
# =============================================================================
#
# The Data Extraction agent asks the table store for the most recent tables
# that look like a given statement (cash flow, income statement, balance
# sheet) for one company. Matching is a loose ILIKE over the table titles
# and the serialised cell grid, so Korean and English filings both match.
#
# ARCHITECTURE:
#   TableStore (Protocol)
#   ├── PostgresTableStore  SQLAlchemy async query over the `tables` table
#   └── InMemoryTableStore  same filter semantics in Python (tests, demos)
#
# Both return TableRecord dataclasses so the Data Shaper never touches ORM
# objects or open sessions.
# =============================================================================

from __future__ import annotations

import enum
import json
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from sqlalchemy import Text, cast, or_, select

from app.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


class StatementCategory(str, enum.Enum):
    CASH_FLOW = "cash_flow"
    INCOME_STATEMENT = "income_statement"
    BALANCE_SHEET = "balance_sheet"


@dataclass(frozen=True)
class CategoryFilter:
    """ILIKE patterns; a table matches if ANY pattern matches."""

    title_en: tuple[str, ...] = ()
    title_ko: tuple[str, ...] = ()
    data: tuple[str, ...] = ()


CATEGORY_FILTERS: dict[StatementCategory, CategoryFilter] = {
    StatementCategory.CASH_FLOW: CategoryFilter(
        title_en=("%cash%flow%",),
        title_ko=("%현금%흐름%",),
        data=("%영업활동%현금%", "%당기순이익%"),
    ),
    StatementCategory.INCOME_STATEMENT: CategoryFilter(
        title_en=("%income%statement%", "%comprehensive%income%"),
        title_ko=("%손익%계산%",),
        data=("%매출액%", "%영업이익%"),
    ),
    StatementCategory.BALANCE_SHEET: CategoryFilter(
        title_en=("%balance%sheet%", "%financial%position%"),
        title_ko=("%재무%상태%",),
        data=("%자산총계%", "%부채총계%"),
    ),
}


@dataclass
class TableRecord:
    """A raw statement table as returned by the table store."""

    id: str
    corp_code: str
    data: Any
    source_file: str | None = None
    page_number: int | None = None
    table_index: int | None = None
    metadata: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict) -> TableRecord:
        return cls(
            id=str(raw["id"]),
            corp_code=raw["corp_code"],
            data=raw.get("data"),
            source_file=raw.get("source_file"),
            page_number=raw.get("page_number"),
            table_index=raw.get("table_index"),
            metadata=raw.get("metadata") or {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "corp_code": self.corp_code,
            "source_file": self.source_file,
            "page_number": self.page_number,
            "table_index": self.table_index,
            "metadata": self.metadata,
            "data": self.data,
        }


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class TableStore(Protocol):
    """Read access to extracted statement tables."""

    async def fetch_tables(
        self,
        corp_code: str,
        category: StatementCategory,
        limit: int = 10,
    ) -> list[TableRecord]:
        """
        Return up to `limit` tables for `corp_code` matching `category`.

        Ordered newest filing first (source_file descending), then by page.
        """
        ...


# ---------------------------------------------------------------------------
# Implementation 1: PostgreSQL
# ---------------------------------------------------------------------------


class PostgresTableStore:
    """
    Table store backed by the `tables` table.

    Title filters read `metadata->>'table_title_en'` / `_ko`; data filters
    match against `data::text`, which renders Korean labels unescaped.
    """

    async def fetch_tables(
        self,
        corp_code: str,
        category: StatementCategory,
        limit: int = 10,
    ) -> list[TableRecord]:
        from app.db.engine import async_session_factory
        from app.db.models import FinancialTable

        patterns = CATEGORY_FILTERS[category]
        conditions = [
            *(
                FinancialTable.metadata_["table_title_en"].astext.ilike(p)
                for p in patterns.title_en
            ),
            *(
                FinancialTable.metadata_["table_title_ko"].astext.ilike(p)
                for p in patterns.title_ko
            ),
            *(cast(FinancialTable.data, Text).ilike(p) for p in patterns.data),
        ]

        stmt = (
            select(FinancialTable)
            .where(FinancialTable.corp_code == corp_code)
            .where(or_(*conditions))
            .order_by(
                FinancialTable.source_file.desc(),
                FinancialTable.page_number.asc(),
            )
            .limit(limit)
        )

        async with async_session_factory() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()

        logger.debug(
            "Fetched %d %s tables for corp_code=%s",
            len(rows), category.value, corp_code,
        )

        return [
            TableRecord(
                id=row.id,
                corp_code=row.corp_code,
                data=row.data,
                source_file=row.source_file,
                page_number=row.page_number,
                table_index=row.table_index,
                metadata=row.metadata_ or {},
            )
            for row in rows
        ]


# ---------------------------------------------------------------------------
# Implementation 2: In-Memory
# ---------------------------------------------------------------------------


class InMemoryTableStore:
    """
    Table store over a list of TableRecord objects.

    Reproduces the Postgres ILIKE matching and ordering so the agents behave
    identically without a database.
    """

    def __init__(self, records: Iterable[TableRecord] = ()) -> None:
        self._records: list[TableRecord] = list(records)

    @classmethod
    def from_json_file(cls, path: str | Path) -> InMemoryTableStore:
        """Load records from a JSON array of table dicts."""
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        store = cls(TableRecord.from_dict(item) for item in raw)
        logger.info("Loaded %d tables from %s", len(store._records), path)
        return store

    @property
    def records(self) -> list[TableRecord]:
        return list(self._records)

    async def fetch_tables(
        self,
        corp_code: str,
        category: StatementCategory,
        limit: int = 10,
    ) -> list[TableRecord]:
        patterns = CATEGORY_FILTERS[category]
        matches = [
            r for r in self._records
            if r.corp_code == corp_code and _matches_filter(r, patterns)
        ]
        # Two stable sorts: page ascending, then source_file descending
        matches.sort(key=lambda r: r.page_number or 0)
        matches.sort(key=lambda r: r.source_file or "", reverse=True)
        return matches[:limit]


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

_store: PostgresTableStore | InMemoryTableStore | None = None


def get_table_store() -> PostgresTableStore | InMemoryTableStore:
    """
    Return the configured table store (lazy singleton).

    - "memory" → InMemoryTableStore loaded from settings.sample_tables_path
    - anything else → PostgresTableStore
    """
    global _store
    if _store is None:
        if settings.table_store_type == "memory":
            logger.info("Using in-memory table store")
            _store = InMemoryTableStore.from_json_file(settings.sample_tables_path)
        else:
            logger.info("Using PostgreSQL table store")
            _store = PostgresTableStore()
    return _store


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _ilike(pattern: str, value: str | None) -> bool:
    """SQL ILIKE with `%` wildcards (no `_` support; filters don't use it)."""
    if value is None:
        return False
    regex = ".*".join(re.escape(part) for part in pattern.split("%"))
    return re.fullmatch(regex, value, flags=re.IGNORECASE | re.DOTALL) is not None


def _matches_filter(record: TableRecord, patterns: CategoryFilter) -> bool:
    title_en = record.metadata.get("table_title_en")
    title_ko = record.metadata.get("table_title_ko")
    data_text = json.dumps(record.data, ensure_ascii=False) if record.data is not None else None

    return (
        any(_ilike(p, title_en) for p in patterns.title_en)
        or any(_ilike(p, title_ko) for p in patterns.title_ko)
        or any(_ilike(p, data_text) for p in patterns.data)
    )
