# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# The statement tables are written by the upstream filing-extraction
# pipeline. One row per table found in a filing PDF.
#
# ┌──────────────────────────────────────────┐
# │  tables                                  │
# ├──────────────────────────────────────────┤
# │ id (PK, text)                            │
# │ corp_code (text, indexed)                │
# │ source_file (text)                       │
# │ page_number (int)                        │
# │ table_index (int)                        │
# │ data (jsonb)  — 2-D array of cells       │
# │ text_before / text_after / section       │
# │ metadata (jsonb) — titles, period bounds │
# │ created_at                               │
# └──────────────────────────────────────────┘
#
# `metadata` keys written upstream: statement_type, table_title,
# table_title_en, table_title_ko, period_start, period_end,
# search_keywords_en, search_keywords_ko, confidence.
# =============================================================================

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class FinancialTable(Base):
    """
    A single table extracted from a company filing.

    `data` holds the cell grid row by row; the first cell of each row is
    the line-item label and the last cell the most recent period.
    """

    __tablename__ = "tables"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # DART corporation code (e.g., "00126380" for Samsung Electronics)
    corp_code: Mapped[str] = mapped_column(String(20), nullable=False)

    # Filing the table was extracted from; sorts newest-first by name
    source_file: Mapped[str | None] = mapped_column(String(500), nullable=True)
    page_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    table_index: Mapped[int | None] = mapped_column(Integer, nullable=True)

    data: Mapped[Any] = mapped_column(JSONB, nullable=True)

    text_before: Mapped[str | None] = mapped_column(Text, nullable=True)
    text_after: Mapped[str | None] = mapped_column(Text, nullable=True)
    section: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Named `metadata_` to avoid collision with the declarative `.metadata`
    metadata_: Mapped[dict | None] = mapped_column(
        "metadata",
        JSONB,
        nullable=True,
        default=dict,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<FinancialTable(id='{self.id}', corp_code='{self.corp_code}', "
            f"source='{self.source_file}', page={self.page_number})>"
        )


# Every analysis filters by company first
financial_table_corp_idx = Index(
    "idx_tables_corp_code",
    FinancialTable.corp_code,
)
