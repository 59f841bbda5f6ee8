# =============================================================================
# Data Extraction Agent — Statement Tables → Named Numeric Fields
# =============================================================================
#
# Pulls candidate tables for each statement category from the table store
# and shapes them into the handful of numbers the calculation agent needs.
#
# SHAPING RULES:
# 1. Tables are scanned in store order (newest filing first); the first
#    table yielding ANY target field wins for its category.
# 2. Each row's first cell is the line-item label, matched bilingually
#    against fixed keywords; its LAST cell (most recent period) is parsed.
# 3. Within one table a later matching row overwrites an earlier one.
# 4. Unparsable values are None, never 0. A category with no usable table
#    is None as a whole; the calculation agent decides what to do then.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from app.config import settings
from app.services.table_store import StatementCategory, TableRecord, TableStore

logger = logging.getLogger(__name__)

_NUMBER_PREFIX = re.compile(r"^-?(?:\d+(?:\.\d*)?|\.\d+)")
_NON_NUMERIC = re.compile(r"[^\d\-.,()]")


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class CashFlowData:
    net_income: float | None
    operating_cash_flow: float | None
    period: str
    source: str
    page_number: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "netIncome": self.net_income,
            "operatingCashFlow": self.operating_cash_flow,
            "period": self.period,
            "source": self.source,
            "pageNumber": self.page_number,
        }


@dataclass
class IncomeStatementData:
    revenue: float | None
    operating_profit: float | None
    net_income: float | None
    period: str
    source: str
    page_number: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "revenue": self.revenue,
            "operatingProfit": self.operating_profit,
            "netIncome": self.net_income,
            "period": self.period,
            "source": self.source,
            "pageNumber": self.page_number,
        }


@dataclass
class BalanceSheetData:
    total_assets: float | None
    total_liabilities: float | None
    total_equity: float | None
    period: str
    source: str
    page_number: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalAssets": self.total_assets,
            "totalLiabilities": self.total_liabilities,
            "totalEquity": self.total_equity,
            "period": self.period,
            "source": self.source,
            "pageNumber": self.page_number,
        }


@dataclass
class ExtractedData:
    """Shaped statement data plus every raw table that was consulted."""

    cash_flow: CashFlowData | None = None
    income_statement: IncomeStatementData | None = None
    balance_sheet: BalanceSheetData | None = None
    raw_tables: list[TableRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "cashFlow": self.cash_flow.to_dict() if self.cash_flow else None,
            "incomeStatement": (
                self.income_statement.to_dict() if self.income_statement else None
            ),
            "balanceSheet": (
                self.balance_sheet.to_dict() if self.balance_sheet else None
            ),
            "rawTables": [t.to_dict() for t in self.raw_tables],
        }


# ---------------------------------------------------------------------------
# Numeric Parsing
# ---------------------------------------------------------------------------


def parse_number(value: Any) -> float | None:
    """
    Parse a statement cell into a number.

    "1,234" → 1234.0, "(1,234)" → -1234.0, "₩ 5.5" → 5.5, "-" → None.
    Only the leading numeric part counts once the cell is cleaned.
    """
    if value is None:
        return None

    text = _NON_NUMERIC.sub("", str(value))

    # Accounting notation: parentheses mean negative
    if "(" in text and ")" in text:
        text = "-" + text.replace("(", "").replace(")", "")

    text = text.replace(",", "")

    match = _NUMBER_PREFIX.match(text)
    if match is None:
        return None
    return float(match.group(0))


# ---------------------------------------------------------------------------
# Label Matchers
# ---------------------------------------------------------------------------
# Labels are lowercased once; Korean is unaffected by lowercasing so a
# single string serves both languages.
# ---------------------------------------------------------------------------

LabelMatcher = Callable[[str], bool]


def _any_of(*keywords: str) -> LabelMatcher:
    return lambda label: any(k in label for k in keywords)


def _operating_cash_flow(label: str) -> bool:
    return (
        "operating activities" in label
        or "cash flows from operating" in label
        or ("영업활동" in label and "현금흐름" in label)
    )


CASH_FLOW_FIELDS: dict[str, LabelMatcher] = {
    "net_income": _any_of("net income", "당기순이익"),
    "operating_cash_flow": _operating_cash_flow,
}

INCOME_STATEMENT_FIELDS: dict[str, LabelMatcher] = {
    "revenue": _any_of("revenue", "sales", "매출액", "매출"),
    "operating_profit": _any_of("operating profit", "operating income", "영업이익"),
    "net_income": _any_of("net income", "net profit", "당기순이익"),
}

BALANCE_SHEET_FIELDS: dict[str, LabelMatcher] = {
    "total_assets": _any_of("total assets", "자산총계"),
    "total_liabilities": _any_of("total liabilities", "부채총계"),
    "total_equity": _any_of("total equity", "total shareholders", "자본총계"),
}


# ---------------------------------------------------------------------------
# Table Shaping
# ---------------------------------------------------------------------------


def _scan_tables(
    tables: list[TableRecord],
    fields: dict[str, LabelMatcher],
) -> tuple[dict[str, float | None], TableRecord] | None:
    """Return the field values of the first table that yields any of them."""
    for table in tables:
        if not isinstance(table.data, list):
            continue

        values: dict[str, float | None] = dict.fromkeys(fields)
        for row in table.data:
            if not isinstance(row, list) or len(row) < 2:
                continue
            label = str(row[0]).lower()
            for name, matches in fields.items():
                if matches(label):
                    values[name] = parse_number(row[-1])

        if any(v is not None for v in values.values()):
            return values, table

    return None


def _provenance(table: TableRecord) -> dict[str, Any]:
    return {
        "period": table.metadata.get("period_end") or "Latest",
        "source": table.source_file or "Unknown",
        "page_number": table.page_number or 0,
    }


def shape_cash_flow(tables: list[TableRecord]) -> CashFlowData | None:
    found = _scan_tables(tables, CASH_FLOW_FIELDS)
    if found is None:
        return None
    values, table = found
    return CashFlowData(**values, **_provenance(table))


def shape_income_statement(tables: list[TableRecord]) -> IncomeStatementData | None:
    found = _scan_tables(tables, INCOME_STATEMENT_FIELDS)
    if found is None:
        return None
    values, table = found
    return IncomeStatementData(**values, **_provenance(table))


def shape_balance_sheet(tables: list[TableRecord]) -> BalanceSheetData | None:
    found = _scan_tables(tables, BALANCE_SHEET_FIELDS)
    if found is None:
        return None
    values, table = found
    return BalanceSheetData(**values, **_provenance(table))


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------


class DataExtractionAgent:
    """Fetches and shapes the three statements for one company."""

    def __init__(
        self,
        corp_code: str,
        store: TableStore,
        limit: int | None = None,
    ) -> None:
        self.corp_code = corp_code
        self._store = store
        self._limit = limit or settings.table_fetch_limit

    async def extract(self) -> ExtractedData:
        logger.info("Starting extraction for corp_code=%s", self.corp_code)

        cash_flow_tables, income_tables, balance_tables = await asyncio.gather(
            self._store.fetch_tables(
                self.corp_code, StatementCategory.CASH_FLOW, self._limit,
            ),
            self._store.fetch_tables(
                self.corp_code, StatementCategory.INCOME_STATEMENT, self._limit,
            ),
            self._store.fetch_tables(
                self.corp_code, StatementCategory.BALANCE_SHEET, self._limit,
            ),
        )

        data = ExtractedData(
            cash_flow=shape_cash_flow(cash_flow_tables),
            income_statement=shape_income_statement(income_tables),
            balance_sheet=shape_balance_sheet(balance_tables),
            raw_tables=[*cash_flow_tables, *income_tables, *balance_tables],
        )

        logger.info(
            "Extraction complete: %d tables (cash_flow=%s, income=%s, balance=%s)",
            len(data.raw_tables),
            data.cash_flow is not None,
            data.income_statement is not None,
            data.balance_sheet is not None,
        )
        return data
