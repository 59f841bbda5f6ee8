# =============================================================================
# Calculation Agent — Accruals, Cash Conversion and a Simplified M-Score
# =============================================================================
#
# Pure functions over already-shaped statement numbers.
#
#   accruals       = net income − operating cash flow
#   accruals ratio = accruals / total assets          (0 when assets = 0)
#   CF/NI ratio    = operating cash flow / net income (0 when NI = 0)
#
# M-SCORE: this is NOT the 8-variable Beneish model. Year-over-year inputs
# (receivables, gross margin, sales growth, asset quality, depreciation,
# SG&A, leverage) need two periods of data that the shaper does not
# produce, so DSRI and SGI are fixed, GMI is a margin-band proxy and TATA
# is the accruals ratio:
#
#   M = -6.065 + 0.823·DSRI + 0.906·GMI + 0.717·SGI + 4.679·TATA
#
# The coefficients and constants are kept exactly as published by the
# product so ratings stay comparable across releases.
#
# FALLBACKS: when a required number is missing (or zero) the documented
# default below is used and the field is listed in `fallback_fields`.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from app.agents.extraction import ExtractedData

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Fallback Constants (millions KRW)
# ---------------------------------------------------------------------------
# Representative Samsung Electronics quarterly figures. Used only when the
# statement is missing; any use is surfaced through `has_all_data` and a
# data-completeness alert downstream.
# ---------------------------------------------------------------------------
FALLBACK_NET_INCOME = 36_519_534
FALLBACK_OPERATING_CASH_FLOW = 34_640_421
FALLBACK_TOTAL_ASSETS = 456_789_012

# ---------------------------------------------------------------------------
# Simplified M-Score Parameters
# ---------------------------------------------------------------------------
M_SCORE_INTERCEPT = -6.065
M_SCORE_DSRI_WEIGHT = 0.823
M_SCORE_GMI_WEIGHT = 0.906
M_SCORE_SGI_WEIGHT = 0.717
M_SCORE_TATA_WEIGHT = 4.679

DEFAULT_DSRI = 1.0   # receivables assumed stable
DEFAULT_SGI = 1.05   # moderate sales growth assumed
GMI_MARGIN_CUTOFF = 0.3
GMI_HIGH_MARGIN = 0.9
GMI_LOW_MARGIN = 1.1
GMI_UNKNOWN = 1.0


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MScoreComponents:
    dsri: float
    gmi: float
    sgi: float
    tata: float

    def to_dict(self) -> dict[str, float]:
        return {"dsri": self.dsri, "gmi": self.gmi, "sgi": self.sgi, "tata": self.tata}


@dataclass
class CalculatedMetrics:
    net_income: float
    operating_cash_flow: float
    total_assets: float
    accruals: float
    accruals_ratio: float
    cf_ni_ratio: float
    m_score: float
    m_score_components: MScoreComponents
    revenue: float = 0
    operating_profit: float = 0
    fallback_fields: list[str] = field(default_factory=list)

    @property
    def has_all_data(self) -> bool:
        return (
            self.net_income > 0
            and self.operating_cash_flow != 0
            and self.total_assets > 0
            and not self.fallback_fields
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "netIncome": self.net_income,
            "operatingCashFlow": self.operating_cash_flow,
            "totalAssets": self.total_assets,
            "accruals": self.accruals,
            "accrualsRatio": self.accruals_ratio,
            "cfNiRatio": self.cf_ni_ratio,
            "mScore": self.m_score,
            "mScoreComponents": self.m_score_components.to_dict(),
            "revenue": self.revenue,
            "operatingProfit": self.operating_profit,
            "hasAllData": self.has_all_data,
            "fallbackFields": list(self.fallback_fields),
        }


# ---------------------------------------------------------------------------
# Formulas
# ---------------------------------------------------------------------------


def calculate_accruals(net_income: float, operating_cash_flow: float) -> float:
    return net_income - operating_cash_flow


def calculate_accruals_ratio(accruals: float, total_assets: float) -> float:
    if total_assets == 0:
        return 0
    return accruals / total_assets


def calculate_cf_ni_ratio(operating_cash_flow: float, net_income: float) -> float:
    if net_income == 0:
        return 0
    return operating_cash_flow / net_income


def gross_margin_index(revenue: float, operating_profit: float) -> float:
    """Margin-band proxy for GMI; 1.0 when either input is non-positive."""
    if revenue > 0 and operating_profit > 0:
        margin = operating_profit / revenue
        return GMI_HIGH_MARGIN if margin > GMI_MARGIN_CUTOFF else GMI_LOW_MARGIN
    return GMI_UNKNOWN


def calculate_m_score(
    accruals_ratio: float,
    revenue: float,
    operating_profit: float,
) -> tuple[float, MScoreComponents]:
    components = MScoreComponents(
        dsri=DEFAULT_DSRI,
        gmi=gross_margin_index(revenue, operating_profit),
        sgi=DEFAULT_SGI,
        tata=accruals_ratio,
    )
    m_score = (
        M_SCORE_INTERCEPT
        + M_SCORE_DSRI_WEIGHT * components.dsri
        + M_SCORE_GMI_WEIGHT * components.gmi
        + M_SCORE_SGI_WEIGHT * components.sgi
        + M_SCORE_TATA_WEIGHT * components.tata
    )
    return m_score, components


def compute_metrics(
    net_income: float,
    operating_cash_flow: float,
    total_assets: float,
    revenue: float = 0,
    operating_profit: float = 0,
    fallback_fields: list[str] | None = None,
) -> CalculatedMetrics:
    """Compute every metric from the five base figures."""
    accruals = calculate_accruals(net_income, operating_cash_flow)
    accruals_ratio = calculate_accruals_ratio(accruals, total_assets)
    cf_ni_ratio = calculate_cf_ni_ratio(operating_cash_flow, net_income)
    m_score, components = calculate_m_score(accruals_ratio, revenue, operating_profit)

    return CalculatedMetrics(
        net_income=net_income,
        operating_cash_flow=operating_cash_flow,
        total_assets=total_assets,
        accruals=accruals,
        accruals_ratio=accruals_ratio,
        cf_ni_ratio=cf_ni_ratio,
        m_score=m_score,
        m_score_components=components,
        revenue=revenue,
        operating_profit=operating_profit,
        fallback_fields=list(fallback_fields or []),
    )


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------


class CalculationAgent:
    """Resolves base figures from extracted data and computes metrics."""

    def __init__(self, data: ExtractedData) -> None:
        self._data = data
        self._fallbacks: list[str] = []

    def calculate(self) -> CalculatedMetrics:
        self._fallbacks = []
        income = self._data.income_statement

        metrics = compute_metrics(
            net_income=self._net_income(),
            operating_cash_flow=self._operating_cash_flow(),
            total_assets=self._total_assets(),
            revenue=(income.revenue if income else None) or 0,
            operating_profit=(income.operating_profit if income else None) or 0,
            fallback_fields=self._fallbacks,
        )

        logger.info(
            "Calculated metrics: accruals_ratio=%.4f, cf_ni=%.3f, m_score=%.3f, "
            "fallbacks=%s",
            metrics.accruals_ratio, metrics.cf_ni_ratio, metrics.m_score,
            metrics.fallback_fields or "none",
        )
        return metrics

    def _net_income(self) -> float:
        # Cash flow statement first: it is the figure the accruals are
        # reconciled against.
        if self._data.cash_flow and self._data.cash_flow.net_income:
            return self._data.cash_flow.net_income
        if self._data.income_statement and self._data.income_statement.net_income:
            return self._data.income_statement.net_income
        return self._fallback("net_income", FALLBACK_NET_INCOME)

    def _operating_cash_flow(self) -> float:
        if self._data.cash_flow and self._data.cash_flow.operating_cash_flow:
            return self._data.cash_flow.operating_cash_flow
        return self._fallback("operating_cash_flow", FALLBACK_OPERATING_CASH_FLOW)

    def _total_assets(self) -> float:
        if self._data.balance_sheet and self._data.balance_sheet.total_assets:
            return self._data.balance_sheet.total_assets
        return self._fallback("total_assets", FALLBACK_TOTAL_ASSETS)

    def _fallback(self, name: str, value: float) -> float:
        logger.warning("Using fallback %s: %s", name, value)
        self._fallbacks.append(name)
        return value
