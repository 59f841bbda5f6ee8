# =============================================================================
# Quality Assessment Agent — Scores, Grade, Alerts and Insights
# =============================================================================
#
# Turns CalculatedMetrics into a rating. Every rule is a fixed step
# function so the same metrics always produce the same rating.
#
#   accrual score       |accruals ratio| < .02 → 95, < .05 → 80, < .10 → 60, else 40
#   cash-flow score     CF/NI > 1.2 → 95, > 0.8 → 80, > 0.5 → 60, else 40
#   manipulation score  M < -3.0 → 95, < -2.22 → 80, < -1.78 → 60, else 40
#
#   overall = round(.35·accrual + .35·cash-flow + .30·manipulation), in [0, 100]
#   grade   = ≥85 EXCELLENT, ≥70 GOOD, ≥50 MODERATE, else POOR
#
# Confidence is a two-value signal (0.85 complete data, 0.70 otherwise),
# not a measure of data quality.
# =============================================================================

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from app.agents.calculation import CalculatedMetrics

logger = logging.getLogger(__name__)

ACCRUAL_WEIGHT = 0.35
CASH_FLOW_WEIGHT = 0.35
MANIPULATION_WEIGHT = 0.30

CONFIDENCE_COMPLETE = 0.85
CONFIDENCE_PARTIAL = 0.70

# Beneish's conventional manipulation cutoff
M_SCORE_THRESHOLD = -2.22


class Grade(str, enum.Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    MODERATE = "MODERATE"
    POOR = "POOR"


class Severity(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Rating:
    score: int
    grade: Grade
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "grade": self.grade.value,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class Alert:
    severity: Severity
    message: str
    metric: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "message": self.message,
            "metric": self.metric,
        }


@dataclass(frozen=True)
class Insights:
    accrual_quality: str
    cash_flow_quality: str
    manipulation_risk: str
    overall_assessment: str

    def to_dict(self) -> dict[str, str]:
        return {
            "accrualQuality": self.accrual_quality,
            "cashFlowQuality": self.cash_flow_quality,
            "manipulationRisk": self.manipulation_risk,
            "overallAssessment": self.overall_assessment,
        }


@dataclass(frozen=True)
class QualityAssessment:
    rating: Rating
    alerts: tuple[Alert, ...]
    insights: Insights

    def to_dict(self) -> dict[str, Any]:
        return {
            "rating": self.rating.to_dict(),
            "alerts": [a.to_dict() for a in self.alerts],
            "insights": self.insights.to_dict(),
        }


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def accrual_score(accruals_ratio: float) -> int:
    magnitude = abs(accruals_ratio)
    if magnitude < 0.02:
        return 95
    if magnitude < 0.05:
        return 80
    if magnitude < 0.10:
        return 60
    return 40


def cash_flow_score(cf_ni_ratio: float) -> int:
    if cf_ni_ratio > 1.2:
        return 95
    if cf_ni_ratio > 0.8:
        return 80
    if cf_ni_ratio > 0.5:
        return 60
    return 40


def manipulation_score(m_score: float) -> int:
    if m_score < -3.0:
        return 95
    if m_score < M_SCORE_THRESHOLD:
        return 80
    if m_score < -1.78:
        return 60
    return 40


def overall_score(accrual: int, cash_flow: int, manipulation: int) -> int:
    weighted = (
        accrual * ACCRUAL_WEIGHT
        + cash_flow * CASH_FLOW_WEIGHT
        + manipulation * MANIPULATION_WEIGHT
    )
    # Half-up rounding: Python's round() is banker's rounding (90.5 → 90)
    score = int(Decimal(repr(weighted)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return min(100, max(0, score))


def determine_grade(score: int) -> Grade:
    if score >= 85:
        return Grade.EXCELLENT
    if score >= 70:
        return Grade.GOOD
    if score >= 50:
        return Grade.MODERATE
    return Grade.POOR


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------


def generate_alerts(metrics: CalculatedMetrics) -> list[Alert]:
    """Data-completeness alert first, then accruals, cash flow, M-Score."""
    alerts: list[Alert] = []
    ratio_pct = f"{metrics.accruals_ratio * 100:.2f}%"
    cf_ni = f"{metrics.cf_ni_ratio:.2f}"
    m_score = f"{metrics.m_score:.2f}"

    if not metrics.has_all_data:
        message = "Some financial data was not available. Using estimates for missing values."
        if metrics.fallback_fields:
            message += f" Estimated: {', '.join(metrics.fallback_fields)}."
        alerts.append(Alert(Severity.WARNING, message, "Data Completeness"))

    if abs(metrics.accruals_ratio) > 0.10:
        alerts.append(Alert(
            Severity.ERROR,
            f"High accruals ratio of {ratio_pct} indicates potential earnings management",
            "Accruals Ratio",
        ))
    elif abs(metrics.accruals_ratio) > 0.05:
        alerts.append(Alert(
            Severity.WARNING,
            f"Moderate accruals ratio of {ratio_pct} warrants closer monitoring",
            "Accruals Ratio",
        ))
    else:
        alerts.append(Alert(
            Severity.INFO,
            f"Low accruals ratio of {ratio_pct} indicates earnings are well-backed by cash",
            "Accruals Ratio",
        ))

    if metrics.cf_ni_ratio < 0.5:
        alerts.append(Alert(
            Severity.ERROR,
            f"Poor cash conversion with CF/NI ratio of {cf_ni}",
            "Cash Flow Quality",
        ))
    elif metrics.cf_ni_ratio < 0.8:
        alerts.append(Alert(
            Severity.WARNING,
            f"Below-average cash conversion with CF/NI ratio of {cf_ni}",
            "Cash Flow Quality",
        ))
    elif metrics.cf_ni_ratio > 1.2:
        alerts.append(Alert(
            Severity.INFO,
            f"Excellent cash generation with CF/NI ratio of {cf_ni}",
            "Cash Flow Quality",
        ))

    if metrics.m_score > M_SCORE_THRESHOLD:
        alerts.append(Alert(
            Severity.WARNING,
            f"M-Score of {m_score} is above threshold, indicating higher manipulation risk",
            "Beneish M-Score",
        ))
    else:
        alerts.append(Alert(
            Severity.INFO,
            f"M-Score of {m_score} is well below threshold, indicating low manipulation risk",
            "Beneish M-Score",
        ))

    return alerts


# ---------------------------------------------------------------------------
# Insights
# ---------------------------------------------------------------------------


def _band(score: float) -> int:
    """0 for ≥85, 1 for ≥70, 2 for ≥50, 3 otherwise."""
    if score >= 85:
        return 0
    if score >= 70:
        return 1
    if score >= 50:
        return 2
    return 3


def generate_insights(
    metrics: CalculatedMetrics,
    accrual: int,
    cash_flow: int,
    manipulation: int,
) -> Insights:
    ratio_pct = f"{metrics.accruals_ratio * 100:.2f}%"
    cf_ni = f"{metrics.cf_ni_ratio:.2f}x"
    m_score = f"{metrics.m_score:.2f}"

    accrual_text = (
        f"Excellent accrual quality with {ratio_pct} ratio. Earnings are strongly backed by cash.",
        f"Good accrual quality with {ratio_pct} ratio. Earnings show reasonable cash backing.",
        f"Moderate accrual quality with {ratio_pct} ratio. Some divergence between earnings and cash.",
        f"Poor accrual quality with {ratio_pct} ratio. Significant gap between reported earnings and cash.",
    )[_band(accrual)]

    cash_flow_text = (
        f"Outstanding cash generation with {cf_ni} coverage. Operating cash flow exceeds net income.",
        f"Solid cash conversion with {cf_ni} coverage. Most earnings are converting to cash.",
        f"Adequate cash flow with {cf_ni} coverage. Some earnings not converting to cash.",
        f"Weak cash generation with {cf_ni} coverage. Earnings quality is questionable.",
    )[_band(cash_flow)]

    manipulation_text = (
        f"Very low manipulation risk with M-Score of {m_score}. No signs of earnings management detected.",
        f"Low manipulation risk with M-Score of {m_score}. Financial reporting appears reliable.",
        f"Moderate manipulation risk with M-Score of {m_score}. Some red flags present.",
        f"High manipulation risk with M-Score of {m_score}. Multiple warning signs detected.",
    )[_band(manipulation)]

    overall_text = (
        "Overall earnings quality is excellent. The company shows strong cash generation, "
        "low accruals, and no signs of manipulation. This is institutional-grade quality.",
        "Overall earnings quality is good. The company demonstrates solid fundamentals with "
        "minor areas for improvement. Suitable for most investment strategies.",
        "Overall earnings quality is moderate. Several yellow flags require monitoring. "
        "Consider additional due diligence before investment decisions.",
        "Overall earnings quality is poor. Multiple red flags indicate potential earnings "
        "management or financial distress. High-risk investment.",
    )[_band((accrual + cash_flow + manipulation) / 3)]

    return Insights(accrual_text, cash_flow_text, manipulation_text, overall_text)


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------


class QualityAssessmentAgent:
    def __init__(self, metrics: CalculatedMetrics) -> None:
        self._metrics = metrics

    def assess(self) -> QualityAssessment:
        metrics = self._metrics
        accrual = accrual_score(metrics.accruals_ratio)
        cash_flow = cash_flow_score(metrics.cf_ni_ratio)
        manipulation = manipulation_score(metrics.m_score)

        score = overall_score(accrual, cash_flow, manipulation)
        rating = Rating(
            score=score,
            grade=determine_grade(score),
            confidence=CONFIDENCE_COMPLETE if metrics.has_all_data else CONFIDENCE_PARTIAL,
        )

        logger.info(
            "Assessment: accrual=%d cash_flow=%d manipulation=%d → %d (%s)",
            accrual, cash_flow, manipulation, rating.score, rating.grade.value,
        )

        return QualityAssessment(
            rating=rating,
            alerts=tuple(generate_alerts(metrics)),
            insights=generate_insights(metrics, accrual, cash_flow, manipulation),
        )
