# =============================================================================
# Unit Tests — Quality Assessment Agent
# =============================================================================

from __future__ import annotations

from app.agents.assessment import (
    Grade,
    QualityAssessmentAgent,
    Severity,
    accrual_score,
    cash_flow_score,
    determine_grade,
    generate_alerts,
    manipulation_score,
    overall_score,
)
from app.agents.calculation import compute_metrics

# ---------------------------------------------------------------------------
# Test: Sub-scores
# ---------------------------------------------------------------------------


class TestSubScores:
    def test_accrual_breakpoints(self):
        assert accrual_score(0.0) == 95
        assert accrual_score(0.0199) == 95
        assert accrual_score(0.02) == 80
        assert accrual_score(0.0499) == 80
        assert accrual_score(0.05) == 60
        assert accrual_score(0.0999) == 60
        assert accrual_score(0.10) == 40
        assert accrual_score(0.5) == 40

    def test_accrual_uses_magnitude(self):
        assert accrual_score(-0.03) == accrual_score(0.03) == 80

    def test_accrual_monotonic_in_magnitude(self):
        ratios = [0.0, 0.01, 0.02, 0.03, 0.05, 0.07, 0.10, 0.2]
        scores = [accrual_score(r) for r in ratios]
        assert scores == sorted(scores, reverse=True)
        assert set(scores) <= {95, 80, 60, 40}

    def test_cash_flow_breakpoints(self):
        assert cash_flow_score(1.21) == 95
        assert cash_flow_score(1.2) == 80
        assert cash_flow_score(0.81) == 80
        assert cash_flow_score(0.8) == 60
        assert cash_flow_score(0.51) == 60
        assert cash_flow_score(0.5) == 40
        assert cash_flow_score(-1.0) == 40

    def test_manipulation_breakpoints(self):
        assert manipulation_score(-3.5) == 95
        assert manipulation_score(-3.0) == 80
        assert manipulation_score(-2.23) == 80
        assert manipulation_score(-2.22) == 60
        assert manipulation_score(-1.79) == 60
        assert manipulation_score(-1.78) == 40


# ---------------------------------------------------------------------------
# Test: Overall Score and Grade
# ---------------------------------------------------------------------------


class TestOverallScore:
    def test_weighted_rounding(self):
        # 0.35*95 + 0.35*80 + 0.30*95 = 89.75
        assert overall_score(95, 80, 95) == 90

    def test_half_rounds_up(self):
        # 0.35*60 + 0.35*95 + 0.30*95 = 82.75; 0.35*40 + 0.35*40 + 0.30*95 = 56.5
        assert overall_score(60, 95, 95) == 83
        assert overall_score(40, 40, 95) == 57

    def test_bounds(self):
        assert overall_score(95, 95, 95) == 95
        assert overall_score(40, 40, 40) == 40
        for a in (95, 80, 60, 40):
            for c in (95, 80, 60, 40):
                for m in (95, 80, 60, 40):
                    assert 0 <= overall_score(a, c, m) <= 100

    def test_grade_lower_bounds_inclusive(self):
        assert determine_grade(85) == Grade.EXCELLENT
        assert determine_grade(84) == Grade.GOOD
        assert determine_grade(70) == Grade.GOOD
        assert determine_grade(69) == Grade.MODERATE
        assert determine_grade(50) == Grade.MODERATE
        assert determine_grade(49) == Grade.POOR


# ---------------------------------------------------------------------------
# Test: Alerts
# ---------------------------------------------------------------------------


class TestAlerts:
    def test_reference_metrics_alerts(self):
        alerts = generate_alerts(compute_metrics(36_519_534, 34_640_421, 456_789_012))

        assert [a.metric for a in alerts] == ["Accruals Ratio", "Beneish M-Score"]
        assert alerts[0].severity == Severity.INFO
        assert alerts[0].message == (
            "Low accruals ratio of 0.41% indicates earnings are well-backed by cash"
        )
        assert alerts[1].message == (
            "M-Score of -3.56 is well below threshold, indicating low manipulation risk"
        )

    def test_high_accruals_is_error(self):
        alerts = generate_alerts(compute_metrics(200, 50, 1000))
        accruals = next(a for a in alerts if a.metric == "Accruals Ratio")
        assert accruals.severity == Severity.ERROR
        assert "15.00%" in accruals.message

    def test_moderate_accruals_is_warning(self):
        alerts = generate_alerts(compute_metrics(100, 40, 1000))
        accruals = next(a for a in alerts if a.metric == "Accruals Ratio")
        assert accruals.severity == Severity.WARNING

    def test_poor_cash_conversion(self):
        alerts = generate_alerts(compute_metrics(100, 40, 10_000))
        cash = next(a for a in alerts if a.metric == "Cash Flow Quality")
        assert cash.severity == Severity.ERROR
        assert cash.message == "Poor cash conversion with CF/NI ratio of 0.40"

    def test_excellent_cash_generation(self):
        alerts = generate_alerts(compute_metrics(100, 150, 10_000))
        cash = next(a for a in alerts if a.metric == "Cash Flow Quality")
        assert cash.severity == Severity.INFO

    def test_high_m_score_warns(self):
        # Large positive accruals push TATA up
        alerts = generate_alerts(compute_metrics(900, 100, 1000))
        m_alert = next(a for a in alerts if a.metric == "Beneish M-Score")
        assert m_alert.severity == Severity.WARNING
        assert "above threshold" in m_alert.message

    def test_incomplete_data_alert_comes_first(self):
        metrics = compute_metrics(
            100, 90, 1000, fallback_fields=["net_income", "total_assets"],
        )
        alerts = generate_alerts(metrics)
        assert alerts[0].metric == "Data Completeness"
        assert alerts[0].severity == Severity.WARNING
        assert alerts[0].message.startswith(
            "Some financial data was not available. Using estimates for missing values."
        )
        assert "net_income, total_assets" in alerts[0].message


# ---------------------------------------------------------------------------
# Test: Agent
# ---------------------------------------------------------------------------


class TestQualityAssessmentAgent:
    def test_reference_example(self):
        assessment = QualityAssessmentAgent(
            compute_metrics(36_519_534, 34_640_421, 456_789_012),
        ).assess()

        assert assessment.rating.score == 90
        assert assessment.rating.grade == Grade.EXCELLENT
        assert assessment.rating.confidence == 0.85

    def test_deterministic(self):
        metrics = compute_metrics(24_471_213, 52_640_421, 485_757_127, 225_082_547, 26_233_103)
        first = QualityAssessmentAgent(metrics).assess()
        second = QualityAssessmentAgent(metrics).assess()
        assert first == second

    def test_partial_data_confidence(self):
        metrics = compute_metrics(100, 90, 1000, fallback_fields=["total_assets"])
        assert QualityAssessmentAgent(metrics).assess().rating.confidence == 0.70

    def test_insights_follow_bands(self):
        assessment = QualityAssessmentAgent(
            compute_metrics(36_519_534, 34_640_421, 456_789_012),
        ).assess()
        assert assessment.insights.accrual_quality.startswith("Excellent accrual quality")
        assert assessment.insights.cash_flow_quality.startswith("Solid cash conversion")
        assert assessment.insights.manipulation_risk.startswith("Very low manipulation risk")
        # Unweighted mean of 95, 80, 95 is 90
        assert assessment.insights.overall_assessment.startswith(
            "Overall earnings quality is excellent"
        )

    def test_to_dict(self):
        payload = QualityAssessmentAgent(compute_metrics(100, 90, 1000)).assess().to_dict()
        assert set(payload) == {"rating", "alerts", "insights"}
        assert payload["rating"]["grade"] in {"EXCELLENT", "GOOD", "MODERATE", "POOR"}
        assert "accrualQuality" in payload["insights"]
