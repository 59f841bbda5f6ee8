# =============================================================================
# Unit Tests — Requirement Extraction and LLM Providers
# =============================================================================
#
# Keyword rules, entity extraction and the LLM analyzer. The LLM is always
# an AsyncMock; no API keys or network access needed.
# =============================================================================

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from app.agents.requirements import (
    ANALYSIS_CONFIDENCE,
    INTENT,
    REQ_ACCRUALS,
    REQ_CF_NI,
    REQ_EARNINGS_QUALITY,
    REQ_M_SCORE,
    REQ_ONE_TIME,
    REQ_RATING,
    REQ_RISKS,
    UNKNOWN_COMPANY,
    LLMQueryAnalyzer,
    RuleBasedQueryAnalyzer,
    build_analysis,
    extract_company,
    extract_metrics,
    extract_requirements,
    extract_timeframe,
    get_query_analyzer,
)
from app.agents.types import Complexity
from app.services.llm import (
    AnthropicProvider,
    LLMResponse,
    OpenAICompatibleProvider,
)

FULL_QUERY = (
    "Analyze Samsung Electronics' earnings quality. Check for red flags in "
    "accruals, compare cash flow to net income, identify one-time items, "
    "calculate the Beneish M-Score, and give me a quality rating with any "
    "specific concerns."
)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _llm_returning(content: str) -> AsyncMock:
    llm = AsyncMock()
    llm.complete.return_value = LLMResponse(
        content=content, model="mock", input_tokens=10, output_tokens=20,
    )
    return llm


# ---------------------------------------------------------------------------
# Test: Keyword Rules
# ---------------------------------------------------------------------------


class TestExtractRequirements:
    def test_full_question_hits_every_rule_in_order(self):
        assert extract_requirements(FULL_QUERY) == [
            REQ_EARNINGS_QUALITY,
            REQ_ACCRUALS,
            REQ_CF_NI,
            REQ_ONE_TIME,
            REQ_M_SCORE,
            REQ_RATING,
            REQ_RISKS,
        ]

    def test_case_insensitive(self):
        assert extract_requirements("BENEISH please") == [REQ_M_SCORE]

    def test_single_keyword(self):
        assert extract_requirements("How large are the accruals?") == [REQ_ACCRUALS]

    def test_no_keywords(self):
        assert extract_requirements("Hello there") == []

    def test_each_requirement_once(self):
        reqs = extract_requirements("cash flow and net income and cash flow again")
        assert reqs == [REQ_CF_NI]


class TestEntities:
    def test_company_by_english_name(self):
        assert extract_company(FULL_QUERY) == "Samsung Electronics"

    def test_company_by_alias(self):
        assert extract_company("what about hynix?") == "SK Hynix"

    def test_company_by_korean_name(self):
        assert extract_company("삼성전자 이익의 질") == "Samsung Electronics"

    def test_unknown_company(self):
        assert extract_company("Analyze the accruals") == UNKNOWN_COMPANY

    def test_metrics_in_keyword_order(self):
        assert extract_metrics("net income, accruals and revenue") == [
            "accruals", "net_income", "revenue",
        ]

    def test_timeframe(self):
        assert extract_timeframe("latest quarterly numbers") == "quarterly"
        assert extract_timeframe("the ANNUAL report") == "annual"
        assert extract_timeframe("no period given") == "latest"


class TestBuildAnalysis:
    def test_fields(self):
        analysis = build_analysis(FULL_QUERY, extract_requirements(FULL_QUERY))

        assert analysis.intent == INTENT
        assert analysis.confidence == ANALYSIS_CONFIDENCE
        assert analysis.complexity == Complexity.COMPLEX
        assert analysis.entities.company == "Samsung Electronics"
        assert "m_score" in analysis.entities.metrics

    def test_complexity_thresholds(self):
        assert build_analysis("q", [REQ_ACCRUALS, REQ_CF_NI]).complexity == Complexity.SIMPLE
        assert build_analysis(
            "q", [REQ_ACCRUALS, REQ_CF_NI, REQ_M_SCORE],
        ).complexity == Complexity.MODERATE

    def test_confirmed_requirements_are_kept_verbatim(self):
        analysis = build_analysis(FULL_QUERY, [REQ_M_SCORE])
        assert analysis.requirements == (REQ_M_SCORE,)

    def test_explicit_entities_win(self):
        analysis = build_analysis(FULL_QUERY, [], company="SK Hynix", timeframe="annual")
        assert analysis.entities.company == "SK Hynix"
        assert analysis.entities.timeframe == "annual"

    def test_to_dict(self):
        payload = build_analysis("quarterly accruals", [REQ_ACCRUALS]).to_dict()
        assert payload == {
            "intent": INTENT,
            "requirements": [REQ_ACCRUALS],
            "entities": {
                "company": UNKNOWN_COMPANY,
                "metrics": ["accruals"],
                "timeframe": "quarterly",
            },
            "complexity": "simple",
            "confidence": ANALYSIS_CONFIDENCE,
        }


class TestRuleBasedQueryAnalyzer:
    def test_analyze(self):
        analysis = _run(RuleBasedQueryAnalyzer().analyze(FULL_QUERY))
        assert len(analysis.requirements) == 7


# ---------------------------------------------------------------------------
# Test: LLM Analyzer
# ---------------------------------------------------------------------------


class TestLLMQueryAnalyzer:
    def test_selection_filtered_to_catalog_in_catalog_order(self):
        llm = _llm_returning(json.dumps({
            "requirements": [REQ_M_SCORE, "Predict the share price", REQ_ACCRUALS],
            "company": "Samsung Electronics",
            "timeframe": "annual",
        }))
        analysis = _run(LLMQueryAnalyzer(llm).analyze("How good are the earnings?"))

        assert analysis.requirements == (REQ_ACCRUALS, REQ_M_SCORE)
        assert analysis.entities.company == "Samsung Electronics"
        assert analysis.entities.timeframe == "annual"

    def test_prompt_lists_catalog(self):
        llm = _llm_returning(json.dumps({"requirements": [REQ_RATING]}))
        _run(LLMQueryAnalyzer(llm).analyze("rate them"))

        kwargs = llm.complete.call_args.kwargs
        assert kwargs["temperature"] == 0.0
        assert kwargs["messages"] == [{"role": "user", "content": "rate them"}]
        assert REQ_ONE_TIME in kwargs["system"]

    def test_code_fence_is_stripped(self):
        llm = _llm_returning(
            "```json\n" + json.dumps({"requirements": [REQ_CF_NI]}) + "\n```"
        )
        analysis = _run(LLMQueryAnalyzer(llm).analyze("anything"))
        assert analysis.requirements == (REQ_CF_NI,)

    def test_invalid_json_falls_back_to_rules(self):
        llm = _llm_returning("I think you want accruals")
        analysis = _run(LLMQueryAnalyzer(llm).analyze("check the accruals"))
        assert analysis.requirements == (REQ_ACCRUALS,)

    def test_non_object_json_falls_back_to_rules(self):
        llm = _llm_returning("[1, 2, 3]")
        analysis = _run(LLMQueryAnalyzer(llm).analyze("beneish"))
        assert analysis.requirements == (REQ_M_SCORE,)

    def test_provider_error_falls_back_to_rules(self):
        llm = AsyncMock()
        llm.complete.side_effect = RuntimeError("connection reset")
        analysis = _run(LLMQueryAnalyzer(llm).analyze("beneish"))
        assert analysis.requirements == (REQ_M_SCORE,)

    def test_empty_selection_falls_back_to_rules(self):
        llm = _llm_returning(json.dumps({"requirements": ["Not in catalog"]}))
        analysis = _run(LLMQueryAnalyzer(llm).analyze("earnings quality please"))
        assert analysis.requirements == (REQ_EARNINGS_QUALITY,)

    def test_unknown_company_and_timeframe_use_rules(self):
        llm = _llm_returning(json.dumps({
            "requirements": [REQ_ACCRUALS],
            "company": "Acme Widgets",
            "timeframe": "monthly",
        }))
        analysis = _run(LLMQueryAnalyzer(llm).analyze("quarterly accruals for hynix"))
        assert analysis.entities.company == "SK Hynix"
        assert analysis.entities.timeframe == "quarterly"


# ---------------------------------------------------------------------------
# Test: Factories
# ---------------------------------------------------------------------------


class TestGetQueryAnalyzer:
    def test_rules(self):
        with patch("app.agents.requirements.settings") as mock_settings:
            mock_settings.llm_provider = "rules"
            assert isinstance(get_query_analyzer(), RuleBasedQueryAnalyzer)

    def test_llm(self):
        llm = AsyncMock()
        with patch("app.agents.requirements.settings") as mock_settings, patch(
            "app.agents.requirements.get_llm_provider", return_value=llm,
        ):
            mock_settings.llm_provider = "anthropic"
            analyzer = get_query_analyzer()
        assert isinstance(analyzer, LLMQueryAnalyzer)


class TestProviders:
    def test_anthropic_requires_key(self):
        with patch("app.services.llm.settings") as mock_settings:
            mock_settings.llm_api_key = None
            mock_settings.anthropic_api_key = ""
            with pytest.raises(ValueError, match="API key"):
                AnthropicProvider()

    def test_openai_compatible_requires_key(self):
        with patch("app.services.llm.settings") as mock_settings:
            mock_settings.llm_api_key = None
            mock_settings.openai_api_key = ""
            with pytest.raises(ValueError, match="API key"):
                OpenAICompatibleProvider()
