# =============================================================================
# Requirement Extraction — Question → Analysis Requirements
# =============================================================================
#
# The master agent's first step. A free-text question becomes a list of
# requirements drawn from a fixed catalog; the plan compiler only knows how
# to turn catalog entries into tasks.
#
# Two analyzers share the QueryAnalyzer protocol:
#   - RuleBasedQueryAnalyzer: keyword rules, instant, no API key
#   - LLMQueryAnalyzer: asks the configured LLM to pick catalog entries and
#     falls back to the rules whenever the answer cannot be used
#
# A client can preview the requirements, let the user delete some, and send
# the confirmed list back; `build_analysis()` then skips the analyzer.
# =============================================================================

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Protocol

from app.agents.types import QueryAnalysis, QueryEntities
from app.config import settings
from app.services.companies import find_company_in_text
from app.services.llm import LLMProvider, get_llm_provider

logger = logging.getLogger(__name__)

INTENT = "earnings_quality_analysis"
ANALYSIS_CONFIDENCE = 0.92
UNKNOWN_COMPANY = "Unknown Company"

# ---------------------------------------------------------------------------
# Requirement Catalog
# ---------------------------------------------------------------------------
# Order matters: rule-based extraction emits requirements in this order.
# ---------------------------------------------------------------------------

REQ_EARNINGS_QUALITY = "Comprehensive earnings quality assessment"
REQ_ACCRUALS = "Accruals analysis and red flag detection"
REQ_CF_NI = "Cash flow to net income comparison"
REQ_ONE_TIME = "Identification of one-time items"
REQ_M_SCORE = "Beneish M-Score calculation"
REQ_RATING = "Overall quality rating generation"
REQ_RISKS = "Specific risk identification"

REQUIREMENT_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    (REQ_EARNINGS_QUALITY, ("earnings quality",)),
    (REQ_ACCRUALS, ("red flags", "accruals")),
    (REQ_CF_NI, ("cash flow", "net income")),
    (REQ_ONE_TIME, ("one-time", "items")),
    (REQ_M_SCORE, ("m-score", "beneish")),
    (REQ_RATING, ("rating", "quality rating")),
    (REQ_RISKS, ("concerns", "specific concerns")),
)

REQUIREMENT_CATALOG: tuple[str, ...] = tuple(req for req, _ in REQUIREMENT_RULES)

METRIC_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("accrual", "accruals"),
    ("cash flow", "cash_flow"),
    ("net income", "net_income"),
    ("m-score", "m_score"),
    ("revenue", "revenue"),
    ("profit", "profit"),
)


# ---------------------------------------------------------------------------
# Rule-Based Extraction
# ---------------------------------------------------------------------------


def extract_requirements(query: str) -> list[str]:
    query_lower = query.lower()
    return [
        requirement
        for requirement, keywords in REQUIREMENT_RULES
        if any(k in query_lower for k in keywords)
    ]


def extract_company(query: str) -> str:
    company = find_company_in_text(query)
    return company.name if company else UNKNOWN_COMPANY


def extract_metrics(query: str) -> list[str]:
    query_lower = query.lower()
    return [metric for keyword, metric in METRIC_KEYWORDS if keyword in query_lower]


def extract_timeframe(query: str) -> str:
    query_lower = query.lower()
    for timeframe in ("quarterly", "annual", "latest"):
        if timeframe in query_lower:
            return timeframe
    return "latest"


def build_analysis(
    query: str,
    requirements: Iterable[str],
    company: str | None = None,
    timeframe: str | None = None,
) -> QueryAnalysis:
    """Assemble a QueryAnalysis from requirements plus rule-based entities."""
    return QueryAnalysis(
        intent=INTENT,
        requirements=tuple(requirements),
        entities=QueryEntities(
            company=company or extract_company(query),
            metrics=tuple(extract_metrics(query)),
            timeframe=timeframe or extract_timeframe(query),
        ),
        confidence=ANALYSIS_CONFIDENCE,
    )


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class QueryAnalyzer(Protocol):
    """Turns a free-text question into a QueryAnalysis."""

    async def analyze(self, query: str) -> QueryAnalysis:
        ...


# ---------------------------------------------------------------------------
# Implementation 1: Keyword Rules
# ---------------------------------------------------------------------------


class RuleBasedQueryAnalyzer:
    async def analyze(self, query: str) -> QueryAnalysis:
        return build_analysis(query, extract_requirements(query))


# ---------------------------------------------------------------------------
# Implementation 2: LLM
# ---------------------------------------------------------------------------

_ANALYSIS_SYSTEM = (
    "You are the planning assistant of an earnings quality analysis system.\n\n"
    "Pick the analysis requirements the user's question calls for. Use ONLY "
    "entries from this catalog, copied exactly:\n"
    + "\n".join(f"- {req}" for req in REQUIREMENT_CATALOG)
    + "\n\nRespond with ONLY valid JSON (no markdown, no explanation):\n"
    '{\n'
    '  "requirements": ["catalog entry", ...],\n'
    '  "company": "company name or null",\n'
    '  "timeframe": "quarterly", "annual" or "latest"\n'
    '}'
)


class LLMQueryAnalyzer:
    """
    Requirement selection by LLM, constrained to the catalog.

    Entries outside the catalog are dropped. Unparsable output, provider
    errors and empty selections fall back to the keyword rules so analysis
    never blocks on the LLM.
    """

    def __init__(self, llm: LLMProvider) -> None:
        self._llm = llm

    async def analyze(self, query: str) -> QueryAnalysis:
        try:
            response = await self._llm.complete(
                messages=[{"role": "user", "content": query}],
                system=_ANALYSIS_SYSTEM,
                temperature=0.0,
                max_tokens=256,
            )
            parsed = json.loads(_strip_code_fence(response.content))
            requirements = [
                req for req in REQUIREMENT_CATALOG
                if req in set(parsed.get("requirements") or [])
            ]
        except (json.JSONDecodeError, AttributeError, TypeError) as e:
            logger.warning(
                "Failed to parse requirement analysis: %s. Using keyword rules.", e,
            )
            return build_analysis(query, extract_requirements(query))
        except Exception as e:
            logger.warning(
                "Requirement analysis LLM call failed: %s. Using keyword rules.", e,
            )
            return build_analysis(query, extract_requirements(query))

        if not requirements:
            logger.info("LLM selected no catalog requirements; using keyword rules")
            requirements = extract_requirements(query)

        timeframe = parsed.get("timeframe")
        if timeframe not in ("quarterly", "annual", "latest"):
            timeframe = None

        return build_analysis(
            query,
            requirements,
            company=_known_company(parsed.get("company")),
            timeframe=timeframe,
        )


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def get_query_analyzer() -> RuleBasedQueryAnalyzer | LLMQueryAnalyzer:
    """Rules when llm_provider is "rules", otherwise the configured LLM."""
    if settings.llm_provider == "rules":
        return RuleBasedQueryAnalyzer()
    return LLMQueryAnalyzer(get_llm_provider())


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _strip_code_fence(content: str) -> str:
    """Remove a ```json ... ``` wrapper some models add despite instructions."""
    text = content.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        text = text.rsplit("```", 1)[0]
    return text.strip()


def _known_company(name: object) -> str | None:
    """Normalise an LLM-reported company to the registry name, if known."""
    if not isinstance(name, str) or not name.strip():
        return None
    company = find_company_in_text(name)
    return company.name if company else None
