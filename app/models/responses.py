# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# The contract between the service and its clients. The earnings-quality
# envelope keeps the snake_case metric names the web client already reads
# (`accruals_ratio`, `operating_cf`, ...); plan and task payloads on the
# event stream are camelCase and are produced by the domain `to_dict()`s.
# =============================================================================

from typing import Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


# ---------------------------------------------------------------------------
# Earnings Quality
# ---------------------------------------------------------------------------


class RatingResponse(BaseModel):
    score: int = Field(ge=0, le=100)
    grade: Literal["EXCELLENT", "GOOD", "MODERATE", "POOR"]
    confidence: float


class MetricsResponse(BaseModel):
    accruals: float
    accruals_ratio: float
    cf_ni_ratio: float
    m_score: float = Field(description="Simplified 4-variable Beneish M-Score")
    total_assets: float
    net_income: float
    operating_cf: float


class AlertResponse(BaseModel):
    severity: Literal["info", "warning", "error"]
    message: str
    metric: str | None = None


class InsightsResponse(BaseModel):
    accrualQuality: str
    cashFlowQuality: str
    manipulationRisk: str
    overallAssessment: str


class ExecutionTimeResponse(BaseModel):
    """Milliseconds spent per stage."""

    extraction: int = 0
    calculation: int = 0
    assessment: int = 0
    total: int = 0


class SourceResponse(BaseModel):
    table_name: str
    source_file: str
    page_number: int
    period: str


class EarningsQualityResponse(BaseModel):
    """
    Result envelope for POST /earnings-quality.

    The same shape is sent as the `result` event of the orchestrated stream.
    On failure only `status`, `error` and (when known) `execution_time` are
    set.
    """

    status: Literal["success", "error"]
    rating: RatingResponse | None = None
    metrics: MetricsResponse | None = None
    alerts: list[AlertResponse] | None = None
    insights: InsightsResponse | None = None
    execution_time: ExecutionTimeResponse | None = None
    sources: list[SourceResponse] | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Requirement Preview
# ---------------------------------------------------------------------------


class EntitiesResponse(BaseModel):
    company: str | None = None
    metrics: list[str] = Field(default_factory=list)
    timeframe: str | None = None


class QueryAnalysisResponse(BaseModel):
    """Response for POST /earnings-quality/requirements."""

    intent: str
    requirements: list[str]
    entities: EntitiesResponse
    complexity: Literal["simple", "moderate", "complex"]
    confidence: float


# ---------------------------------------------------------------------------
# Companies
# ---------------------------------------------------------------------------


class CompanyResponse(BaseModel):
    name: str
    name_ko: str
    code: str
    sector: str
    has_data: bool = Field(description="Whether statement tables are loaded for it")


class CompanyListResponse(BaseModel):
    companies: list[CompanyResponse]
    total: int
