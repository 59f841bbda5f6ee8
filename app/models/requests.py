# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Field names are snake_case; the camelCase names sent by the existing web
# client (`corpCode`, `confirmedRequirements`) are accepted as aliases.
# =============================================================================

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class EarningsQualityRequest(BaseModel):
    """
    Request body for POST /earnings-quality and /earnings-quality/orchestrated.

    Example:
        {
            "corp_code": "00126380",
            "query": "Analyze earnings quality and flag any red flags",
            "language": "en"
        }
    """

    corp_code: str = Field(
        ...,
        min_length=1,
        max_length=20,
        alias="corpCode",
        description="DART corporation code of the company to analyse",
        examples=["00126380"],
    )

    query: str = Field(
        default="",
        max_length=2000,
        description="The analysis question. Required by the orchestrated endpoint.",
        examples=["Analyze Samsung's earnings quality and identify red flags"],
    )

    language: Literal["en", "ko"] = Field(
        default="en",
        description="Client display language. Analysis output is English.",
    )

    # None → run requirement analysis; a list (even empty) → use as-is
    confirmed_requirements: list[str] | None = Field(
        default=None,
        alias="confirmedRequirements",
        description=(
            "Requirements the user confirmed after previewing them. "
            "When present, requirement analysis is skipped."
        ),
    )

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "corp_code": "00126380",
                    "query": "Evaluate earnings quality, accruals and M-Score",
                    "language": "en",
                },
                {
                    "corp_code": "00126380",
                    "query": "Evaluate earnings quality",
                    "confirmed_requirements": [
                        "Comprehensive earnings quality assessment",
                        "Beneish M-Score calculation",
                    ],
                },
            ]
        },
    )


class RequirementsRequest(BaseModel):
    """Request body for POST /earnings-quality/requirements."""

    query: str = Field(
        ...,
        min_length=3,
        max_length=2000,
        description="The analysis question to break into requirements",
        examples=["What is the earnings quality? Any red flags in accruals?"],
    )
