# =============================================================================
# Companies API — Registry Listing
# =============================================================================

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from app.models.responses import CompanyListResponse, CompanyResponse
from app.services.companies import COMPANIES, Company, get_company_by_code

router = APIRouter(prefix="/companies", tags=["Companies"])


def _to_response(company: Company) -> CompanyResponse:
    return CompanyResponse(
        name=company.name,
        name_ko=company.name_ko or company.name,
        code=company.code,
        sector=company.sector or "Unknown",
        has_data=company.has_data,
    )


@router.get("", response_model=CompanyListResponse, summary="List known companies")
async def list_companies() -> CompanyListResponse:
    companies = [_to_response(c) for c in COMPANIES]
    return CompanyListResponse(companies=companies, total=len(companies))


@router.get("/{corp_code}", response_model=CompanyResponse, summary="Get one company")
async def get_company(corp_code: str) -> CompanyResponse:
    company = get_company_by_code(corp_code)
    if company is None:
        raise HTTPException(status_code=404, detail=f"Company {corp_code} not found")
    return _to_response(company)
