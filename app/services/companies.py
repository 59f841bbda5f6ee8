# =============================================================================
# Company Registry — Known DART Corporations
# =============================================================================
#
# Maps display names (English / Korean) to DART corporation codes. The
# `has_data` flag marks companies whose filings have been loaded into the
# table store; others are listed so clients can show them as unavailable.
#
# `aliases` are the lowercase words users actually type ("samsung",
# "hynix") and drive company detection in free-text questions.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Company:
    name: str
    code: str
    name_ko: str | None = None
    sector: str | None = None
    has_data: bool = False
    aliases: tuple[str, ...] = ()


COMPANIES: tuple[Company, ...] = (
    Company("Samsung Electronics", "00126380", "삼성전자", "Technology", True, ("samsung",)),
    Company("SK Hynix", "00164779", "SK하이닉스", "Technology", False, ("hynix",)),
    Company("LG Electronics", "00401731", "LG전자", "Technology", False, ("lg electronics",)),
    Company("Hyundai Motor", "00164742", "현대자동차", "Automotive", False, ("hyundai",)),
    Company("POSCO Holdings", "00266961", "포스코홀딩스", "Materials", False, ("posco",)),
    Company("KB Financial Group", "00258801", "KB금융지주", "Finance", False, ("kb financial",)),
    Company("Shinhan Financial Group", "00264273", "신한지주", "Finance", False, ("shinhan",)),
    Company("NAVER", "00885164", "네이버", "Technology", False, ("naver",)),
    Company("Kakao", "00918295", "카카오", "Technology", False, ("kakao",)),
    Company("Celltrion", "00421045", "셀트리온", "Healthcare", False, ("celltrion",)),
)


def get_company_by_code(code: str) -> Company | None:
    return next((c for c in COMPANIES if c.code == code), None)


def find_company_in_text(text: str) -> Company | None:
    """Return the first registered company mentioned anywhere in `text`."""
    text_lower = text.lower()
    for company in COMPANIES:
        if company.name.lower() in text_lower:
            return company
        if company.name_ko and company.name_ko in text:
            return company
        if any(alias in text_lower for alias in company.aliases):
            return company
    return None
