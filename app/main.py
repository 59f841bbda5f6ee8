# =============================================================================
# FastAPI Application — Entry Point
# =============================================================================
#
# Run locally:
#   uvicorn app.main:app --reload
#
# Without a database, serve the bundled sample filings:
#   TABLE_STORE_TYPE=memory uvicorn app.main:app
# =============================================================================

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.companies import router as companies_router
from app.api.earnings import router as earnings_router
from app.config import settings
from app.models.responses import HealthResponse

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=(
        "Multi-agent earnings quality analysis over extracted financial "
        "statement tables: requirement planning, accruals and cash-flow "
        "metrics, a simplified Beneish M-Score and a graded rating, with "
        "live progress over Server-Sent Events."
    ),
    debug=settings.debug,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(earnings_router)
app.include_router(companies_router)


@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check() -> HealthResponse:
    return HealthResponse(
        status="ok",
        version=settings.app_version,
        service=settings.app_name,
    )


logger.info(
    "%s v%s started (table_store=%s, llm_provider=%s)",
    settings.app_name, settings.app_version,
    settings.table_store_type, settings.llm_provider,
)
