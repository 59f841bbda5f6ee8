# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines a FastAPI APIRouter for a specific feature:
#   - earnings.py: Earnings quality analysis (synchronous, requirement
#     preview, and the orchestrated event stream)
#   - companies.py: Known-company listing
#   - deps.py: Injectable table store and query analyzer
# =============================================================================
