# =============================================================================
# API Dependencies — Injected Collaborators
# =============================================================================
#
# The table store and the requirement analyzer are resolved through FastAPI
# dependencies so tests can swap them with dependency_overrides:
#
#   app.dependency_overrides[get_table_store] = lambda: InMemoryTableStore(...)
#   app.dependency_overrides[get_query_analyzer] = lambda: RuleBasedQueryAnalyzer()
# =============================================================================

from __future__ import annotations

import logging

from fastapi import HTTPException

from app.agents.requirements import QueryAnalyzer
from app.agents.requirements import get_query_analyzer as _get_query_analyzer
from app.services.table_store import TableStore
from app.services.table_store import get_table_store as _get_table_store

logger = logging.getLogger(__name__)


def get_table_store() -> TableStore:
    return _get_table_store()


def get_query_analyzer() -> QueryAnalyzer:
    """Configured analyzer; a missing LLM API key is a 503, not a crash."""
    try:
        return _get_query_analyzer()
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        raise HTTPException(
            status_code=503,
            detail=f"Service configuration error: {e}",
        ) from e
