# =============================================================================
# Earnings Quality API — Direct, Preview and Orchestrated Endpoints
# =============================================================================
#
#   POST /earnings-quality               extraction → calculation → assessment,
#                                        one JSON envelope
#   POST /earnings-quality/requirements  question → QueryAnalysis preview, so
#                                        a user can delete requirements
#   POST /earnings-quality/orchestrated  analyse → plan → execute, streamed as
#                                        Server-Sent Events (services/events.py)
#
# STREAMING: the orchestrator runs as a background task and pushes events
# into an EventStream through its callbacks; the StreamingResponse drains
# the stream. If the client disconnects, the cancel event is set and the
# executor stops before its next task.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse

from app.agents.orchestrator import (
    AgentOrchestrator,
    OrchestratorCallbacks,
    build_result_envelope,
    get_delay_policy,
    run_earnings_quality,
    stage_times,
)
from app.agents.requirements import QueryAnalyzer
from app.agents.types import now_ms
from app.api.deps import get_query_analyzer, get_table_store
from app.models.requests import EarningsQualityRequest, RequirementsRequest
from app.models.responses import EarningsQualityResponse, QueryAnalysisResponse
from app.services.events import EventStream, EventType
from app.services.table_store import TableStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/earnings-quality", tags=["Earnings Quality"])

# Orchestration tasks whose client already disconnected; kept referenced
# until they reach their next cancellation check.
_background_runs: set[asyncio.Task] = set()


# ---------------------------------------------------------------------------
# POST /earnings-quality — Direct analysis
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=EarningsQualityResponse,
    summary="Rate a company's earnings quality",
    description=(
        "Extracts the cash flow statement, income statement and balance sheet, "
        "computes accruals, cash conversion and a simplified Beneish M-Score, "
        "and returns a graded rating with alerts and source tables."
    ),
)
async def earnings_quality_endpoint(
    request: EarningsQualityRequest,
    store: TableStore = Depends(get_table_store),
) -> EarningsQualityResponse | JSONResponse:
    logger.info("Earnings quality request: corp_code=%s", request.corp_code)
    started = time.perf_counter()

    try:
        envelope = await run_earnings_quality(request.corp_code, store)
    except Exception as e:
        logger.exception("Earnings quality analysis failed: %s", e)
        total = int((time.perf_counter() - started) * 1000)
        return JSONResponse(
            status_code=500,
            content=EarningsQualityResponse(
                status="error",
                error=str(e) or "Analysis failed",
                execution_time={"total": total},
            ).model_dump(exclude_none=True),
        )

    return EarningsQualityResponse(**envelope)


# ---------------------------------------------------------------------------
# POST /earnings-quality/requirements — Requirement preview
# ---------------------------------------------------------------------------


@router.post(
    "/requirements",
    response_model=QueryAnalysisResponse,
    summary="Preview the analysis requirements for a question",
)
async def requirements_endpoint(
    request: RequirementsRequest,
    analyzer: QueryAnalyzer = Depends(get_query_analyzer),
) -> QueryAnalysisResponse:
    analysis = await analyzer.analyze(request.query)
    logger.info(
        "Requirement preview: %d requirements (%s)",
        len(analysis.requirements), analysis.complexity.value,
    )
    return QueryAnalysisResponse(**analysis.to_dict())


# ---------------------------------------------------------------------------
# POST /earnings-quality/orchestrated — Streamed multi-agent run
# ---------------------------------------------------------------------------


@router.post(
    "/orchestrated",
    summary="Run the multi-agent analysis and stream its progress",
    description=(
        "Streams `analysis`, `plan`, `message`, `task_update`, `result` and "
        "`error` events as `data: <json>` frames, ending with `data: [DONE]`. "
        "Events larger than the configured threshold arrive as ordered "
        "`chunk` events to be reassembled by `messageId`."
    ),
    response_class=StreamingResponse,
    response_model=None,
)
async def orchestrated_endpoint(
    request: EarningsQualityRequest,
    store: TableStore = Depends(get_table_store),
    analyzer: QueryAnalyzer = Depends(get_query_analyzer),
) -> StreamingResponse | JSONResponse:
    if not request.query.strip():
        return JSONResponse(
            status_code=400,
            content=EarningsQualityResponse(
                status="error", error="Corp code and query are required",
            ).model_dump(exclude_none=True),
        )

    stream = EventStream()
    cancel_event = asyncio.Event()
    orchestrator = AgentOrchestrator(
        store,
        analyzer=analyzer,
        callbacks=OrchestratorCallbacks(
            on_message=lambda message: stream.emit(EventType.MESSAGE, message),
            on_task_update=lambda task: stream.emit(EventType.TASK_UPDATE, task),
            on_plan_update=lambda plan: stream.emit(EventType.PLAN, plan),
            on_analysis_complete=lambda analysis: stream.emit(EventType.ANALYSIS, analysis),
        ),
        delay=get_delay_policy(),
        cancel_event=cancel_event,
    )

    async def run() -> None:
        try:
            result = await orchestrator.execute_query(
                request.query, request.corp_code, request.confirmed_requirements,
            )
            execution_time = {
                **stage_times(result.plan),
                "total": now_ms() - result.plan.created_at,
            }
            stream.emit(EventType.RESULT, build_result_envelope(result.results, execution_time))
            stream.done()
        except Exception as e:
            logger.exception("Orchestrated analysis failed: %s", e)
            stream.emit(EventType.ERROR, {"message": str(e) or "Analysis failed"})
            stream.close()

    async def event_generator():
        run_task = asyncio.create_task(run())
        try:
            async for frame in stream.frames():
                yield frame
        finally:
            if not run_task.done():
                logger.info("Client disconnected; cancelling orchestration")
                cancel_event.set()
                _background_runs.add(run_task)
                run_task.add_done_callback(_background_runs.discard)

    logger.info(
        "Orchestrated request: corp_code=%s, confirmed=%s",
        request.corp_code, request.confirmed_requirements is not None,
    )
    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
