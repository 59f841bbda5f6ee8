# =============================================================================
# Orchestrator — Master Agent, Task Executor and the Analysis Pipeline
# =============================================================================
#
# Runs one question end to end:
#
#   START ──▶ analyse ──▶ plan ──▶ execute ──▶ END
#
#   analyse  question (or confirmed requirements) → QueryAnalysis
#   plan     QueryAnalysis → ExecutionPlan (planner.py)
#   execute  walk the plan, one task at a time, filling the results record
#
# EXECUTION MODEL: sequential and cooperative. Tasks run in declared list
# order, subtasks before their parent completes. `dependencies` on a task
# is informational only; a calculation that runs before any extraction
# simply fails with DependencyNotReadyError.
#
# FAILURES ARE LOCAL: a work function that raises marks only its own task
# failed; the loop moves on to the next task and the run never raises for
# a task error.
#
# OBSERVERS: every message, task transition and plan change is pushed
# through OrchestratorCallbacks in the exact order it happens. A callback
# that raises is logged and skipped; it never changes the run. The message
# log is owned by the orchestrator instance, so concurrent runs (one
# orchestrator each) never see each other's events.
#
# DESIGN DECISION: graph compiled once at module level, orchestrator passed
# in state. The orchestrator is not serialisable; no checkpointer is
# configured on the graph.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from app.agents.assessment import QualityAssessment, QualityAssessmentAgent
from app.agents.calculation import CalculatedMetrics, CalculationAgent
from app.agents.extraction import DataExtractionAgent, ExtractedData
from app.agents.planner import create_execution_plan
from app.agents.requirements import QueryAnalyzer, RuleBasedQueryAnalyzer, build_analysis
from app.agents.types import (
    AGENT_REGISTRY,
    AgentMessage,
    AgentType,
    DependencyNotReadyError,
    ExecutionPlan,
    InvalidTransitionError,
    MessageType,
    QueryAnalysis,
    Task,
    TaskStatus,
    TaskType,
    agent_name,
)
from app.config import settings
from app.services.table_store import TableStore

logger = logging.getLogger(__name__)

MASTER = agent_name(AgentType.MASTER)

_AGENT_FOR_TASK: dict[TaskType, AgentType] = {
    TaskType.EXTRACTION: AgentType.DATA_EXTRACTION,
    TaskType.CALCULATION: AgentType.CALCULATION,
    TaskType.ASSESSMENT: AgentType.ASSESSMENT,
}


def agent_for_task(task_type: TaskType) -> AgentType:
    """Report and analysis tasks are handled by the master agent."""
    return _AGENT_FOR_TASK.get(task_type, AgentType.MASTER)


# ---------------------------------------------------------------------------
# Results Record
# ---------------------------------------------------------------------------


@dataclass
class ExecutionResults:
    """
    Shared results of one run. Each stage writes its own field and only
    reads fields written by earlier stages.
    """

    extracted_data: ExtractedData | None = None
    calculated_metrics: CalculatedMetrics | None = None
    assessment: QualityAssessment | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "extractedData": self.extracted_data.to_dict() if self.extracted_data else None,
            "calculatedMetrics": (
                self.calculated_metrics.to_dict() if self.calculated_metrics else None
            ),
            "assessment": self.assessment.to_dict() if self.assessment else None,
        }


@dataclass
class OrchestrationResult:
    analysis: QueryAnalysis
    plan: ExecutionPlan
    results: ExecutionResults
    messages: list[AgentMessage]
    cancelled: bool = False


# ---------------------------------------------------------------------------
# Callbacks
# ---------------------------------------------------------------------------


@dataclass
class OrchestratorCallbacks:
    """Synchronous observers; each is optional."""

    on_message: Callable[[AgentMessage], None] | None = None
    on_task_update: Callable[[Task], None] | None = None
    on_plan_update: Callable[[ExecutionPlan], None] | None = None
    on_analysis_complete: Callable[[QueryAnalysis], None] | None = None


# ---------------------------------------------------------------------------
# Pacing
# ---------------------------------------------------------------------------
# Waits between steps exist only so a live UI can render each transition.
# They never change results.
# ---------------------------------------------------------------------------


class DelayPolicy(Protocol):
    async def pause(self, stage: str) -> None:
        ...


class NoDelay:
    async def pause(self, stage: str) -> None:
        return None


class RandomPacing:
    """Uniform random wait per stage, in milliseconds."""

    RANGES: dict[str, tuple[int, int]] = {
        "analysis": (1000, 1500),
        "assign": (300, 500),
        "start": (500, 1000),
        "subtask": (600, 1000),
        "extraction": (300, 500),
        "calculation": (400, 700),
        "assessment": (500, 800),
        "generic": (800, 1200),
    }

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    async def pause(self, stage: str) -> None:
        low, high = self.RANGES.get(stage, (0, 0))
        if high > 0:
            await asyncio.sleep(self._rng.uniform(low, high) / 1000)


def get_delay_policy() -> DelayPolicy:
    return RandomPacing() if settings.pacing_enabled else NoDelay()


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class AgentOrchestrator:
    """
    Master agent plus sequential task executor for one run.

    Usage:
        orchestrator = AgentOrchestrator(store, callbacks=callbacks)
        result = await orchestrator.execute_query(query, corp_code)

    Pass `cancel_event` to stop between tasks; tasks not yet started stay
    pending and the result carries `cancelled=True`.
    """

    def __init__(
        self,
        store: TableStore,
        analyzer: QueryAnalyzer | None = None,
        callbacks: OrchestratorCallbacks | None = None,
        delay: DelayPolicy | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self._store = store
        self._analyzer = analyzer or RuleBasedQueryAnalyzer()
        self._callbacks = callbacks or OrchestratorCallbacks()
        self._delay = delay or NoDelay()
        self._cancel_event = cancel_event
        self._messages: list[AgentMessage] = []
        self._plan: ExecutionPlan | None = None

    @property
    def messages(self) -> list[AgentMessage]:
        return list(self._messages)

    # -- Master agent --------------------------------------------------------

    async def analyze_query(
        self,
        query: str,
        confirmed_requirements: list[str] | None = None,
    ) -> QueryAnalysis:
        self._emit(MASTER, MessageType.THINKING,
                   "Analyzing user query to understand requirements...")

        if confirmed_requirements is not None:
            analysis = build_analysis(query, confirmed_requirements)
        else:
            await self._delay.pause("analysis")
            analysis = await self._analyzer.analyze(query)

        self._emit(
            MASTER,
            MessageType.DECISION,
            f"Query analysis complete. Identified {len(analysis.requirements)} key "
            f"requirements. Complexity: {analysis.complexity.value}",
            metadata=analysis,
        )
        self._notify(self._callbacks.on_analysis_complete, analysis)
        return analysis

    def create_plan(self, query: str, analysis: QueryAnalysis) -> ExecutionPlan:
        self._emit(MASTER, MessageType.THINKING,
                   "Creating execution plan based on requirements...")

        plan = create_execution_plan(query, analysis)
        self._plan = plan

        self._emit(
            MASTER,
            MessageType.DECISION,
            f"Execution plan created: {len(plan.tasks)} tasks, "
            f"{len(plan.agents)} specialized agents required",
            metadata=plan,
        )
        for agent_type in plan.agents:
            agent = AGENT_REGISTRY.get(agent_type)
            if agent is not None:
                self._emit(
                    MASTER,
                    MessageType.DECISION,
                    f"Assigning {agent.name} to handle {agent.capabilities[0].lower()}",
                )

        self._notify(self._callbacks.on_plan_update, plan)
        return plan

    # -- Executor ------------------------------------------------------------

    async def execute_plan(
        self,
        plan: ExecutionPlan,
        corp_code: str,
    ) -> tuple[ExecutionResults, bool]:
        """Run every top-level task in order. Returns (results, cancelled)."""
        self._plan = plan
        results = ExecutionResults()

        for index, task in enumerate(plan.tasks):
            if self._cancel_event is not None and self._cancel_event.is_set():
                remaining = len(plan.tasks) - index
                logger.info("Plan %s cancelled with %d tasks not started", plan.id, remaining)
                self._emit(MASTER, MessageType.STATUS,
                           f"Execution cancelled: {remaining} tasks not started")
                return results, True
            await self._execute_task(task, corp_code, results)

        return results, False

    async def execute_query(
        self,
        query: str,
        corp_code: str,
        confirmed_requirements: list[str] | None = None,
    ) -> OrchestrationResult:
        """Entry point: run the analyse → plan → execute graph."""
        logger.info(
            "Invoking pipeline: corp_code=%s, confirmed=%s, query='%s'",
            corp_code,
            confirmed_requirements is not None,
            query[:80],
        )

        state = await pipeline.ainvoke({
            "orchestrator": self,
            "query": query,
            "corp_code": corp_code,
            "confirmed_requirements": confirmed_requirements,
        })

        result = OrchestrationResult(
            analysis=state["analysis"],
            plan=state["plan"],
            results=state["results"],
            messages=self.messages,
            cancelled=state.get("cancelled", False),
        )
        logger.info(
            "Pipeline complete: plan=%s, tasks=%d, failed=%d, cancelled=%s",
            result.plan.id,
            len(result.plan.tasks),
            sum(1 for t in result.plan.iter_tasks() if t.status == TaskStatus.FAILED),
            result.cancelled,
        )
        return result

    async def _execute_task(
        self,
        task: Task,
        corp_code: str,
        results: ExecutionResults,
    ) -> None:
        agent_type = agent_for_task(task.type)
        name = agent_name(agent_type)

        self._update(task, TaskStatus.ASSIGNED, agent_type)
        await self._delay.pause("assign")

        self._update(task, TaskStatus.IN_PROGRESS)
        self._emit(name, MessageType.STATUS, f"Starting task: {task.title}")
        await self._delay.pause("start")

        try:
            if task.subtasks:
                for subtask in task.subtasks:
                    await self._execute_subtask(subtask, corp_code, results, agent_type)
            else:
                await self._run_work(task, corp_code, results)
        except InvalidTransitionError:
            raise
        except Exception as e:
            logger.warning("Task %s failed: %s", task.id, e)
            task.error = str(e)
            self._update(task, TaskStatus.FAILED)
            self._emit(name, MessageType.ERROR, f"Failed: {task.title} - {e}")
            return

        self._update(task, TaskStatus.COMPLETED)
        self._emit(name, MessageType.RESULT, f"Completed: {task.title}")

    async def _execute_subtask(
        self,
        subtask: Task,
        corp_code: str,
        results: ExecutionResults,
        parent_agent: AgentType,
    ) -> None:
        self._update(subtask, TaskStatus.ASSIGNED, parent_agent)
        self._update(subtask, TaskStatus.IN_PROGRESS)
        self._emit(agent_name(parent_agent), MessageType.STATUS,
                   f"Processing: {subtask.title}")
        await self._delay.pause("subtask")

        try:
            if subtask.type in (TaskType.EXTRACTION, TaskType.CALCULATION):
                await self._run_work(subtask, corp_code, results)
        except Exception as e:
            subtask.error = str(e)
            self._update(subtask, TaskStatus.FAILED)
            raise

        self._update(subtask, TaskStatus.COMPLETED)

    async def _run_work(
        self,
        task: Task,
        corp_code: str,
        results: ExecutionResults,
    ) -> None:
        if task.type == TaskType.EXTRACTION:
            await self._perform_extraction(corp_code, results)
        elif task.type == TaskType.CALCULATION:
            await self._perform_calculation(results)
        elif task.type == TaskType.ASSESSMENT:
            await self._perform_assessment(results)
        else:
            await self._delay.pause("generic")

    # -- Work functions ------------------------------------------------------

    async def _perform_extraction(self, corp_code: str, results: ExecutionResults) -> None:
        name = agent_name(AgentType.DATA_EXTRACTION)
        self._emit(name, MessageType.THINKING, "Querying financial database...")
        await self._delay.pause("extraction")

        data = await DataExtractionAgent(corp_code, self._store).extract()
        results.extracted_data = data

        self._emit(name, MessageType.RESULT, f"Found {len(data.raw_tables)} relevant tables")

    async def _perform_calculation(self, results: ExecutionResults) -> None:
        if results.extracted_data is None:
            raise DependencyNotReadyError("No data available for calculation")

        name = agent_name(AgentType.CALCULATION)
        self._emit(name, MessageType.THINKING, "Computing financial metrics...")
        await self._delay.pause("calculation")

        metrics = CalculationAgent(results.extracted_data).calculate()
        results.calculated_metrics = metrics

        self._emit(
            name,
            MessageType.RESULT,
            f"Calculated: Accruals ratio {metrics.accruals_ratio * 100:.2f}%, "
            f"M-Score {metrics.m_score:.2f}",
        )

    async def _perform_assessment(self, results: ExecutionResults) -> None:
        if results.calculated_metrics is None:
            raise DependencyNotReadyError("No metrics available for assessment")

        name = agent_name(AgentType.ASSESSMENT)
        self._emit(name, MessageType.THINKING, "Evaluating earnings quality...")
        await self._delay.pause("assessment")

        assessment = QualityAssessmentAgent(results.calculated_metrics).assess()
        results.assessment = assessment

        self._emit(
            name,
            MessageType.RESULT,
            f"Assessment complete: {assessment.rating.grade.value} "
            f"({assessment.rating.score}/100)",
        )

    # -- Event plumbing ------------------------------------------------------

    def _emit(
        self,
        sender: str,
        type: MessageType,
        content: str,
        metadata: Any = None,
    ) -> None:
        message = AgentMessage(sender=sender, type=type, content=content, metadata=metadata)
        self._messages.append(message)
        self._notify(self._callbacks.on_message, message)

    @staticmethod
    def _notify(callback: Callable[[Any], None] | None, payload: Any) -> None:
        if callback is None:
            return
        try:
            callback(payload)
        except Exception:
            logger.exception("Observer callback %r failed", callback)

    def _update(
        self,
        task: Task,
        status: TaskStatus,
        agent_type: AgentType | None = None,
    ) -> None:
        task.transition(status, agent_type)
        self._notify(self._callbacks.on_task_update, task)
        if self._plan is not None:
            self._notify(self._callbacks.on_plan_update, self._plan)


# ---------------------------------------------------------------------------
# Pipeline State Schema
# ---------------------------------------------------------------------------


class PipelineState(TypedDict, total=False):
    # --- Input ---
    orchestrator: AgentOrchestrator
    query: str
    corp_code: str
    confirmed_requirements: list[str] | None

    # --- Set by nodes ---
    analysis: QueryAnalysis
    plan: ExecutionPlan
    results: ExecutionResults
    cancelled: bool


async def analyse_node(state: PipelineState) -> dict:
    analysis = await state["orchestrator"].analyze_query(
        state["query"], state.get("confirmed_requirements"),
    )
    return {"analysis": analysis}


async def plan_node(state: PipelineState) -> dict:
    plan = state["orchestrator"].create_plan(state["query"], state["analysis"])
    return {"plan": plan}


async def execute_node(state: PipelineState) -> dict:
    results, cancelled = await state["orchestrator"].execute_plan(
        state["plan"], state["corp_code"],
    )
    return {"results": results, "cancelled": cancelled}


_builder = StateGraph(PipelineState)
_builder.add_node("analyse", analyse_node)
_builder.add_node("plan", plan_node)
_builder.add_node("execute", execute_node)

_builder.add_edge(START, "analyse")
_builder.add_edge("analyse", "plan")
_builder.add_edge("plan", "execute")
_builder.add_edge("execute", END)

pipeline = _builder.compile()


# ---------------------------------------------------------------------------
# Result Envelope
# ---------------------------------------------------------------------------

_SOURCE_TABLE_NAMES = (
    ("cash_flow", "Cash Flow Statement"),
    ("income_statement", "Income Statement"),
    ("balance_sheet", "Balance Sheet"),
)


def summarize_sources(data: ExtractedData | None) -> list[dict[str, Any]]:
    """One source entry per statement that was actually shaped."""
    if data is None:
        return []
    sources = []
    for attr, table_name in _SOURCE_TABLE_NAMES:
        record = getattr(data, attr)
        if record is not None:
            sources.append({
                "table_name": table_name,
                "source_file": record.source,
                "page_number": record.page_number,
                "period": record.period,
            })
    return sources


def build_result_envelope(
    results: ExecutionResults,
    execution_time: dict[str, int],
) -> dict[str, Any]:
    """The success envelope shared by the synchronous and streaming paths."""
    metrics = results.calculated_metrics
    assessment = results.assessment
    return {
        "status": "success",
        "rating": assessment.rating.to_dict() if assessment else None,
        "metrics": {
            "accruals": metrics.accruals,
            "accruals_ratio": metrics.accruals_ratio,
            "cf_ni_ratio": metrics.cf_ni_ratio,
            "m_score": metrics.m_score,
            "total_assets": metrics.total_assets,
            "net_income": metrics.net_income,
            "operating_cf": metrics.operating_cash_flow,
        } if metrics else None,
        "alerts": [a.to_dict() for a in assessment.alerts] if assessment else None,
        "insights": assessment.insights.to_dict() if assessment else None,
        "execution_time": execution_time,
        "sources": summarize_sources(results.extracted_data),
    }


def stage_times(plan: ExecutionPlan) -> dict[str, int]:
    """Per-stage wall time (ms) summed from top-level task timestamps."""
    times = {"extraction": 0, "calculation": 0, "assessment": 0}
    for task in plan.tasks:
        if task.type.value in times and task.start_time and task.end_time:
            times[task.type.value] += task.end_time - task.start_time
    return times


# ---------------------------------------------------------------------------
# Direct Path — no plan, no events
# ---------------------------------------------------------------------------


async def run_earnings_quality(corp_code: str, store: TableStore) -> dict[str, Any]:
    """
    Extraction → calculation → assessment in one call, with per-stage timing.

    Used by the synchronous endpoint; exceptions propagate to the caller.
    """
    started = time.perf_counter()
    execution_time = {"extraction": 0, "calculation": 0, "assessment": 0, "total": 0}
    results = ExecutionResults()

    stage_start = time.perf_counter()
    results.extracted_data = await DataExtractionAgent(corp_code, store).extract()
    execution_time["extraction"] = _elapsed_ms(stage_start)

    stage_start = time.perf_counter()
    results.calculated_metrics = CalculationAgent(results.extracted_data).calculate()
    execution_time["calculation"] = _elapsed_ms(stage_start)

    stage_start = time.perf_counter()
    results.assessment = QualityAssessmentAgent(results.calculated_metrics).assess()
    execution_time["assessment"] = _elapsed_ms(stage_start)

    execution_time["total"] = _elapsed_ms(started)
    logger.info("Earnings quality for %s completed in %dms", corp_code, execution_time["total"])
    return build_result_envelope(results, execution_time)


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)
