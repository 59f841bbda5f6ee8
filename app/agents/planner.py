# =============================================================================
# Plan Compiler — Requirements → Task Graph
# =============================================================================
#
# Walks a fixed, ordered rule table. Each rule fires when any confirmed
# requirement contains its trigger substring and appends one task:
#
#   "earnings quality assessment" → extract-data        (extraction)
#   "Accruals analysis"           → calculate-accruals  (calculation)
#   "Cash flow to net income"     → calculate-cf-ratio  (calculation)
#   "one-time items"              → identify-onetime    (extraction)
#   "M-Score"                     → calculate-mscore    (calculation)
#   "quality rating"              → generate-rating     (assessment)
#   "risk identification"         → risk-analysis       (assessment)
#
# If anything fired, validate-results and generate-report close the plan.
#
# NOTE: `dependencies` documents the intended data flow for clients; the
# executor runs tasks in list order and does not consult it.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from app.agents.types import (
    AgentType,
    ExecutionPlan,
    QueryAnalysis,
    Task,
    TaskType,
)

logger = logging.getLogger(__name__)

# Assessment-task dependencies are computed from the tasks built so far
DependencyRule = Callable[[list[Task]], list[str]]


def _depends_on_extraction(_: list[Task]) -> list[str]:
    return ["extract-data"]


def _depends_on_calculations(tasks: list[Task]) -> list[str]:
    return [t.id for t in tasks if t.type == TaskType.CALCULATION]


def _no_dependencies(_: list[Task]) -> list[str]:
    return []


@dataclass(frozen=True)
class TaskRule:
    trigger: str
    task_id: str
    title: str
    description: str
    type: TaskType
    dependencies: DependencyRule


TASK_RULES: tuple[TaskRule, ...] = (
    TaskRule(
        "earnings quality assessment", "extract-data",
        "Extract financial data", "Pulling financial statements from database",
        TaskType.EXTRACTION, _no_dependencies,
    ),
    TaskRule(
        "Accruals analysis", "calculate-accruals",
        "Calculate accruals metrics", "Computing accruals and ratios",
        TaskType.CALCULATION, _depends_on_extraction,
    ),
    TaskRule(
        "Cash flow to net income", "calculate-cf-ratio",
        "Analyze cash flow ratios", "Comparing operating cash flow to net income",
        TaskType.CALCULATION, _depends_on_extraction,
    ),
    TaskRule(
        "one-time items", "identify-onetime",
        "Identify one-time items", "Scanning for non-recurring items affecting earnings",
        TaskType.EXTRACTION, _depends_on_extraction,
    ),
    TaskRule(
        "M-Score", "calculate-mscore",
        "Calculate Beneish M-Score", "Computing earnings manipulation probability",
        TaskType.CALCULATION, _depends_on_extraction,
    ),
    TaskRule(
        "quality rating", "generate-rating",
        "Generate quality rating", "Synthesizing overall earnings quality score",
        TaskType.ASSESSMENT, _depends_on_calculations,
    ),
    TaskRule(
        "risk identification", "risk-analysis",
        "Identify specific risks", "Analyzing areas of concern and red flags",
        TaskType.ASSESSMENT, _depends_on_calculations,
    ),
)

# Relative cost per task type, in milliseconds of expected work
TIME_PER_TASK: dict[TaskType, int] = {
    TaskType.ANALYSIS: 500,
    TaskType.EXTRACTION: 1000,
    TaskType.CALCULATION: 300,
    TaskType.ASSESSMENT: 200,
    TaskType.REPORT: 400,
}

_AGENT_FOR_TYPE: dict[TaskType, AgentType] = {
    TaskType.EXTRACTION: AgentType.DATA_EXTRACTION,
    TaskType.CALCULATION: AgentType.CALCULATION,
    TaskType.ASSESSMENT: AgentType.ASSESSMENT,
    TaskType.REPORT: AgentType.REPORT,
}

# Plans with more tasks than this also get a validation agent
VALIDATION_TASK_THRESHOLD = 5


def build_task_list(requirements: Iterable[str]) -> list[Task]:
    """Apply the rule table to the confirmed requirements."""
    reqs = list(requirements)
    tasks: list[Task] = []

    for rule in TASK_RULES:
        if any(rule.trigger in r for r in reqs):
            tasks.append(Task(
                id=rule.task_id,
                title=rule.title,
                description=rule.description,
                type=rule.type,
                dependencies=rule.dependencies(tasks),
            ))

    if tasks:
        tasks.append(Task(
            id="validate-results",
            title="Validate analysis",
            description="Cross-checking results for accuracy",
            type=TaskType.ASSESSMENT,
            dependencies=[t.id for t in tasks],
        ))
        tasks.append(Task(
            id="generate-report",
            title="Generate report",
            description="Creating comprehensive analysis report",
            type=TaskType.REPORT,
            dependencies=["validate-results"],
        ))

    return tasks


def determine_required_agents(tasks: list[Task]) -> list[AgentType]:
    """Deduplicated agent types in first-seen order."""
    agents: list[AgentType] = []
    for task in tasks:
        for node in task.iter_tree():
            agent = _AGENT_FOR_TYPE.get(node.type)
            if agent is not None and agent not in agents:
                agents.append(agent)

    if len(tasks) > VALIDATION_TASK_THRESHOLD:
        agents.append(AgentType.VALIDATION)

    return agents


def estimate_execution_time(tasks: list[Task]) -> int:
    return sum(
        TIME_PER_TASK.get(node.type, 500)
        for task in tasks
        for node in task.iter_tree()
    )


def create_execution_plan(query: str, analysis: QueryAnalysis) -> ExecutionPlan:
    """Compile a confirmed analysis into an execution plan."""
    tasks = build_task_list(analysis.requirements)
    agents = determine_required_agents(tasks)
    plan = ExecutionPlan(
        query=query,
        analysis=analysis,
        tasks=tasks,
        agents=agents,
        estimated_time=estimate_execution_time(tasks),
    )

    logger.info(
        "Compiled plan %s: %d tasks, agents=%s, estimated=%dms",
        plan.id, len(tasks), [a.value for a in agents], plan.estimated_time,
    )
    return plan
