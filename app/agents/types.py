# =============================================================================
# Agent Types — Tasks, Plans, Messages and the Agent Registry
# =============================================================================
#
# Shared structures passed between the master agent, the task executor and
# the specialist agents. They are plain dataclasses; `to_dict()` produces the
# camelCase payload the streaming client renders (task cards, plan view,
# agent chat log).
#
# TASK STATE MACHINE:
#   pending → assigned → in-progress → completed
#                                    → failed
#
# Any other transition is a programming error and raises
# InvalidTransitionError.
# =============================================================================

from __future__ import annotations

import enum
import time
import uuid
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class OrchestrationError(Exception):
    """Base class for errors raised while planning or executing a plan."""


class DependencyNotReadyError(OrchestrationError):
    """A work function found its prerequisite missing from the results."""


class InvalidTransitionError(OrchestrationError):
    """A task was moved to a status its current status cannot reach."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskType(str, enum.Enum):
    ANALYSIS = "analysis"
    EXTRACTION = "extraction"
    CALCULATION = "calculation"
    ASSESSMENT = "assessment"
    REPORT = "report"


class AgentType(str, enum.Enum):
    MASTER = "master"
    DATA_EXTRACTION = "data-extraction"
    CALCULATION = "calculation"
    ASSESSMENT = "assessment"
    VALIDATION = "validation"
    SYNTHESIS = "synthesis"
    REPORT = "report"


class MessageType(str, enum.Enum):
    THINKING = "thinking"
    DECISION = "decision"
    STATUS = "status"
    RESULT = "result"
    ERROR = "error"


class Complexity(str, enum.Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


_ALLOWED_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.ASSIGNED},
    TaskStatus.ASSIGNED: {TaskStatus.IN_PROGRESS},
    TaskStatus.IN_PROGRESS: {TaskStatus.COMPLETED, TaskStatus.FAILED},
    TaskStatus.COMPLETED: set(),
    TaskStatus.FAILED: set(),
}


def new_id() -> str:
    """Short random identifier for plans and messages."""
    return uuid.uuid4().hex[:12]


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Query Analysis
# ---------------------------------------------------------------------------


def complexity_for(requirement_count: int) -> Complexity:
    """>4 requirements is complex, >2 moderate, anything else simple."""
    if requirement_count > 4:
        return Complexity.COMPLEX
    if requirement_count > 2:
        return Complexity.MODERATE
    return Complexity.SIMPLE


@dataclass(frozen=True)
class QueryEntities:
    company: str | None = None
    metrics: tuple[str, ...] = ()
    timeframe: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "company": self.company,
            "metrics": list(self.metrics),
            "timeframe": self.timeframe,
        }


@dataclass(frozen=True)
class QueryAnalysis:
    """
    Result of turning a question into analysis requirements.

    Immutable: a confirmed requirement list produces a new analysis rather
    than editing this one.
    """

    intent: str
    requirements: tuple[str, ...]
    entities: QueryEntities
    confidence: float

    @property
    def complexity(self) -> Complexity:
        return complexity_for(len(self.requirements))

    def to_dict(self) -> dict[str, Any]:
        return {
            "intent": self.intent,
            "requirements": list(self.requirements),
            "entities": self.entities.to_dict(),
            "complexity": self.complexity.value,
            "confidence": self.confidence,
        }


# ---------------------------------------------------------------------------
# Tasks and Plans
# ---------------------------------------------------------------------------


@dataclass
class Task:
    """A unit of work in an execution plan."""

    id: str
    title: str
    description: str
    type: TaskType
    status: TaskStatus = TaskStatus.PENDING
    dependencies: list[str] = field(default_factory=list)
    subtasks: list[Task] = field(default_factory=list)
    assigned_agent: AgentType | None = None
    result: Any = None
    start_time: int | None = None
    end_time: int | None = None
    confidence: float | None = None
    error: str | None = None

    def transition(
        self,
        status: TaskStatus,
        assigned_agent: AgentType | None = None,
    ) -> None:
        """Move to `status`, stamping start/end times along the way."""
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Task '{self.id}' cannot move from "
                f"{self.status.value} to {status.value}"
            )
        self.status = status
        if assigned_agent is not None:
            self.assigned_agent = assigned_agent
        if status == TaskStatus.IN_PROGRESS:
            self.start_time = now_ms()
        elif status in (TaskStatus.COMPLETED, TaskStatus.FAILED):
            self.end_time = now_ms()

    def iter_tree(self) -> Iterator[Task]:
        """Yield this task followed by its subtasks, depth-first."""
        yield self
        for subtask in self.subtasks:
            yield from subtask.iter_tree()

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "type": self.type.value,
            "status": self.status.value,
            "dependencies": list(self.dependencies),
        }
        if self.assigned_agent is not None:
            payload["assignedAgent"] = self.assigned_agent.value
        if self.subtasks:
            payload["subtasks"] = [s.to_dict() for s in self.subtasks]
        if self.result is not None:
            payload["result"] = self.result
        if self.start_time is not None:
            payload["startTime"] = self.start_time
        if self.end_time is not None:
            payload["endTime"] = self.end_time
        if self.confidence is not None:
            payload["confidence"] = self.confidence
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass
class ExecutionPlan:
    """Task graph, agent manifest and time estimate for one query."""

    query: str
    analysis: QueryAnalysis
    tasks: list[Task]
    agents: list[AgentType]
    estimated_time: int
    id: str = field(default_factory=new_id)
    created_at: int = field(default_factory=now_ms)

    def iter_tasks(self) -> Iterator[Task]:
        """Every task and subtask in declaration order."""
        for task in self.tasks:
            yield from task.iter_tree()

    def find_task(self, task_id: str) -> Task | None:
        return next((t for t in self.iter_tasks() if t.id == task_id), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "query": self.query,
            "analysis": self.analysis.to_dict(),
            "tasks": [t.to_dict() for t in self.tasks],
            "agents": [a.value for a in self.agents],
            "estimatedTime": self.estimated_time,
            "createdAt": self.created_at,
        }


# ---------------------------------------------------------------------------
# Agent Messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AgentMessage:
    """One entry in the append-only agent log."""

    sender: str
    type: MessageType
    content: str
    recipient: str | None = None
    metadata: Any = None
    id: str = field(default_factory=new_id)
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "from": self.sender,
            "type": self.type.value,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.recipient is not None:
            payload["to"] = self.recipient
        if self.metadata is not None:
            payload["metadata"] = self.metadata
        return payload


# ---------------------------------------------------------------------------
# Agent Registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AgentCapability:
    name: str
    type: AgentType
    capabilities: tuple[str, ...]
    description: str


AGENT_REGISTRY: dict[AgentType, AgentCapability] = {
    AgentType.DATA_EXTRACTION: AgentCapability(
        name="Data Extraction Agent",
        type=AgentType.DATA_EXTRACTION,
        capabilities=(
            "Extract financial statements",
            "Parse cash flow data",
            "Read income statements",
            "Analyze balance sheets",
            "Handle Korean/English data",
        ),
        description="Specializes in extracting and parsing financial data from various sources",
    ),
    AgentType.CALCULATION: AgentCapability(
        name="Calculation Agent",
        type=AgentType.CALCULATION,
        capabilities=(
            "Calculate financial ratios",
            "Compute accruals",
            "Calculate M-Score",
            "Perform trend analysis",
            "Statistical analysis",
        ),
        description="Performs complex financial calculations and statistical analysis",
    ),
    AgentType.ASSESSMENT: AgentCapability(
        name="Quality Assessment Agent",
        type=AgentType.ASSESSMENT,
        capabilities=(
            "Evaluate earnings quality",
            "Apply thresholds",
            "Generate risk scores",
            "Create alerts",
            "Benchmark comparisons",
        ),
        description="Assesses financial health and generates quality ratings",
    ),
    AgentType.VALIDATION: AgentCapability(
        name="Validation Agent",
        type=AgentType.VALIDATION,
        capabilities=(
            "Cross-check calculations",
            "Verify data integrity",
            "Validate assumptions",
            "Check for anomalies",
        ),
        description="Ensures accuracy and consistency of analysis",
    ),
    AgentType.SYNTHESIS: AgentCapability(
        name="Synthesis Agent",
        type=AgentType.SYNTHESIS,
        capabilities=(
            "Combine results",
            "Generate insights",
            "Create visualizations",
            "Prepare reports",
        ),
        description="Synthesizes findings into actionable insights",
    ),
    AgentType.REPORT: AgentCapability(
        name="Report Agent",
        type=AgentType.REPORT,
        capabilities=(
            "Generate comprehensive reports",
            "Format analysis results",
            "Create executive summaries",
            "Export to various formats",
        ),
        description="Creates detailed analysis reports with insights and recommendations",
    ),
}

# Display names used as the `from` field of executor messages
AGENT_NAMES: dict[AgentType, str] = {
    AgentType.DATA_EXTRACTION: "Data Extraction Agent",
    AgentType.CALCULATION: "Calculation Agent",
    AgentType.ASSESSMENT: "Quality Assessment Agent",
    AgentType.VALIDATION: "Validation Agent",
    AgentType.MASTER: "Master Agent",
}


def agent_name(agent_type: AgentType) -> str:
    return AGENT_NAMES.get(agent_type, agent_type.value)
