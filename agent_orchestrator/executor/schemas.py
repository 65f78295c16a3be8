"""Executor-side schemas for step outcomes, history and execution results.

These are distinct from the definition schemas (agents, workflows), which
describe what to run. Executor schemas describe what happened.
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from agent_orchestrator.errors import InvariantViolation
from agent_orchestrator.executor.variable_store import VariableStore


class StepStatus(str, Enum):
    """Step execution states. SUCCEEDED and FAILED are terminal."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class HistoryEntry(BaseModel):
    """Outcome of one leaf step (agent step or parallel branch)."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    step_id: str
    duration_ms: int = Field(default=0, ge=0)
    success: bool
    error: Optional[str] = Field(
        default=None, description="Error code, e.g. 'AllModelsExhausted'"
    )
    error_detail: Optional[str] = Field(
        default=None, description="Human-readable description of the last error"
    )
    model_used: Optional[str] = None
    tokens_used: Optional[int] = Field(default=None, ge=0)
    attempts: int = Field(default=0, ge=0, description="Model calls made")
    parent_step_id: Optional[str] = Field(
        default=None, description="Enclosing parallel step, for branch entries"
    )


class ExecutionMetrics(BaseModel):
    """Aggregate counters for one execution."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    steps_succeeded: int = 0
    steps_failed: int = 0
    total_attempts: int = 0
    total_tokens: int = 0
    models_used: dict[str, int] = Field(
        default_factory=dict, description="Model id -> successful calls"
    )

    @classmethod
    def from_history(cls, history: list[HistoryEntry]) -> "ExecutionMetrics":
        models: dict[str, int] = {}
        for entry in history:
            if entry.success and entry.model_used:
                models[entry.model_used] = models.get(entry.model_used, 0) + 1
        return cls(
            steps_succeeded=sum(1 for e in history if e.success),
            steps_failed=sum(1 for e in history if not e.success),
            total_attempts=sum(e.attempts for e in history),
            total_tokens=sum(e.tokens_used or 0 for e in history),
            models_used=models,
        )


class ExecutionMetadata(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    execution_id: str
    workflow_id: str
    start_time: str
    end_time: str


class ExecutionResult(BaseModel):
    """Final, immutable outcome of one execute() call."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    variables: dict[str, Any] = Field(default_factory=dict)
    history: tuple[HistoryEntry, ...] = ()
    total_duration_ms: int = Field(default=0, ge=0)
    success: bool
    error: Optional[str] = Field(default=None, description="Error code of the failure")
    error_detail: Optional[str] = None
    failed_step_id: Optional[str] = None
    step_statuses: dict[str, StepStatus] = Field(
        default_factory=dict,
        description="Final state of every step that left PENDING",
    )
    metadata: ExecutionMetadata
    metrics: ExecutionMetrics = Field(default_factory=ExecutionMetrics)


class ExecuteRequest(BaseModel):
    """Request body for executing a workflow over HTTP."""

    input: Any = None
    deadline_ms: Optional[int] = Field(default=None, gt=0)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ExecutionContext:
    """Mutable state of one execute() call. Never shared between calls."""

    workflow_id: str
    input: Any
    variables: VariableStore = field(default_factory=VariableStore)
    history: list[HistoryEntry] = field(default_factory=list)
    step_statuses: dict[str, StepStatus] = field(default_factory=dict)
    execution_id: str = field(default_factory=lambda: f"exec-{uuid.uuid4().hex[:12]}")
    start_time: str = field(default_factory=utc_now_iso)
    started_at: float = field(default_factory=time.monotonic)
    deadline: Optional[float] = None  # time.monotonic() value

    def remaining_ms(self) -> Optional[int]:
        if self.deadline is None:
            return None
        return max(0, int((self.deadline - time.monotonic()) * 1000))

    def deadline_expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)

    def label(self, step_id: str) -> str:
        return f"{self.workflow_id}/{step_id}"

    def transition(self, step_id: str, status: StepStatus) -> None:
        """Move a step forward. Terminal states cannot be left."""
        current = self.step_statuses.get(step_id, StepStatus.PENDING)
        if current in (StepStatus.SUCCEEDED, StepStatus.FAILED):
            raise InvariantViolation(
                f"Step '{step_id}' is already {current.value}, cannot become {status.value}"
            )
        self.step_statuses[step_id] = status


@dataclass
class StepOutcome:
    """What running a step produced, before the engine decides what is next."""

    step_id: str
    status: StepStatus
    output: Any = None
    error: Optional[str] = None
    error_detail: Optional[str] = None
    failed_step_id: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == StepStatus.SUCCEEDED
