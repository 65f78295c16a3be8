"""Agent Orchestrator - multi-agent workflow execution.

Register agents (a model, fallbacks, a system prompt) and workflows (agent,
condition and parallel steps), then execute workflows against a pluggable
model invoker:
- Per-step retries, then fallback models, with per-attempt timeouts
- Write-once variable store of step outputs
- Sandboxed condition expressions
- Per-leaf execution history and aggregate metrics
"""

from agent_orchestrator.agents.schemas import Agent, ModelSpec
from agent_orchestrator.config import OrchestratorConfig, configure_logging
from agent_orchestrator.errors import (
    AllModelsExhausted,
    AuthError,
    DuplicateId,
    DuplicateWrite,
    InvalidConfig,
    InvalidExpression,
    InvocationError,
    InvocationTimeout,
    MissingVariable,
    NotFound,
    OrchestratorClosed,
    OrchestratorError,
    ProviderError,
    RateLimited,
    UnknownAgent,
    WorkflowTimeout,
)
from agent_orchestrator.executor.schemas import (
    ExecutionResult,
    HistoryEntry,
    StepStatus,
)
from agent_orchestrator.llm.invoker import InvocationResult, ModelInvoker
from agent_orchestrator.orchestrator import Orchestrator
from agent_orchestrator.registry import Registry
from agent_orchestrator.workflows.schemas import (
    AgentStep,
    ConditionStep,
    ParallelBranch,
    ParallelStep,
    Workflow,
)

__version__ = "0.1.0"

__all__ = [
    "Agent",
    "ModelSpec",
    "OrchestratorConfig",
    "configure_logging",
    "AllModelsExhausted",
    "AuthError",
    "DuplicateId",
    "DuplicateWrite",
    "InvalidConfig",
    "InvalidExpression",
    "InvocationError",
    "InvocationTimeout",
    "MissingVariable",
    "NotFound",
    "OrchestratorClosed",
    "OrchestratorError",
    "ProviderError",
    "RateLimited",
    "UnknownAgent",
    "WorkflowTimeout",
    "ExecutionResult",
    "HistoryEntry",
    "StepStatus",
    "InvocationResult",
    "ModelInvoker",
    "Orchestrator",
    "Registry",
    "AgentStep",
    "ConditionStep",
    "ParallelBranch",
    "ParallelStep",
    "Workflow",
]
