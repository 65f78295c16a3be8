"""Orchestrator: the public entry point.

Wires the registry, the shared invocation pool, the retry policy and the
workflow engine together:

    with Orchestrator(invoker=my_invoker) as orch:
        orch.register_agent({...})
        orch.register_workflow({...})
        result = orch.execute("my-workflow", {"message": "hello"})
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Optional, Union

from agent_orchestrator.agents.schemas import Agent, AgentSummary
from agent_orchestrator.config import OrchestratorConfig
from agent_orchestrator.errors import OrchestratorClosed
from agent_orchestrator.executor.retry import RetryPolicy
from agent_orchestrator.executor.schemas import ExecutionResult
from agent_orchestrator.executor.step_runner import StepExecutor
from agent_orchestrator.executor.workflow_runner import WorkflowEngine
from agent_orchestrator.llm.client import BackendModelInvoker
from agent_orchestrator.llm.invoker import ModelInvoker, close_invoker
from agent_orchestrator.registry import Registry
from agent_orchestrator.workflows.schemas import Workflow, WorkflowSummary

logger = logging.getLogger(__name__)


class Orchestrator:
    """Registers agents and workflows and executes workflows against them."""

    def __init__(
        self,
        invoker: Optional[ModelInvoker] = None,
        config: Optional[OrchestratorConfig] = None,
        registry: Optional[Registry] = None,
    ):
        self.config = config or OrchestratorConfig.from_env()
        self.invoker = invoker or BackendModelInvoker()
        self.registry = registry or Registry()

        self._pool = ThreadPoolExecutor(
            max_workers=self.config.max_invocation_workers,
            thread_name_prefix="orchestrator-invoke",
        )
        retry_policy = RetryPolicy(
            self.invoker, self._pool, backoff_ms=self.config.retry_backoff_ms
        )
        step_executor = StepExecutor(
            self.registry,
            retry_policy,
            max_parallel_branches=self.config.max_parallel_branches,
        )
        self.engine = WorkflowEngine(
            self.registry,
            step_executor,
            default_deadline_ms=self.config.execution_deadline_ms,
        )

        self._closed = False
        self._stats_lock = threading.Lock()
        self._executions = {"started": 0, "succeeded": 0, "failed": 0}

    # ── Registration ──────────────────────────────────────

    def register_agent(self, agent: Union[Agent, dict[str, Any]]) -> Agent:
        return self.registry.register_agent(agent)

    def register_workflow(self, workflow: Union[Workflow, dict[str, Any]]) -> Workflow:
        return self.registry.register_workflow(workflow)

    def load_definitions(
        self, definitions_dir: Optional[Union[str, Path]] = None
    ) -> dict[str, int]:
        """Load agent and workflow files, defaulting to the configured directory."""
        directory = definitions_dir or self.config.definitions_dir
        if directory is None:
            logger.info("No definitions directory configured; nothing to load")
            return {"agents": 0, "workflows": 0}
        return self.registry.load_definitions(directory)

    # ── Lookup ────────────────────────────────────────────

    def get_agent(self, agent_id: str) -> Agent:
        return self.registry.get_agent(agent_id)

    def get_workflow(self, workflow_id: str) -> Workflow:
        return self.registry.get_workflow(workflow_id)

    def list_agents(self) -> list[AgentSummary]:
        return self.registry.list_agents()

    def list_workflows(self) -> list[WorkflowSummary]:
        return self.registry.list_workflows()

    # ── Execution ─────────────────────────────────────────

    def execute(
        self,
        workflow_id: str,
        input_value: Any = None,
        *,
        deadline_ms: Optional[int] = None,
    ) -> ExecutionResult:
        """Run a registered workflow.

        Raises:
            OrchestratorClosed: shutdown() was already called
            NotFound: unknown workflow id
            WorkflowTimeout: the deadline expired (partial result on ``.result``)

        A shutdown while the execution is running fails the current step with
        ``error="OrchestratorClosed"``. Lookup failures are not counted in stats.
        """
        if self._closed:
            raise OrchestratorClosed("Orchestrator has been shut down")
        self.registry.get_workflow(workflow_id)

        with self._stats_lock:
            self._executions["started"] += 1
        succeeded = False
        try:
            result = self.engine.execute(workflow_id, input_value, deadline_ms=deadline_ms)
            succeeded = result.success
            return result
        finally:
            with self._stats_lock:
                self._executions["succeeded" if succeeded else "failed"] += 1

    def get_stats(self) -> dict[str, Any]:
        with self._stats_lock:
            executions = dict(self._executions)
        return {
            "agents": self.registry.agents.count(),
            "workflows": self.registry.workflows.count(),
            "executions": executions,
            "closed": self._closed,
        }

    # ── Lifecycle ─────────────────────────────────────────

    def shutdown(self) -> None:
        """Release the invocation pool and the invoker. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        self._pool.shutdown(wait=False, cancel_futures=True)
        close_invoker(self.invoker)
        logger.info("Orchestrator shut down")

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "Orchestrator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
