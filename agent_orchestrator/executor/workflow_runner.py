"""Top-level workflow execution.

The engine is the entry point for running a registered workflow. It:

1. Resolves the workflow from the registry (NotFound if absent)
2. Creates a fresh ExecutionContext (own variable store and history)
3. Runs the top-level steps in declared order through the StepExecutor
4. Stops at the first failed step (no partial continuation)
5. Builds an immutable ExecutionResult with variables, history and metrics

Ordinary runtime failures come back as ``success=False`` results. Only two
things escape as exceptions: WorkflowTimeout (carrying the partial result)
and invariant violations such as DuplicateWrite, which mean a bug.
"""

import logging
import time
from typing import Any, Optional

from agent_orchestrator.errors import WorkflowTimeout
from agent_orchestrator.executor.schemas import (
    ExecutionContext,
    ExecutionMetadata,
    ExecutionMetrics,
    ExecutionResult,
    StepOutcome,
    StepStatus,
    utc_now_iso,
)
from agent_orchestrator.executor.step_runner import StepExecutor

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Drives one workflow execution per execute() call."""

    def __init__(
        self,
        registry,
        step_executor: StepExecutor,
        *,
        default_deadline_ms: Optional[int] = None,
    ):
        self.registry = registry
        self.step_executor = step_executor
        self.default_deadline_ms = default_deadline_ms

    def execute(
        self,
        workflow_id: str,
        input_value: Any = None,
        *,
        deadline_ms: Optional[int] = None,
    ) -> ExecutionResult:
        """Run a workflow to completion or first failure.

        Raises:
            NotFound: no workflow with this id is registered
            WorkflowTimeout: the deadline expired; ``.result`` is the partial result
        """
        workflow = self.registry.get_workflow(workflow_id)

        deadline_ms = deadline_ms or self.default_deadline_ms
        context = ExecutionContext(workflow_id=workflow.id, input=input_value)
        if deadline_ms:
            context.deadline = time.monotonic() + deadline_ms / 1000.0

        logger.info(
            f"[{workflow.id}] Starting execution {context.execution_id}: "
            f"{len(workflow.steps)} top-level steps"
            + (f", deadline={deadline_ms}ms" if deadline_ms else "")
        )

        try:
            outcome = self.step_executor.run_sequence(workflow.steps, input_value, context)
        except WorkflowTimeout as e:
            for step_id, status in list(context.step_statuses.items()):
                if status == StepStatus.RUNNING:
                    context.step_statuses[step_id] = StepStatus.FAILED
            result = self._build_result(
                context,
                success=False,
                error=e.code,
                error_detail=e.message,
            )
            logger.error(
                f"[{workflow.id}] Execution {context.execution_id} timed out after "
                f"{result.total_duration_ms}ms ({len(result.history)} history entries)"
            )
            raise WorkflowTimeout(e.message, result=result) from e

        result = self._result_from_outcome(context, outcome)
        logger.info(
            f"[{workflow.id}] Execution {context.execution_id} finished: "
            f"success={result.success}, {len(result.history)} history entries, "
            f"{result.metrics.total_tokens} tokens, {result.total_duration_ms}ms"
        )
        return result

    def _result_from_outcome(
        self, context: ExecutionContext, outcome: StepOutcome
    ) -> ExecutionResult:
        if outcome.succeeded:
            return self._build_result(context, success=True)
        return self._build_result(
            context,
            success=False,
            error=outcome.error,
            error_detail=outcome.error_detail,
            failed_step_id=outcome.failed_step_id,
        )

    def _build_result(
        self,
        context: ExecutionContext,
        *,
        success: bool,
        error: Optional[str] = None,
        error_detail: Optional[str] = None,
        failed_step_id: Optional[str] = None,
    ) -> ExecutionResult:
        history = list(context.history)
        return ExecutionResult(
            variables=context.variables.snapshot(),
            history=tuple(history),
            total_duration_ms=context.elapsed_ms(),
            success=success,
            error=error,
            error_detail=error_detail,
            failed_step_id=failed_step_id,
            step_statuses=dict(context.step_statuses),
            metadata=ExecutionMetadata(
                execution_id=context.execution_id,
                workflow_id=context.workflow_id,
                start_time=context.start_time,
                end_time=utc_now_iso(),
            ),
            metrics=ExecutionMetrics.from_history(history),
        )
