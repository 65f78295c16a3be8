"""Executes single steps and step sequences.

Each step moves PENDING -> RUNNING -> SUCCEEDED | FAILED. Retries happen only
inside the retry policy for agent calls; a failed step is never re-run.

- Agent step: retry policy around one agent, commit the text output.
- Condition step: evaluate, then run the chosen branch with the same sequence
  runner the engine uses for the top level. The branch's last output becomes
  the condition step's output.
- Parallel step: every branch gets the same input on a thread pool. The step
  succeeds only if every branch does; its output maps branch id -> output.

History gets one entry per leaf (agent step or branch), appended on the
engine's thread. Branch workers only return entries, never touch the context.
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Any, Optional, Sequence, Union

from agent_orchestrator.errors import (
    AllModelsExhausted,
    InvalidExpression,
    MissingVariable,
    OrchestratorClosed,
    WorkflowTimeout,
)
from agent_orchestrator.executor.conditions import ConditionEvaluator
from agent_orchestrator.executor.retry import RetryPolicy
from agent_orchestrator.executor.schemas import (
    ExecutionContext,
    HistoryEntry,
    StepOutcome,
    StepStatus,
)
from agent_orchestrator.executor.variable_store import resolve_input
from agent_orchestrator.workflows.schemas import (
    AgentStep,
    ConditionStep,
    ParallelBranch,
    ParallelFailurePolicy,
    ParallelStep,
)

logger = logging.getLogger(__name__)

AnyStep = Union[AgentStep, ConditionStep, ParallelStep]


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class StepExecutor:
    """Runs steps against one execution context."""

    def __init__(
        self,
        registry,
        retry_policy: RetryPolicy,
        *,
        evaluator: Optional[ConditionEvaluator] = None,
        max_parallel_branches: int = 8,
    ):
        self.registry = registry
        self.retry_policy = retry_policy
        self.evaluator = evaluator or ConditionEvaluator()
        self.max_parallel_branches = max_parallel_branches

    # ── Sequences ─────────────────────────────────────────

    def run_sequence(
        self,
        steps: Sequence[AnyStep],
        sequence_input: Any,
        context: ExecutionContext,
    ) -> StepOutcome:
        """Run steps in order, stopping at the first failure.

        The returned outcome carries the last step's output, or the sequence
        input itself when there are no steps.
        """
        output = sequence_input
        last_id = ""
        for index, step in enumerate(steps):
            if context.deadline_expired():
                raise WorkflowTimeout(
                    f"[{context.label(step.id)}] Deadline reached before step started"
                )
            step_input = resolve_input(steps, index, sequence_input, context.variables)
            outcome = self.run_step(step, step_input, context)
            if not outcome.succeeded:
                return outcome
            output = outcome.output
            last_id = step.id
        return StepOutcome(step_id=last_id, status=StepStatus.SUCCEEDED, output=output)

    def run_step(
        self, step: AnyStep, step_input: Any, context: ExecutionContext
    ) -> StepOutcome:
        context.transition(step.id, StepStatus.RUNNING)
        logger.info(f"[{context.label(step.id)}] Running {step.type} step")

        if isinstance(step, AgentStep):
            outcome = self._run_agent_step(step, step_input, context)
        elif isinstance(step, ConditionStep):
            outcome = self._run_condition_step(step, step_input, context)
        elif isinstance(step, ParallelStep):
            outcome = self._run_parallel_step(step, step_input, context)
        else:
            raise TypeError(f"Unsupported step type: {type(step).__name__}")

        context.transition(step.id, outcome.status)
        if outcome.succeeded:
            logger.info(f"[{context.label(step.id)}] Succeeded")
        else:
            logger.error(
                f"[{context.label(step.id)}] Failed: {outcome.error}"
                + (f" - {outcome.error_detail}" if outcome.error_detail else "")
            )
        return outcome

    # ── Agent steps ───────────────────────────────────────

    def _run_agent_step(
        self, step: AgentStep, step_input: Any, context: ExecutionContext
    ) -> StepOutcome:
        entry, outcome = self._invoke_leaf(
            leaf_id=step.id,
            agent_id=step.agent_id,
            retries=step.retries,
            timeout_ms=step.timeout_ms,
            step_input=step_input,
            context=context,
        )
        context.history.append(entry)
        if outcome.error == WorkflowTimeout.code:
            raise WorkflowTimeout(
                f"[{context.label(step.id)}] Deadline reached during step"
            )
        if outcome.succeeded:
            context.variables.set(step.id, outcome.output)
        return outcome

    def _invoke_leaf(
        self,
        *,
        leaf_id: str,
        agent_id: str,
        retries: int,
        timeout_ms: Optional[int],
        step_input: Any,
        context: ExecutionContext,
        parent_step_id: Optional[str] = None,
    ) -> tuple[HistoryEntry, StepOutcome]:
        """One agent call under the retry policy. Safe to run on a worker thread."""
        agent = self.registry.get_agent(agent_id)
        start = time.monotonic()
        try:
            invocation = self.retry_policy.run(
                agent,
                step_input,
                retries=retries,
                timeout_ms=timeout_ms,
                context=context,
                label=context.label(leaf_id),
            )
        except AllModelsExhausted as e:
            last = e.last_error
            detail = f"{last.code}: {last.message}" if last else e.message
            entry = HistoryEntry(
                step_id=leaf_id,
                duration_ms=_elapsed_ms(start),
                success=False,
                error=e.code,
                error_detail=detail,
                attempts=len(e.attempt_errors),
                parent_step_id=parent_step_id,
            )
            outcome = StepOutcome(
                step_id=leaf_id,
                status=StepStatus.FAILED,
                error=e.code,
                error_detail=detail,
                failed_step_id=leaf_id,
            )
            return entry, outcome
        except (WorkflowTimeout, OrchestratorClosed) as e:
            entry = HistoryEntry(
                step_id=leaf_id,
                duration_ms=_elapsed_ms(start),
                success=False,
                error=e.code,
                error_detail=e.message,
                attempts=e.attempts,
                parent_step_id=parent_step_id,
            )
            outcome = StepOutcome(
                step_id=leaf_id,
                status=StepStatus.FAILED,
                error=e.code,
                error_detail=e.message,
                failed_step_id=leaf_id,
            )
            return entry, outcome

        result = invocation.result
        entry = HistoryEntry(
            step_id=leaf_id,
            duration_ms=_elapsed_ms(start),
            success=True,
            model_used=invocation.model_used,
            tokens_used=result.total_tokens,
            attempts=invocation.attempts,
            parent_step_id=parent_step_id,
        )
        outcome = StepOutcome(
            step_id=leaf_id, status=StepStatus.SUCCEEDED, output=result.content
        )
        return entry, outcome

    # ── Condition steps ───────────────────────────────────

    def _run_condition_step(
        self, step: ConditionStep, step_input: Any, context: ExecutionContext
    ) -> StepOutcome:
        start = time.monotonic()
        try:
            taken = self.evaluator.evaluate(step.condition, context.variables, step_input)
        except (InvalidExpression, MissingVariable) as e:
            context.history.append(
                HistoryEntry(
                    step_id=step.id,
                    duration_ms=_elapsed_ms(start),
                    success=False,
                    error=e.code,
                    error_detail=e.message,
                )
            )
            return StepOutcome(
                step_id=step.id,
                status=StepStatus.FAILED,
                error=e.code,
                error_detail=e.message,
                failed_step_id=step.id,
            )

        branch = step.true_steps if taken else step.false_steps
        logger.info(
            f"[{context.label(step.id)}] Condition {step.condition!r} is {taken}, "
            f"running {'true' if taken else 'false'} branch ({len(branch)} steps)"
        )

        outcome = self.run_sequence(branch, step_input, context)
        if not outcome.succeeded:
            return StepOutcome(
                step_id=step.id,
                status=StepStatus.FAILED,
                error=outcome.error,
                error_detail=outcome.error_detail,
                failed_step_id=outcome.failed_step_id,
            )

        context.variables.set(step.id, outcome.output)
        return StepOutcome(step_id=step.id, status=StepStatus.SUCCEEDED, output=outcome.output)

    # ── Parallel steps ────────────────────────────────────

    def _run_parallel_step(
        self, step: ParallelStep, step_input: Any, context: ExecutionContext
    ) -> StepOutcome:
        fail_fast = step.failure_policy == ParallelFailurePolicy.FAIL_FAST
        workers = min(len(step.branches), self.max_parallel_branches)
        outputs: dict[str, Any] = {}
        first_failure: Optional[StepOutcome] = None
        timed_out = False

        pool = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix=f"branch-{step.id}"
        )
        futures: dict[Future, ParallelBranch] = {}
        try:
            for branch in step.branches:
                context.transition(branch.id, StepStatus.RUNNING)
                future = pool.submit(
                    self._invoke_leaf,
                    leaf_id=branch.id,
                    agent_id=branch.agent_id,
                    retries=branch.retries,
                    timeout_ms=branch.timeout_ms,
                    step_input=step_input,
                    context=context,
                    parent_step_id=step.id,
                )
                futures[future] = branch

            for future in as_completed(futures):
                branch = futures[future]
                entry, outcome = future.result()
                context.history.append(entry)
                context.transition(branch.id, outcome.status)

                if outcome.succeeded:
                    outputs[branch.id] = outcome.output
                    continue

                if outcome.error == WorkflowTimeout.code:
                    timed_out = True
                if first_failure is None:
                    first_failure = outcome
                    logger.warning(
                        f"[{context.label(step.id)}] Branch '{branch.id}' failed: "
                        f"{outcome.error}"
                    )
                if fail_fast:
                    break
        finally:
            # wait_all joins every branch; fail_fast abandons the stragglers
            pool.shutdown(wait=not fail_fast, cancel_futures=fail_fast)

        if fail_fast and first_failure is not None:
            for branch in futures.values():
                if context.step_statuses.get(branch.id) == StepStatus.RUNNING:
                    context.step_statuses.pop(branch.id, None)

        if timed_out:
            raise WorkflowTimeout(
                f"[{context.label(step.id)}] Deadline reached during parallel step"
            )

        if first_failure is not None:
            return StepOutcome(
                step_id=step.id,
                status=StepStatus.FAILED,
                error=first_failure.error,
                error_detail=(
                    f"Branch '{first_failure.step_id}' failed: {first_failure.error_detail}"
                ),
                failed_step_id=step.id,
            )

        mapping = {branch.id: outputs[branch.id] for branch in step.branches}
        for branch in step.branches:
            context.variables.set(branch.id, outputs[branch.id])
        context.variables.set(step.id, mapping)
        return StepOutcome(step_id=step.id, status=StepStatus.SUCCEEDED, output=mapping)
