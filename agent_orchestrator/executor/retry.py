"""Retry and model-fallback policy around a single agent invocation.

Attempt order for a step with ``retries = r`` and fallbacks ``[f1..fn]``::

    primary x (r + 1), then f1, f2, ... fn once each

Fallbacks are a degraded last resort, so they are not retried. The sequence
stops at the first success; if every attempt fails the step gets
AllModelsExhausted carrying each attempt's error. The most calls a step can
make is therefore exactly ``(r + 1) + n``.

Every attempt runs on the shared invocation pool and is bounded by the step
timeout (else the agent's model timeout), clamped to whatever is left of the
execution deadline. The attempt clock starts once a worker picks the call up;
time spent queued behind other executions' calls only counts against the
deadline. A timed-out attempt is just a failed attempt, unless the
deadline itself has run out, which ends the execution with WorkflowTimeout.
"""

import logging
import threading
import time
from concurrent.futures import (
    CancelledError,
    ThreadPoolExecutor,
    TimeoutError as FuturesTimeout,
)
from dataclasses import dataclass
from typing import Any, Callable, Optional

from agent_orchestrator.agents.schemas import Agent, ModelSpec
from agent_orchestrator.errors import (
    AllModelsExhausted,
    InvocationError,
    InvocationTimeout,
    OrchestratorClosed,
    WorkflowTimeout,
)
from agent_orchestrator.executor.schemas import ExecutionContext
from agent_orchestrator.llm.client import classify_error
from agent_orchestrator.llm.invoker import (
    InvocationResult,
    ModelInvoker,
    normalize_result,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Attempt:
    """One planned model call."""

    model: str
    number: int  # 1-based attempt count on this model
    is_fallback: bool = False


@dataclass
class InvocationOutcome:
    """A successful call and how many attempts it took to get there."""

    result: InvocationResult
    model_used: str
    attempts: int


class FallbackResolver:
    """Plans the ordered sequence of model attempts for one step."""

    def plan(self, model_spec: ModelSpec, retries: int) -> list[Attempt]:
        if retries < 0:
            raise ValueError(f"retries must be >= 0, got {retries}")
        attempts = [
            Attempt(model=model_spec.primary_model, number=n)
            for n in range(1, retries + 2)
        ]
        attempts.extend(
            Attempt(model=model, number=1, is_fallback=True)
            for model in model_spec.fallback_models
        )
        return attempts


class RetryPolicy:
    """Runs an attempt plan against a ModelInvoker with per-attempt timeouts."""

    def __init__(
        self,
        invoker: ModelInvoker,
        invocation_pool: ThreadPoolExecutor,
        *,
        backoff_ms: int = 0,
        resolver: Optional[FallbackResolver] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.invoker = invoker
        self.invocation_pool = invocation_pool
        self.backoff_ms = backoff_ms
        self.resolver = resolver or FallbackResolver()
        self._sleep = sleep

    def run(
        self,
        agent: Agent,
        input_value: Any,
        *,
        retries: int = 0,
        timeout_ms: Optional[int] = None,
        context: Optional[ExecutionContext] = None,
        label: str = "",
    ) -> InvocationOutcome:
        """Call the agent's models in plan order until one succeeds.

        Raises:
            AllModelsExhausted: every planned attempt failed
            WorkflowTimeout: the execution deadline ran out before or during an attempt
            OrchestratorClosed: the invocation pool was shut down mid-plan
        """
        spec = agent.model_spec
        step_timeout_ms = timeout_ms or spec.timeout_ms
        plan = self.resolver.plan(spec, retries)
        label = label or agent.id
        errors: list[tuple[str, InvocationError]] = []

        for index, attempt in enumerate(plan):
            if attempt.number > 1 and self.backoff_ms:
                self._backoff(attempt, context, label)

            attempt_timeout_ms = step_timeout_ms
            if context is not None and context.deadline is not None:
                remaining = context.remaining_ms()
                if remaining <= 0:
                    raise WorkflowTimeout(
                        f"[{label}] Deadline reached before attempt {index + 1}",
                        attempts=len(errors),
                    )
                attempt_timeout_ms = min(step_timeout_ms, remaining)

            if attempt.is_fallback:
                logger.warning(
                    f"[{label}] Falling back to {attempt.model} "
                    f"(attempt {index + 1}/{len(plan)})"
                )
            elif attempt.number > 1:
                logger.warning(
                    f"[{label}] Retry {attempt.number - 1}/{retries} on {attempt.model} "
                    f"(previous error: {errors[-1][1].code})"
                )

            try:
                result = self._invoke(
                    agent, attempt.model, input_value, attempt_timeout_ms, label, context
                )
            except OrchestratorClosed as e:
                raise OrchestratorClosed(e.message, attempts=len(errors)) from e
            except InvocationError as e:
                errors.append((attempt.model, e))
                logger.error(
                    f"[{label}] Attempt {index + 1}/{len(plan)} on {attempt.model} "
                    f"failed: {e.code}: {e.message}"
                )
                if context is not None and context.deadline is not None:
                    if context.remaining_ms() <= 0:
                        raise WorkflowTimeout(
                            f"[{label}] Deadline reached during attempt {index + 1}",
                            attempts=len(errors),
                        ) from e
                continue

            logger.info(
                f"[{label}] Completed on {result.model_id} after {index + 1} "
                f"attempt(s): {result.total_tokens} tokens, {result.duration_ms}ms"
            )
            return InvocationOutcome(
                result=result, model_used=attempt.model, attempts=index + 1
            )

        raise AllModelsExhausted(errors)

    def _invoke(
        self,
        agent: Agent,
        model: str,
        input_value: Any,
        timeout_ms: int,
        label: str,
        context: Optional[ExecutionContext] = None,
    ) -> InvocationResult:
        spec = agent.model_spec
        started = threading.Event()

        def call():
            started.set()
            return self.invoker.invoke(
                model,
                agent.system_prompt,
                input_value,
                temperature=spec.temperature,
                max_tokens=spec.max_tokens,
                timeout_ms=timeout_ms,
            )

        try:
            future = self.invocation_pool.submit(call)
        except RuntimeError:
            raise OrchestratorClosed(
                f"[{label}] Invocation pool is shut down; {model} was not called"
            ) from None
        # A cancelled future never runs, so completion also releases the wait.
        future.add_done_callback(lambda _: started.set())

        # Time spent queued behind other calls only counts against the deadline.
        queue_timeout = None
        if context is not None and context.deadline is not None:
            queue_timeout = max(context.remaining_ms(), 0) / 1000.0
        if not started.wait(queue_timeout) and future.cancel():
            raise InvocationTimeout(
                f"[{label}] No invocation worker was free for {model} "
                f"before the deadline"
            )

        start_time = time.time()
        wait_ms = timeout_ms
        if context is not None and context.deadline is not None:
            wait_ms = min(timeout_ms, max(context.remaining_ms(), 0))
        try:
            raw = future.result(timeout=wait_ms / 1000.0)
        except FuturesTimeout:
            raise InvocationTimeout(
                f"[{label}] {model} did not respond within {wait_ms}ms"
            ) from None
        except CancelledError:
            raise OrchestratorClosed(
                f"[{label}] Invocation pool shut down before {model} was called"
            ) from None
        except InvocationError:
            raise
        except Exception as e:
            raise classify_error(e) from e

        result = normalize_result(raw, model)
        if not result.duration_ms:
            result.duration_ms = int((time.time() - start_time) * 1000)
        return result

    def _backoff(
        self, attempt: Attempt, context: Optional[ExecutionContext], label: str
    ) -> None:
        delay_ms = self.backoff_ms * (2 ** (attempt.number - 2))
        if context is not None and context.deadline is not None:
            delay_ms = min(delay_ms, context.remaining_ms())
        if delay_ms > 0:
            logger.info(f"[{label}] Backing off {delay_ms}ms before retry")
            self._sleep(delay_ms / 1000.0)
