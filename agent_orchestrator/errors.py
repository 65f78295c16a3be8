"""Error taxonomy for the orchestrator.

Every error carries a stable ``code`` (the class name by default) so history
entries and API responses can report failures without leaking tracebacks.

Groups:
- Registration: DuplicateId, InvalidConfig, UnknownAgent
- Lookup: NotFound, MissingVariable
- Evaluation: InvalidExpression
- Invocation: AuthError, RateLimited, InvocationTimeout, ProviderError
  (recovered by the retry policy, surfaced as AllModelsExhausted)
- Workflow-level: WorkflowTimeout
- Programming errors: DuplicateWrite (never caught by the engine)
"""

from typing import Any, Optional


class OrchestratorError(Exception):
    """Base class for all orchestrator errors."""

    code: str = "OrchestratorError"

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "code" not in cls.__dict__:
            cls.code = cls.__name__

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


# ── Registration ──────────────────────────────────────────


class DuplicateId(OrchestratorError):
    def __init__(self, kind: str, item_id: str):
        super().__init__(f"{kind} '{item_id}' is already registered")
        self.kind = kind
        self.item_id = item_id


class InvalidConfig(OrchestratorError):
    pass


class UnknownAgent(OrchestratorError):
    def __init__(self, agent_id: str, step_id: Optional[str] = None):
        where = f" (referenced by step '{step_id}')" if step_id else ""
        super().__init__(f"Unknown agent '{agent_id}'{where}")
        self.agent_id = agent_id
        self.step_id = step_id


# ── Lookup ────────────────────────────────────────────────


class NotFound(OrchestratorError):
    def __init__(self, kind: str, item_id: str):
        super().__init__(f"{kind} not found: {item_id}")
        self.kind = kind
        self.item_id = item_id


class MissingVariable(OrchestratorError):
    def __init__(self, step_id: str):
        super().__init__(f"No committed output for step '{step_id}'")
        self.step_id = step_id


class InvalidExpression(OrchestratorError):
    def __init__(self, message: str, expression: str = ""):
        if expression:
            message = f"{message} in expression {expression!r}"
        super().__init__(message)
        self.expression = expression


# ── Invocation ────────────────────────────────────────────


class InvocationError(OrchestratorError):
    """A single model call failed. Retryable by the retry policy."""


class AuthError(InvocationError):
    pass


class RateLimited(InvocationError):
    def __init__(self, message: str = "", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class InvocationTimeout(InvocationError):
    code = "Timeout"


class ProviderError(InvocationError):
    pass


class AllModelsExhausted(OrchestratorError):
    """Every model/attempt combination of a step failed."""

    def __init__(self, attempt_errors: list[tuple[str, InvocationError]]):
        self.attempt_errors = list(attempt_errors)
        if self.attempt_errors:
            model, last = self.attempt_errors[-1]
            message = (
                f"All {len(self.attempt_errors)} attempts failed. "
                f"Last error ({model}): {last.code}: {last.message}"
            )
        else:
            message = "No attempts were made"
        super().__init__(message)

    @property
    def last_error(self) -> Optional[InvocationError]:
        return self.attempt_errors[-1][1] if self.attempt_errors else None


# ── Workflow-level ────────────────────────────────────────


class WorkflowTimeout(OrchestratorError):
    """The execution deadline expired. ``result`` holds the partial outcome."""

    def __init__(self, message: str = "", result: Any = None, attempts: int = 0):
        super().__init__(message or "Execution deadline exceeded")
        self.result = result
        self.attempts = attempts


class OrchestratorClosed(OrchestratorError):
    """The orchestrator was shut down, before or during an execution."""

    def __init__(self, message: str = "", attempts: int = 0):
        super().__init__(message or "Orchestrator has been shut down")
        self.attempts = attempts


# ── Programming errors ────────────────────────────────────


class InvariantViolation(OrchestratorError):
    pass


class DuplicateWrite(InvariantViolation):
    def __init__(self, step_id: str):
        super().__init__(f"Output for step '{step_id}' was already committed")
        self.step_id = step_id
