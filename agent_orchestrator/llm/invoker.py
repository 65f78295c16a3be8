"""The model-invocation seam between the engine and LLM providers.

The engine only ever talks to a ``ModelInvoker``. Integrators can supply any
object with a matching ``invoke`` method (tests use deterministic stubs);
``BackendModelInvoker`` in ``client.py`` is the bundled provider-backed one.

An invoker signals failure by raising one of the InvocationError subclasses
(AuthError, RateLimited, InvocationTimeout, ProviderError). Any other
exception is treated as a ProviderError by the retry policy.
"""

from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union, runtime_checkable


@dataclass
class InvocationResult:
    """Normalized output of one successful model call."""

    content: str
    model_id: str
    input_tokens: int = 0
    output_tokens: int = 0
    duration_ms: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@runtime_checkable
class ModelInvoker(Protocol):
    """Protocol for model invocation backends."""

    def invoke(
        self,
        model: str,
        system_prompt: str,
        input_value: Any,
        *,
        temperature: float,
        max_tokens: int,
        timeout_ms: int,
    ) -> Union[InvocationResult, str]: ...


def normalize_result(
    raw: Union[InvocationResult, str, Any], model: str
) -> InvocationResult:
    """Coerce whatever an invoker returned into an InvocationResult."""
    if isinstance(raw, InvocationResult):
        return raw
    if isinstance(raw, str):
        return InvocationResult(content=raw, model_id=model)
    return InvocationResult(content=str(raw), model_id=model)


def close_invoker(invoker: Optional[object]) -> None:
    """Release pooled resources held by an invoker, if it holds any."""
    close = getattr(invoker, "close", None)
    if callable(close):
        close()
