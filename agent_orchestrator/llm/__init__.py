"""Model invocation: the ModelInvoker seam and provider-backed implementation.

The engine depends only on the ``ModelInvoker`` protocol. The backends
(Anthropic, Google Gemini, OpenRouter) and ``BackendModelInvoker`` are the
bundled implementation; integrators may pass any other invoker.
"""

from agent_orchestrator.llm.invoker import (
    InvocationResult,
    ModelInvoker,
    close_invoker,
    normalize_result,
)
from agent_orchestrator.llm.backends import (
    LLMCallResult,
    ModelBackend,
    AnthropicBackend,
    GeminiBackend,
    OpenRouterBackend,
)
from agent_orchestrator.llm.factory import get_backend
from agent_orchestrator.llm.client import (
    BackendModelInvoker,
    classify_error,
    render_user_message,
)

__all__ = [
    "InvocationResult",
    "ModelInvoker",
    "close_invoker",
    "normalize_result",
    "LLMCallResult",
    "ModelBackend",
    "AnthropicBackend",
    "GeminiBackend",
    "OpenRouterBackend",
    "get_backend",
    "BackendModelInvoker",
    "classify_error",
    "render_user_message",
]
