"""Provider-backed ModelInvoker.

Turns a step's input value into a user message, routes the call to the right
backend for the model id, and maps provider exceptions onto the invocation
error taxonomy so the retry policy can reason about them.
"""

import json
import logging
import threading
from typing import Any, Optional

import httpx

from agent_orchestrator.errors import (
    AuthError,
    InvocationError,
    InvocationTimeout,
    ProviderError,
    RateLimited,
)
from agent_orchestrator.llm.factory import Backend, get_backend
from agent_orchestrator.llm.invoker import InvocationResult

logger = logging.getLogger(__name__)

# Keys checked, in order, when a mapping input carries the prompt text itself
MESSAGE_KEYS = ("message", "prompt", "text", "content")


def render_user_message(input_value: Any) -> str:
    """Render a step input as the user message text.

    Strings pass through. Mappings with a message-like key (``message``,
    ``prompt``, ``text``, ``content``) use that value. Anything else is
    serialized as pretty JSON.
    """
    if input_value is None:
        return ""
    if isinstance(input_value, str):
        return input_value
    if isinstance(input_value, dict):
        for key in MESSAGE_KEYS:
            value = input_value.get(key)
            if isinstance(value, str):
                return value
    try:
        return json.dumps(input_value, indent=2, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(input_value)


def _status_code(exc: BaseException) -> Optional[int]:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    status = getattr(exc, "status_code", None)
    return status if isinstance(status, int) else None


def classify_error(exc: BaseException) -> InvocationError:
    """Map an arbitrary provider exception to an InvocationError subclass."""
    if isinstance(exc, InvocationError):
        return exc

    message = f"{type(exc).__name__}: {exc}"
    status = _status_code(exc)
    name = type(exc).__name__.lower()
    text = str(exc).lower()

    if isinstance(exc, (httpx.TimeoutException, TimeoutError)) or "timeout" in name:
        return InvocationTimeout(message)
    if status in (401, 403) or "authentication" in name or "permissiondenied" in name:
        return AuthError(message)
    if "invalid_api_key" in text or ("api_key" in text and "not set" in text):
        return AuthError(message)
    if status == 429 or "ratelimit" in name or "rate limit" in text:
        retry_after = None
        response = getattr(exc, "response", None)
        headers = getattr(response, "headers", None)
        if headers is not None and headers.get("retry-after"):
            try:
                retry_after = float(headers["retry-after"])
            except ValueError:
                retry_after = None
        return RateLimited(message, retry_after=retry_after)
    if "timed out" in text:
        return InvocationTimeout(message)
    return ProviderError(message)


class BackendModelInvoker:
    """ModelInvoker backed by the Anthropic / Gemini / OpenRouter backends.

    Backends are created on first use per model id and cached, so their HTTP
    connection pools are reused across calls. ``close()`` releases them all.
    """

    def __init__(self, default_provider: Optional[str] = None):
        self.default_provider = default_provider
        self._backends: dict[str, Backend] = {}
        self._lock = threading.Lock()
        self._closed = False

    def _backend_for(self, model: str) -> Backend:
        with self._lock:
            if self._closed:
                raise ProviderError("Invoker is closed")
            backend = self._backends.get(model)
            if backend is None:
                try:
                    backend = get_backend(model, self.default_provider)
                except ValueError as e:
                    raise ProviderError(str(e)) from e
                self._backends[model] = backend
            return backend

    def invoke(
        self,
        model: str,
        system_prompt: str,
        input_value: Any,
        *,
        temperature: float,
        max_tokens: int,
        timeout_ms: int,
    ) -> InvocationResult:
        backend = self._backend_for(model)
        try:
            result = backend.execute_sync(
                system_prompt=system_prompt,
                user_message=render_user_message(input_value),
                max_tokens=max_tokens,
                temperature=temperature,
                timeout_s=timeout_ms / 1000.0,
                label=model,
            )
        except Exception as e:
            raise classify_error(e) from e

        return InvocationResult(
            content=result.content,
            model_id=result.model_id,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            duration_ms=result.duration_ms,
        )

    def close(self) -> None:
        with self._lock:
            backends = list(self._backends.values())
            self._backends.clear()
            self._closed = True
        for backend in backends:
            try:
                backend.close()
            except Exception as e:
                logger.warning(f"Failed to close backend {backend.model_id}: {e}")
