"""LLM backend abstraction for multi-provider support.

Provides a unified interface for calling different LLM providers
(Anthropic Claude, Google Gemini, OpenRouter) with a consistent response format.

Each backend handles provider-specific concerns:
- Client creation, pooling and timeout configuration
- Request shaping (system prompt, temperature, token cap)
- Response parsing and token counting

The executor handles model-agnostic concerns:
- Retry and fallback sequencing
- Per-attempt timeout enforcement
- Error classification into the invocation error taxonomy
"""

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = os.environ.get(
    "OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"
)


@dataclass
class LLMCallResult:
    """Normalized response from any LLM backend."""

    content: str
    model_id: str
    input_tokens: int
    output_tokens: int
    duration_ms: int


@runtime_checkable
class ModelBackend(Protocol):
    """Protocol for LLM backend implementations."""

    @property
    def model_id(self) -> str: ...

    def execute_sync(
        self,
        system_prompt: str,
        user_message: str,
        *,
        max_tokens: int,
        temperature: float,
        timeout_s: float,
        label: str = "",
    ) -> LLMCallResult: ...

    def close(self) -> None: ...


def _timeout(timeout_s: float) -> httpx.Timeout:
    return httpx.Timeout(
        connect=min(timeout_s, 30.0),
        read=timeout_s,
        write=min(timeout_s, 60.0),
        pool=min(timeout_s, 30.0),
    )


class AnthropicBackend:
    """Anthropic Claude backend.

    One SDK client per backend instance, created lazily and reused across
    calls so its HTTP connection pool is shared. Requires ANTHROPIC_API_KEY.
    """

    def __init__(self, model_id: str = "claude-sonnet-4-6"):
        self._model_id = model_id
        self._client = None
        self._lock = threading.Lock()

    @property
    def model_id(self) -> str:
        return self._model_id

    def _get_client(self):
        with self._lock:
            if self._client is None:
                from anthropic import Anthropic

                self._client = Anthropic(max_retries=0)
            return self._client

    def execute_sync(
        self,
        system_prompt: str,
        user_message: str,
        *,
        max_tokens: int,
        temperature: float,
        timeout_s: float,
        label: str = "",
    ) -> LLMCallResult:
        client = self._get_client()
        start_time = time.time()

        kwargs: dict[str, Any] = {
            "model": self._model_id,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": user_message}],
            "timeout": _timeout(timeout_s),
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        logger.info(
            f"[{label}] Anthropic call: model={self._model_id}, "
            f"max_tokens={max_tokens}, temperature={temperature}, "
            f"user_len={len(user_message):,}"
        )
        response = client.messages.create(**kwargs)
        duration_ms = int((time.time() - start_time) * 1000)

        raw_text = ""
        for block in response.content:
            if hasattr(block, "text"):
                raw_text += block.text

        if not raw_text.strip():
            raise RuntimeError(f"[{label}] Empty response from {self._model_id}")

        return LLMCallResult(
            content=raw_text.strip(),
            model_id=self._model_id,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            duration_ms=duration_ms,
        )

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None


class GeminiBackend:
    """Google Gemini backend.

    Requires GEMINI_API_KEY environment variable.
    Requires google-genai package: pip install google-genai
    """

    def __init__(self, model_id: str = "gemini-3.1-pro-preview"):
        self._model_id = model_id
        self._client = None
        self._lock = threading.Lock()

    @property
    def model_id(self) -> str:
        return self._model_id

    def _get_client(self):
        """Get a Gemini client. Lazy import to avoid requiring google-genai."""
        with self._lock:
            if self._client is not None:
                return self._client
            try:
                from google import genai
            except ImportError:
                raise RuntimeError(
                    "google-genai package not installed. "
                    "Install with: pip install google-genai"
                )

            api_key = os.environ.get("GEMINI_API_KEY")
            if not api_key:
                raise RuntimeError(
                    "GEMINI_API_KEY not set. Set the environment variable to use Gemini."
                )
            self._client = genai.Client(api_key=api_key)
            return self._client

    def execute_sync(
        self,
        system_prompt: str,
        user_message: str,
        *,
        max_tokens: int,
        temperature: float,
        timeout_s: float,
        label: str = "",
    ) -> LLMCallResult:
        client = self._get_client()
        from google import genai

        start_time = time.time()

        config_kwargs: dict[str, Any] = {
            "max_output_tokens": max_tokens,
            "temperature": temperature,
            "http_options": genai.types.HttpOptions(timeout=int(timeout_s * 1000)),
        }
        if system_prompt:
            config_kwargs["system_instruction"] = system_prompt

        logger.info(
            f"[{label}] Gemini call: model={self._model_id}, "
            f"max_tokens={max_tokens}, temperature={temperature}"
        )
        response = client.models.generate_content(
            model=self._model_id,
            contents=user_message,
            config=genai.types.GenerateContentConfig(**config_kwargs),
        )
        duration_ms = int((time.time() - start_time) * 1000)

        raw_text = ""
        if response.candidates and response.candidates[0].content:
            for part in response.candidates[0].content.parts:
                if getattr(part, "thought", False):
                    continue
                raw_text += getattr(part, "text", "") or ""

        if not raw_text.strip():
            raise RuntimeError(f"[{label}] Empty response from {self._model_id}")

        estimated_input_tokens = (len(system_prompt) + len(user_message)) // 4
        usage = getattr(response, "usage_metadata", None)
        input_tokens = getattr(usage, "prompt_token_count", None) or estimated_input_tokens
        output_tokens = getattr(usage, "candidates_token_count", None) or len(raw_text) // 4

        return LLMCallResult(
            content=raw_text.strip(),
            model_id=self._model_id,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            duration_ms=duration_ms,
        )

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                close = getattr(self._client, "close", None)
                if callable(close):
                    close()
                self._client = None


class OpenRouterBackend:
    """OpenRouter backend (OpenAI-compatible chat completions over HTTP).

    Accepts model ids with or without the ``openrouter/`` prefix, e.g.
    ``openrouter/meta-llama/llama-3.1-8b-instruct`` or ``openai/gpt-4o``.
    Requires OPENROUTER_API_KEY.
    """

    def __init__(self, model_id: str, http_client: Optional[httpx.Client] = None):
        self._model_id = model_id
        self._client = http_client
        self._owns_client = http_client is None
        self._lock = threading.Lock()

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def api_model(self) -> str:
        if self._model_id.startswith("openrouter/"):
            return self._model_id[len("openrouter/"):]
        return self._model_id

    def _get_client(self) -> httpx.Client:
        with self._lock:
            if self._client is None:
                api_key = os.environ.get("OPENROUTER_API_KEY")
                if not api_key:
                    raise RuntimeError(
                        "OPENROUTER_API_KEY not set. "
                        "Set the environment variable to use OpenRouter."
                    )
                self._client = httpx.Client(
                    base_url=OPENROUTER_BASE_URL,
                    headers={"Authorization": f"Bearer {api_key}"},
                )
            return self._client

    def execute_sync(
        self,
        system_prompt: str,
        user_message: str,
        *,
        max_tokens: int,
        temperature: float,
        timeout_s: float,
        label: str = "",
    ) -> LLMCallResult:
        client = self._get_client()
        start_time = time.time()

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_message})

        logger.info(
            f"[{label}] OpenRouter call: model={self.api_model}, "
            f"max_tokens={max_tokens}, temperature={temperature}"
        )
        response = client.post(
            "/chat/completions",
            json={
                "model": self.api_model,
                "messages": messages,
                "max_tokens": max_tokens,
                "temperature": temperature,
            },
            timeout=_timeout(timeout_s),
        )
        response.raise_for_status()
        data = response.json()
        duration_ms = int((time.time() - start_time) * 1000)

        if "error" in data:
            raise RuntimeError(f"[{label}] OpenRouter error: {data['error']}")

        choices = data.get("choices") or []
        raw_text = ""
        if choices:
            raw_text = (choices[0].get("message") or {}).get("content") or ""
        if not raw_text.strip():
            raise RuntimeError(f"[{label}] Empty response from {self._model_id}")

        usage = data.get("usage") or {}
        return LLMCallResult(
            content=raw_text.strip(),
            model_id=self._model_id,
            input_tokens=int(usage.get("prompt_tokens") or 0),
            output_tokens=int(usage.get("completion_tokens") or 0),
            duration_ms=duration_ms,
        )

    def close(self) -> None:
        with self._lock:
            if self._client is not None and self._owns_client:
                self._client.close()
            self._client = None
