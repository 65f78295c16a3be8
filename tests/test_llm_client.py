"""Tests for the bundled provider-backed invoker."""

import json

import httpx
import pytest

from agent_orchestrator.errors import (
    AuthError,
    InvocationTimeout,
    ProviderError,
    RateLimited,
)
from agent_orchestrator.llm import client as llm_client
from agent_orchestrator.llm.backends import (
    AnthropicBackend,
    GeminiBackend,
    OpenRouterBackend,
)
from agent_orchestrator.llm.client import (
    BackendModelInvoker,
    classify_error,
    render_user_message,
)
from agent_orchestrator.llm.factory import get_backend


def openrouter_backend(handler, model_id="openrouter/meta-llama/llama-3.1-8b-instruct"):
    http_client = httpx.Client(
        transport=httpx.MockTransport(handler),
        base_url="https://openrouter.test/api/v1",
    )
    return OpenRouterBackend(model_id, http_client=http_client)


def completion(content, prompt_tokens=12, completion_tokens=7):
    return httpx.Response(
        200,
        json={
            "choices": [{"message": {"role": "assistant", "content": content}}],
            "usage": {
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
            },
        },
    )


class TestRenderUserMessage:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("plain text", "plain text"),
            ({"message": "from mapping"}, "from mapping"),
            ({"prompt": "a prompt", "other": 1}, "a prompt"),
            (None, ""),
        ],
    )
    def test_rendering(self, value, expected):
        assert render_user_message(value) == expected

    def test_structured_values_become_json(self):
        rendered = render_user_message({"b1": "yes", "b2": "no"})
        assert json.loads(rendered) == {"b1": "yes", "b2": "no"}


class TestClassifyError:
    def _status_error(self, status, headers=None):
        request = httpx.Request("POST", "https://example.test")
        response = httpx.Response(status, headers=headers or {}, request=request)
        return httpx.HTTPStatusError("failed", request=request, response=response)

    def test_http_statuses(self):
        assert isinstance(classify_error(self._status_error(401)), AuthError)
        assert isinstance(classify_error(self._status_error(403)), AuthError)
        assert isinstance(classify_error(self._status_error(500)), ProviderError)

    def test_rate_limit_with_retry_after(self):
        error = classify_error(self._status_error(429, {"retry-after": "3"}))
        assert isinstance(error, RateLimited)
        assert error.retry_after == 3.0

    def test_timeouts(self):
        assert isinstance(classify_error(httpx.ReadTimeout("slow")), InvocationTimeout)
        assert isinstance(classify_error(TimeoutError()), InvocationTimeout)

    def test_missing_api_key(self):
        error = classify_error(RuntimeError("OPENROUTER_API_KEY not set."))
        assert isinstance(error, AuthError)

    def test_invocation_errors_pass_through(self):
        original = RateLimited("x")
        assert classify_error(original) is original


class TestBackendFactory:
    @pytest.mark.parametrize(
        "model_id,provider,backend_type",
        [
            ("claude-sonnet-4-6", None, AnthropicBackend),
            ("gemini-2.5-flash", None, GeminiBackend),
            ("openrouter/deepseek/deepseek-r1", None, OpenRouterBackend),
            ("openai/gpt-4o", "anthropic", OpenRouterBackend),
            ("gpt-4o-mini", "openrouter", OpenRouterBackend),
            ("claude-haiku-4-5", "openrouter", OpenRouterBackend),
            ("my-finetune", "anthropic", AnthropicBackend),
            ("my-finetune", "google", GeminiBackend),
        ],
    )
    def test_routing(self, model_id, provider, backend_type):
        assert isinstance(get_backend(model_id, provider), backend_type)

    def test_unknown_model(self):
        with pytest.raises(ValueError):
            get_backend("mystery-model")


class TestOpenRouterBackend:
    def test_chat_completion_request(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return completion("  Once upon a time.  ")

        backend = openrouter_backend(handler)
        result = backend.execute_sync(
            "You write stories.",
            "a dragon",
            max_tokens=500,
            temperature=0.9,
            timeout_s=5,
        )

        assert seen["path"] == "/api/v1/chat/completions"
        assert seen["body"]["model"] == "meta-llama/llama-3.1-8b-instruct"
        assert seen["body"]["messages"][0] == {"role": "system", "content": "You write stories."}
        assert seen["body"]["temperature"] == 0.9
        assert result.content == "Once upon a time."
        assert (result.input_tokens, result.output_tokens) == (12, 7)

    def test_empty_completion_is_an_error(self):
        backend = openrouter_backend(lambda request: completion("   "))
        with pytest.raises(RuntimeError, match="Empty response"):
            backend.execute_sync("", "x", max_tokens=10, temperature=0, timeout_s=5)


class TestBackendModelInvoker:
    def test_invoke_and_error_mapping(self, monkeypatch):
        responses = iter(
            [
                completion("fine"),
                httpx.Response(429, headers={"retry-after": "2"}, json={}),
            ]
        )
        backend = openrouter_backend(lambda request: next(responses))
        monkeypatch.setattr(llm_client, "get_backend", lambda model, provider: backend)

        invoker = BackendModelInvoker()
        result = invoker.invoke(
            "openrouter/any", "sys", {"message": "hi"},
            temperature=0.5, max_tokens=50, timeout_ms=1000,
        )
        assert result.content == "fine"
        assert result.total_tokens == 19

        with pytest.raises(RateLimited):
            invoker.invoke(
                "openrouter/any", "sys", "again",
                temperature=0.5, max_tokens=50, timeout_ms=1000,
            )

    def test_closed_invoker_rejects_calls(self):
        invoker = BackendModelInvoker()
        invoker.close()
        with pytest.raises(ProviderError):
            invoker.invoke(
                "claude-sonnet-4-6", "sys", "x",
                temperature=0.5, max_tokens=50, timeout_ms=1000,
            )

    def test_unknown_model_is_provider_error(self):
        with pytest.raises(ProviderError):
            BackendModelInvoker().invoke(
                "mystery-model", "sys", "x",
                temperature=0.5, max_tokens=50, timeout_ms=1000,
            )
