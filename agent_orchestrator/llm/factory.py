"""Model backend factory.

Resolves (provider, model id) pairs to the appropriate backend implementation.
"""

import logging
from typing import Optional, Union

from agent_orchestrator.llm.backends import (
    AnthropicBackend,
    GeminiBackend,
    OpenRouterBackend,
)

logger = logging.getLogger(__name__)

Backend = Union[AnthropicBackend, GeminiBackend, OpenRouterBackend]


def get_backend(model_id: str, provider: Optional[str] = None) -> Backend:
    """Get the appropriate backend for a model ID.

    An explicit ``openrouter`` provider wins. Otherwise the model id prefix
    decides; a bare ``vendor/model`` id (e.g. ``openai/gpt-4o``) is treated
    as an OpenRouter id.

    Args:
        model_id: Full model identifier (e.g. 'claude-sonnet-4-6',
                  'gemini-3.1-pro-preview', 'openrouter/deepseek/deepseek-r1')
        provider: Provider name from the agent's model spec

    Returns:
        Backend instance for the model

    Raises:
        ValueError: If model_id is not recognized
    """
    provider = (provider or "").lower()
    if provider == "openrouter" or model_id.startswith("openrouter/"):
        return OpenRouterBackend(model_id=model_id)
    if model_id.startswith("claude-"):
        return AnthropicBackend(model_id=model_id)
    if model_id.startswith("gemini-"):
        return GeminiBackend(model_id=model_id)
    if "/" in model_id:
        return OpenRouterBackend(model_id=model_id)
    if provider == "anthropic":
        return AnthropicBackend(model_id=model_id)
    if provider in ("gemini", "google"):
        return GeminiBackend(model_id=model_id)
    raise ValueError(
        f"Unknown model: '{model_id}' (provider={provider or 'unset'}). "
        f"Expected a model ID starting with 'claude-', 'gemini-', or 'openrouter/', "
        f"or provider 'openrouter'."
    )
