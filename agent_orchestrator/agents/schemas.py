"""Agent definition schemas.

An agent binds a model (plus ordered fallbacks) to a system prompt and the
sampling/timeout settings used for every call made on its behalf.
"""

from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

DEFINITION_MODEL_CONFIG = ConfigDict(
    frozen=True,
    populate_by_name=True,
    alias_generator=to_camel,
    extra="ignore",
    protected_namespaces=(),
)


class ModelSpec(BaseModel):
    """Which model an agent calls and how."""

    model_config = DEFINITION_MODEL_CONFIG

    provider: str = Field(
        default="anthropic",
        description="Provider name (anthropic, gemini, openrouter)",
    )
    primary_model: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("primary_model", "primaryModel", "model"),
        description="Model identifier tried first",
        examples=["claude-sonnet-4-6", "openai/gpt-4o"],
    )
    fallback_models: tuple[str, ...] = Field(
        default=(),
        description="Models tried once each, in order, after the primary is exhausted",
    )
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    max_tokens: int = Field(default=4096, gt=0)
    timeout_ms: int = Field(
        default=60_000,
        gt=0,
        description="Default per-attempt timeout when a step does not set one",
    )

    @field_validator("primary_model", "provider")
    @classmethod
    def _strip_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("fallback_models")
    @classmethod
    def _no_empty_fallbacks(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        cleaned = tuple(m.strip() for m in value)
        if any(not m for m in cleaned):
            raise ValueError("fallback model names must not be empty")
        return cleaned


class Agent(BaseModel):
    """A named model configuration that workflow steps invoke."""

    model_config = DEFINITION_MODEL_CONFIG

    id: str = Field(..., min_length=1, description="Unique agent identifier")
    name: str = Field(default="", description="Human-readable name")
    model_spec: ModelSpec = Field(
        ...,
        validation_alias=AliasChoices("model_spec", "modelSpec", "model"),
    )
    system_prompt: str = Field(default="", description="System prompt for every call")

    @model_validator(mode="before")
    @classmethod
    def _migrate_flat_sampling_fields(cls, data: Any) -> Any:
        """Accept temperature/max_tokens/timeout at the agent level.

        Older definitions put sampling settings next to the system prompt
        instead of inside the model block; fold them into the model spec.
        """
        if not isinstance(data, dict):
            return data
        spec_key = next(
            (k for k in ("model_spec", "modelSpec", "model") if k in data), None
        )
        if spec_key is None or not isinstance(data[spec_key], dict):
            return data
        flat_keys = {
            "temperature": "temperature",
            "max_tokens": "max_tokens",
            "maxTokens": "max_tokens",
            "timeout_ms": "timeout_ms",
            "timeoutMs": "timeout_ms",
            "timeout": "timeout_ms",
        }
        data = dict(data)
        spec = dict(data[spec_key])
        for flat_key, spec_field in flat_keys.items():
            if flat_key in data:
                value = data.pop(flat_key)
                if spec_field not in spec and to_camel(spec_field) not in spec:
                    spec[spec_field] = value
        data[spec_key] = spec
        return data

    @field_validator("id")
    @classmethod
    def _strip_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("agent id must not be empty")
        return value


class AgentSummary(BaseModel):
    """Lightweight agent listing entry."""

    id: str
    name: str
    provider: str
    primary_model: str
    fallback_count: int
