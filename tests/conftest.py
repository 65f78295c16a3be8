"""Shared fixtures: a deterministic stub invoker and definition factories."""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

import pytest

from agent_orchestrator.config import OrchestratorConfig
from agent_orchestrator.llm.invoker import InvocationResult
from agent_orchestrator.orchestrator import Orchestrator


@dataclass
class Call:
    model: str
    system_prompt: str
    input_value: Any
    timeout_ms: int


class StubInvoker:
    """ModelInvoker that replays scripted behaviors per model.

    A behavior is a string (returned as content), an InvocationResult, an
    exception instance (raised) or a callable ``(model, input_value) -> value``.
    Scripted behaviors are consumed one per call; ``always`` behaviors apply to
    every call once the script for a model runs out. Otherwise the stub echoes
    ``"<model>: <input>"`` with 10 input and 5 output tokens.
    """

    def __init__(self):
        self.calls: list[Call] = []
        self.closed = False
        self._script: dict[str, list[Any]] = {}
        self._always: dict[str, Any] = {}
        self._lock = threading.Lock()

    def script(self, model: str, *behaviors: Any) -> "StubInvoker":
        self._script.setdefault(model, []).extend(behaviors)
        return self

    def always(self, model: str, behavior: Any) -> "StubInvoker":
        self._always[model] = behavior
        return self

    def models_called(self) -> list[str]:
        with self._lock:
            return [c.model for c in self.calls]

    def invoke(
        self,
        model: str,
        system_prompt: str,
        input_value: Any,
        *,
        temperature: float,
        max_tokens: int,
        timeout_ms: int,
    ):
        with self._lock:
            self.calls.append(Call(model, system_prompt, input_value, timeout_ms))
            queue = self._script.get(model)
            if queue:
                behavior = queue.pop(0)
            else:
                behavior = self._always.get(model)

        if behavior is None:
            return InvocationResult(
                content=f"{model}: {input_value}",
                model_id=model,
                input_tokens=10,
                output_tokens=5,
            )
        if isinstance(behavior, BaseException):
            raise behavior
        if callable(behavior):
            return behavior(model, input_value)
        return behavior

    def close(self) -> None:
        self.closed = True


def sleeping(seconds: float, content: str = "slow") -> Callable[[str, Any], str]:
    """Behavior that blocks for a while before answering."""

    def behavior(model: str, input_value: Any) -> str:
        time.sleep(seconds)
        return content

    return behavior


@pytest.fixture
def invoker():
    return StubInvoker()


@pytest.fixture
def config():
    return OrchestratorConfig(max_invocation_workers=8, max_parallel_branches=4)


@pytest.fixture
def orchestrator(invoker, config):
    orch = Orchestrator(invoker=invoker, config=config)
    yield orch
    orch.shutdown()


@pytest.fixture
def make_agent():
    """Factory for agent definition mappings."""

    def _make(
        agent_id: str,
        model: str = "m-primary",
        fallbacks: tuple = (),
        **spec: Any,
    ) -> dict:
        return {
            "id": agent_id,
            "name": agent_id.replace("-", " ").title(),
            "model_spec": {
                "primary_model": model,
                "fallback_models": list(fallbacks),
                **spec,
            },
            "system_prompt": f"You are {agent_id}.",
        }

    return _make


@pytest.fixture
def agent_step():
    def _make(step_id: str, agent_id: str, **kwargs: Any) -> dict:
        return {"type": "agent", "id": step_id, "agent_id": agent_id, **kwargs}

    return _make


@pytest.fixture
def sleep_behavior():
    return sleeping


@pytest.fixture
def registered(orchestrator, make_agent):
    """Orchestrator with three agents on distinct models."""
    orchestrator.register_agent(make_agent("writer", model="m-writer"))
    orchestrator.register_agent(make_agent("summarizer", model="m-summarizer"))
    orchestrator.register_agent(make_agent("critic", model="m-critic"))
    return orchestrator

