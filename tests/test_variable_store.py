"""Tests for the write-once variable store and input resolution."""

import pytest

from agent_orchestrator.errors import DuplicateWrite, InvariantViolation, MissingVariable
from agent_orchestrator.executor.variable_store import VariableStore, resolve_input
from agent_orchestrator.workflows.schemas import AgentStep


class TestVariableStore:
    def test_set_and_get(self):
        store = VariableStore()
        store.set("s1", "hello")

        assert store.get("s1") == "hello"
        assert "s1" in store
        assert len(store) == 1

    def test_second_write_raises(self):
        store = VariableStore()
        store.set("s1", "first")

        with pytest.raises(DuplicateWrite) as exc_info:
            store.set("s1", "second")

        assert isinstance(exc_info.value, InvariantViolation)
        assert store.get("s1") == "first"

    def test_missing_variable(self):
        with pytest.raises(MissingVariable) as exc_info:
            VariableStore().get("nope")
        assert exc_info.value.step_id == "nope"

    def test_snapshot_preserves_order_and_is_a_copy(self):
        store = VariableStore()
        for key in ("c", "a", "b"):
            store.set(key, key.upper())

        snapshot = store.snapshot()
        snapshot["z"] = "Z"

        assert list(snapshot)[:3] == ["c", "a", "b"]
        assert store.keys() == ["c", "a", "b"]
        assert "z" not in store


class TestResolveInput:
    @pytest.fixture
    def steps(self):
        return [
            AgentStep(id="s1", agent_id="a"),
            AgentStep(id="s2", agent_id="a"),
            AgentStep(id="s3", agent_id="a"),
        ]

    def test_first_step_gets_sequence_input(self, steps):
        assert resolve_input(steps, 0, {"message": "hi"}, VariableStore()) == {
            "message": "hi"
        }

    def test_later_steps_get_previous_output(self, steps):
        store = VariableStore()
        store.set("s1", "one")
        store.set("s2", "two")

        assert resolve_input(steps, 1, "input", store) == "one"
        assert resolve_input(steps, 2, "input", store) == "two"

    def test_uncommitted_predecessor(self, steps):
        with pytest.raises(MissingVariable):
            resolve_input(steps, 1, "input", VariableStore())
