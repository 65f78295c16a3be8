"""Tests for agent/workflow registration and definition loading."""

import json

import pytest

from agent_orchestrator.agents.schemas import Agent, ModelSpec
from agent_orchestrator.errors import (
    DuplicateId,
    InvalidConfig,
    NotFound,
    UnknownAgent,
)
from agent_orchestrator.registry import Registry


@pytest.fixture
def registry():
    return Registry()


@pytest.fixture
def with_writer(registry, make_agent):
    registry.register_agent(make_agent("writer", model="m-writer"))
    return registry


class TestAgentRegistration:
    def test_register_and_get(self, registry, make_agent):
        agent = registry.register_agent(make_agent("writer", fallbacks=("m-backup",)))

        assert isinstance(agent, Agent)
        assert registry.get("agent", "writer") == agent
        assert agent.model_spec.fallback_models == ("m-backup",)

    def test_accepts_agent_instances(self, registry):
        agent = Agent(id="a1", model_spec=ModelSpec(primary_model="m1"))
        assert registry.register_agent(agent).id == "a1"

    def test_defaults(self, registry):
        agent = registry.register_agent({"id": "a1", "model": {"model": "m1"}})

        assert agent.model_spec.provider == "anthropic"
        assert agent.model_spec.temperature == 0.7
        assert agent.model_spec.max_tokens == 4096
        assert agent.model_spec.timeout_ms == 60_000
        assert agent.model_spec.fallback_models == ()

    def test_duplicate_id_keeps_first(self, registry, make_agent):
        registry.register_agent(make_agent("writer", model="m-first"))

        with pytest.raises(DuplicateId):
            registry.register_agent(make_agent("writer", model="m-second"))

        assert registry.get_agent("writer").model_spec.primary_model == "m-first"

    @pytest.mark.parametrize(
        "spec",
        [
            {"primary_model": "m1", "temperature": 1.5},
            {"primary_model": "m1", "temperature": -0.1},
            {"primary_model": "m1", "max_tokens": 0},
            {"primary_model": "m1", "timeout_ms": 0},
            {"primary_model": "   "},
            {"primary_model": "m1", "fallback_models": ["m2", ""]},
            {},
        ],
    )
    def test_invalid_model_spec(self, registry, spec):
        with pytest.raises(InvalidConfig):
            registry.register_agent({"id": "bad", "model_spec": spec})
        assert registry.count()["agents"] == 0

    def test_missing_id(self, registry):
        with pytest.raises(InvalidConfig):
            registry.register_agent({"model_spec": {"primary_model": "m1"}})

    def test_camel_case_definition(self, registry):
        """Definitions written with camelCase keys and agent-level sampling fields."""
        agent = registry.register_agent(
            {
                "id": "creative-writer",
                "name": "Creative Writer",
                "model": {
                    "provider": "openrouter",
                    "model": "anthropic/claude-3-haiku",
                    "fallbackModels": ["openai/gpt-4o-mini"],
                },
                "temperature": 0.9,
                "maxTokens": 800,
                "systemPrompt": "You write short stories.",
            }
        )

        assert agent.model_spec.provider == "openrouter"
        assert agent.model_spec.primary_model == "anthropic/claude-3-haiku"
        assert agent.model_spec.fallback_models == ("openai/gpt-4o-mini",)
        assert agent.model_spec.temperature == 0.9
        assert agent.model_spec.max_tokens == 800
        assert agent.system_prompt == "You write short stories."

    def test_agents_are_immutable(self, with_writer):
        agent = with_writer.get_agent("writer")
        with pytest.raises(Exception):
            agent.system_prompt = "changed"


class TestWorkflowRegistration:
    def test_register_simple_workflow(self, with_writer, agent_step):
        workflow = with_writer.register_workflow(
            {"id": "w1", "steps": [agent_step("s1", "writer")]}
        )
        assert with_writer.get("workflow", "w1") == workflow

    def test_duplicate_workflow(self, with_writer, agent_step):
        definition = {"id": "w1", "steps": [agent_step("s1", "writer")]}
        with_writer.register_workflow(definition)
        with pytest.raises(DuplicateId):
            with_writer.register_workflow(definition)

    def test_unknown_agent_in_nested_branch(self, with_writer, agent_step):
        definition = {
            "id": "w1",
            "steps": [
                agent_step("s1", "writer"),
                {
                    "type": "condition",
                    "id": "c1",
                    "condition": "true",
                    "true_steps": [agent_step("s2", "writer")],
                    "false_steps": [agent_step("s3", "ghost")],
                },
            ],
        }
        with pytest.raises(UnknownAgent) as exc_info:
            with_writer.register_workflow(definition)

        assert exc_info.value.agent_id == "ghost"
        assert exc_info.value.step_id == "s3"
        assert with_writer.count()["workflows"] == 0

    def test_unknown_agent_in_parallel_branch(self, with_writer):
        definition = {
            "id": "w1",
            "steps": [
                {
                    "type": "parallel",
                    "id": "p1",
                    "branches": [
                        {"id": "b1", "agent_id": "writer"},
                        {"id": "b2", "agent_id": "ghost"},
                    ],
                }
            ],
        }
        with pytest.raises(UnknownAgent):
            with_writer.register_workflow(definition)

    def test_step_id_collision_across_nesting(self, with_writer, agent_step):
        definition = {
            "id": "w1",
            "steps": [
                agent_step("s1", "writer"),
                {
                    "type": "condition",
                    "id": "c1",
                    "condition": "true",
                    "true_steps": [agent_step("s1", "writer")],
                },
            ],
        }
        with pytest.raises(InvalidConfig, match="duplicate step ids"):
            with_writer.register_workflow(definition)

    def test_branch_id_collides_with_step_id(self, with_writer, agent_step):
        definition = {
            "id": "w1",
            "steps": [
                agent_step("s1", "writer"),
                {
                    "type": "parallel",
                    "id": "p1",
                    "branches": [{"id": "s1", "agent_id": "writer"}],
                },
            ],
        }
        with pytest.raises(InvalidConfig):
            with_writer.register_workflow(definition)

    @pytest.mark.parametrize("branch_id", [" s1", "s1 ", "   "])
    def test_branch_ids_are_stripped(self, with_writer, agent_step, branch_id):
        definition = {
            "id": "w1",
            "steps": [
                agent_step("s1", "writer"),
                {
                    "type": "parallel",
                    "id": "p1",
                    "branches": [{"id": branch_id, "agent_id": "writer"}],
                },
            ],
        }
        with pytest.raises(InvalidConfig):
            with_writer.register_workflow(definition)
        assert with_writer.count()["workflows"] == 0

    def test_unparseable_condition(self, with_writer, agent_step):
        definition = {
            "id": "w1",
            "steps": [
                {
                    "type": "condition",
                    "id": "c1",
                    "condition": "variables.s1 >",
                    "true_steps": [agent_step("s2", "writer")],
                }
            ],
        }
        with pytest.raises(InvalidConfig, match="c1"):
            with_writer.register_workflow(definition)

    @pytest.mark.parametrize(
        "condition",
        ["(" * 450 + "1" + ")" * 450, "!" * 1500 + "true"],
    )
    def test_deeply_nested_condition(self, with_writer, agent_step, condition):
        definition = {
            "id": "w1",
            "steps": [
                {
                    "type": "condition",
                    "id": "c1",
                    "condition": condition,
                    "true_steps": [agent_step("s2", "writer")],
                }
            ],
        }
        with pytest.raises(InvalidConfig, match="nested"):
            with_writer.register_workflow(definition)
        assert not with_writer.has("workflow", "w1")

    @pytest.mark.parametrize(
        "definition",
        [
            {"id": "w1", "steps": []},
            {"id": "w1", "steps": [{"type": "loop", "id": "s1"}]},
            {"id": "w1", "steps": [{"type": "agent", "id": "s1"}]},
            {"id": "w1", "steps": [{"type": "agent", "id": "s1", "agent_id": "writer", "retries": -1}]},
            {"id": "w1", "steps": [{"type": "parallel", "id": "p1", "branches": []}]},
        ],
    )
    def test_invalid_workflow_shape(self, with_writer, definition):
        with pytest.raises(InvalidConfig):
            with_writer.register_workflow(definition)


class TestLookup:
    def test_not_found(self, registry):
        with pytest.raises(NotFound):
            registry.get("agent", "nobody")
        with pytest.raises(NotFound):
            registry.get("workflow", "nothing")

    def test_unknown_kind(self, registry):
        with pytest.raises(ValueError):
            registry.get("tool", "x")

    def test_has(self, with_writer):
        assert with_writer.has("agent", "writer")
        assert not with_writer.has("workflow", "writer")

    def test_summaries(self, with_writer, agent_step):
        with_writer.register_workflow(
            {
                "id": "w1",
                "name": "One",
                "steps": [
                    agent_step("s1", "writer"),
                    {
                        "type": "parallel",
                        "id": "p1",
                        "branches": [{"id": "b1", "agent_id": "writer"}],
                    },
                ],
            }
        )

        [agent_summary] = with_writer.list_agents()
        assert agent_summary.primary_model == "m-writer"

        [summary] = with_writer.list_workflows()
        assert summary.step_count == 3
        assert summary.agent_ids == ["writer"]


class TestLoadDefinitions:
    def test_loads_yaml_and_json(self, registry, tmp_path):
        (tmp_path / "agents").mkdir()
        (tmp_path / "workflows").mkdir()
        (tmp_path / "agents" / "writer.yaml").write_text(
            "id: writer\n"
            "model_spec:\n"
            "  primary_model: m-writer\n"
            "  fallback_models: [m-backup]\n"
            "system_prompt: Write.\n"
        )
        (tmp_path / "agents" / "more.json").write_text(
            json.dumps(
                [
                    {"id": "a2", "model_spec": {"primary_model": "m2"}},
                    {"id": "a3", "model_spec": {"primary_model": "m3"}},
                ]
            )
        )
        (tmp_path / "workflows" / "pipeline.yml").write_text(
            "id: pipeline\n"
            "steps:\n"
            "  - {type: agent, id: s1, agent_id: writer}\n"
            "  - {type: agent, id: s2, agent_id: a2}\n"
        )

        loaded = registry.load_definitions(tmp_path)

        assert loaded == {"agents": 3, "workflows": 1}
        assert registry.get_workflow("pipeline").steps[1].agent_id == "a2"

    def test_bad_files_are_skipped(self, registry, tmp_path, caplog):
        (tmp_path / "agents").mkdir()
        (tmp_path / "agents" / "broken.json").write_text("{not json")
        (tmp_path / "agents" / "invalid.yaml").write_text(
            "id: hot\nmodel_spec: {primary_model: m1, temperature: 3}\n"
        )
        (tmp_path / "agents" / "good.yaml").write_text(
            "id: good\nmodel_spec: {primary_model: m1}\n"
        )
        (tmp_path / "agents" / "notes.txt").write_text("ignored")

        loaded = registry.load_definitions(tmp_path)

        assert loaded == {"agents": 1, "workflows": 0}
        assert registry.has("agent", "good")
        assert "broken.json" in caplog.text
        assert "InvalidConfig" in caplog.text

    def test_missing_directory(self, registry, tmp_path):
        assert registry.load_definitions(tmp_path / "absent") == {
            "agents": 0,
            "workflows": 0,
        }
