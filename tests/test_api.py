"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from agent_orchestrator.api.main import create_app
from agent_orchestrator.errors import ProviderError


@pytest.fixture
def client(orchestrator):
    with TestClient(create_app(orchestrator)) as test_client:
        yield test_client


@pytest.fixture
def writer(client, make_agent):
    response = client.post("/v1/agents", json=make_agent("writer", model="m-writer"))
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def pipeline(client, writer, agent_step):
    response = client.post(
        "/v1/workflows",
        json={
            "id": "pipeline",
            "name": "Pipeline",
            "steps": [agent_step("s1", "writer"), agent_step("s2", "writer")],
        },
    )
    assert response.status_code == 201
    return response.json()


class TestMeta:
    def test_root(self, client):
        body = client.get("/").json()
        assert body["endpoints"]["workflows"] == "/v1/workflows"

    def test_health(self, client, writer):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["agents_loaded"] == 1


class TestAgents:
    def test_register_and_fetch(self, client, writer):
        assert writer["id"] == "writer"

        listed = client.get("/v1/agents").json()
        assert [a["id"] for a in listed] == ["writer"]

        fetched = client.get("/v1/agents/writer")
        assert fetched.status_code == 200
        assert fetched.json()["id"] == "writer"

    def test_duplicate(self, client, writer, make_agent):
        response = client.post("/v1/agents", json=make_agent("writer"))
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "DuplicateId"

    def test_invalid(self, client):
        response = client.post(
            "/v1/agents",
            json={"id": "hot", "model_spec": {"primary_model": "m", "temperature": 2}},
        )
        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "InvalidConfig"

    def test_not_found(self, client):
        response = client.get("/v1/agents/nobody")
        assert response.status_code == 404


class TestWorkflows:
    def test_register_and_list(self, client, pipeline):
        listed = client.get("/v1/workflows").json()
        assert listed[0]["id"] == "pipeline"
        assert listed[0]["step_count"] == 2

        assert client.get("/v1/workflows/pipeline").status_code == 200

    def test_unknown_agent(self, client, agent_step):
        response = client.post(
            "/v1/workflows", json={"id": "w", "steps": [agent_step("s1", "ghost")]}
        )
        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "UnknownAgent"

    def test_duplicate(self, client, pipeline, agent_step):
        response = client.post(
            "/v1/workflows", json={"id": "pipeline", "steps": [agent_step("s9", "writer")]}
        )
        assert response.status_code == 409


class TestExecute:
    def test_success(self, client, pipeline):
        response = client.post("/v1/workflows/pipeline/execute", json={"input": "hi"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["variables"]["s2"] == "m-writer: m-writer: hi"
        assert [e["step_id"] for e in body["history"]] == ["s1", "s2"]

    def test_empty_body(self, client, pipeline):
        response = client.post("/v1/workflows/pipeline/execute")
        assert response.status_code == 200
        assert response.json()["variables"]["s1"] == "m-writer: None"

    def test_failed_step_is_still_200(self, client, pipeline, invoker):
        invoker.always("m-writer", ProviderError("down"))

        response = client.post("/v1/workflows/pipeline/execute", json={"input": "hi"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["failed_step_id"] == "s1"

    def test_unknown_workflow(self, client):
        response = client.post("/v1/workflows/missing/execute", json={"input": "hi"})
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "NotFound"

    def test_deadline(self, client, pipeline, invoker, sleep_behavior):
        invoker.always("m-writer", sleep_behavior(1.0))

        response = client.post(
            "/v1/workflows/pipeline/execute", json={"input": "hi", "deadline_ms": 100}
        )

        assert response.status_code == 504
        body = response.json()
        assert body["error"] == "WorkflowTimeout"
        assert body["result"]["success"] is False
        assert body["result"]["history"][0]["step_id"] == "s1"
