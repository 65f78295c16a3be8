"""Agent API routes."""

from typing import Any

from fastapi import APIRouter, Body, Depends

from agent_orchestrator.agents.schemas import Agent, AgentSummary
from agent_orchestrator.api.deps import get_orchestrator, http_error
from agent_orchestrator.errors import OrchestratorError
from agent_orchestrator.orchestrator import Orchestrator

router = APIRouter(prefix="/agents", tags=["agents"])


@router.get("", response_model=list[AgentSummary])
async def list_agents(
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> list[AgentSummary]:
    """List all registered agents."""
    return orchestrator.list_agents()


@router.get("/{agent_id}", response_model=Agent)
async def get_agent(
    agent_id: str, orchestrator: Orchestrator = Depends(get_orchestrator)
) -> Agent:
    """Get a full agent definition."""
    try:
        return orchestrator.get_agent(agent_id)
    except OrchestratorError as e:
        raise http_error(e)


@router.post("", response_model=Agent, status_code=201)
async def register_agent(
    definition: dict[str, Any] = Body(...),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> Agent:
    """Register a new agent.

    409 if the id is taken, 422 if the definition is invalid.
    """
    try:
        return orchestrator.register_agent(definition)
    except OrchestratorError as e:
        raise http_error(e)
