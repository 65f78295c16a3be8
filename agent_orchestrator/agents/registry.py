"""Agent registry - validates and holds agent definitions in memory."""

import logging
from typing import Any, Optional, Union

from pydantic import ValidationError

from agent_orchestrator.agents.schemas import Agent, AgentSummary
from agent_orchestrator.errors import DuplicateId, InvalidConfig, NotFound

logger = logging.getLogger(__name__)


def _format_validation_error(kind: str, error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "<root>"
        problems.append(f"{location}: {item['msg']}")
    return f"Invalid {kind} definition: " + "; ".join(problems)


def coerce_agent(agent: Union[Agent, dict[str, Any]]) -> Agent:
    """Validate an agent (or raw mapping), raising InvalidConfig on bad fields.

    Already-built Agent objects are re-validated too, so instances made with
    ``model_construct`` cannot slip out-of-range values past registration.
    """
    data = agent.model_dump() if isinstance(agent, Agent) else agent
    try:
        return Agent.model_validate(data)
    except ValidationError as e:
        raise InvalidConfig(_format_validation_error("agent", e)) from e


class AgentRegistry:
    """Registry of agent definitions.

    Not synchronized on its own; the top-level Registry serializes writes.
    """

    def __init__(self) -> None:
        self._agents: dict[str, Agent] = {}

    def register(self, agent: Union[Agent, dict[str, Any]]) -> Agent:
        """Validate and store an agent. Raises InvalidConfig or DuplicateId."""
        validated = coerce_agent(agent)
        if validated.id in self._agents:
            raise DuplicateId("Agent", validated.id)
        self._agents[validated.id] = validated
        logger.info(
            f"Registered agent '{validated.id}': {validated.model_spec.primary_model} "
            f"+ {len(validated.model_spec.fallback_models)} fallbacks"
        )
        return validated

    def get(self, agent_id: str) -> Optional[Agent]:
        """Get agent definition by id."""
        return self._agents.get(agent_id)

    def get_validated(self, agent_id: str) -> Agent:
        """Get agent definition by id, raising NotFound if absent."""
        agent = self._agents.get(agent_id)
        if agent is None:
            raise NotFound("Agent", agent_id)
        return agent

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def list_all(self) -> list[Agent]:
        return list(self._agents.values())

    def list_summaries(self) -> list[AgentSummary]:
        return [
            AgentSummary(
                id=a.id,
                name=a.name,
                provider=a.model_spec.provider,
                primary_model=a.model_spec.primary_model,
                fallback_count=len(a.model_spec.fallback_models),
            )
            for a in self._agents.values()
        ]

    def count(self) -> int:
        return len(self._agents)
