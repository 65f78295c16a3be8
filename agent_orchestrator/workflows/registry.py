"""Workflow registry - validates workflow definitions against known agents."""

import logging
from typing import Any, Optional, Union

from pydantic import ValidationError

from agent_orchestrator.agents.registry import AgentRegistry, _format_validation_error
from agent_orchestrator.errors import (
    DuplicateId,
    InvalidConfig,
    InvalidExpression,
    NotFound,
    UnknownAgent,
)
from agent_orchestrator.executor.conditions import validate_condition
from agent_orchestrator.workflows.schemas import (
    ConditionStep,
    Workflow,
    WorkflowSummary,
)

logger = logging.getLogger(__name__)


def coerce_workflow(workflow: Union[Workflow, dict[str, Any]]) -> Workflow:
    """Validate a workflow (or raw mapping), raising InvalidConfig on bad fields."""
    data = workflow.model_dump() if isinstance(workflow, Workflow) else workflow
    try:
        return Workflow.model_validate(data)
    except ValidationError as e:
        raise InvalidConfig(_format_validation_error("workflow", e)) from e


def validate_workflow(workflow: Workflow, agents: AgentRegistry) -> None:
    """Check a workflow's internal consistency and its agent references.

    Raises:
        InvalidConfig: duplicate step ids anywhere in the tree, or a
            condition expression that does not parse
        UnknownAgent: a step or branch references an unregistered agent
    """
    seen: set[str] = set()
    duplicates: list[str] = []
    for step_id in workflow.step_ids():
        if step_id in seen:
            duplicates.append(step_id)
        seen.add(step_id)
    if duplicates:
        raise InvalidConfig(
            f"Workflow '{workflow.id}' has duplicate step ids: {sorted(set(duplicates))}"
        )

    for step_id, agent_id in workflow.agent_references():
        if agent_id not in agents:
            raise UnknownAgent(agent_id, step_id=step_id)

    for step in workflow.iter_steps():
        if isinstance(step, ConditionStep):
            try:
                validate_condition(step.condition)
            except InvalidExpression as e:
                raise InvalidConfig(
                    f"Workflow '{workflow.id}' step '{step.id}': {e.message}"
                ) from e


class WorkflowRegistry:
    """Registry of workflow definitions.

    Not synchronized on its own; the top-level Registry serializes writes.
    """

    def __init__(self, agents: AgentRegistry):
        self.agents = agents
        self._workflows: dict[str, Workflow] = {}

    def register(self, workflow: Union[Workflow, dict[str, Any]]) -> Workflow:
        """Validate and store a workflow.

        Raises InvalidConfig, DuplicateId or UnknownAgent. Nothing is stored
        unless every check passes.
        """
        validated = coerce_workflow(workflow)
        if validated.id in self._workflows:
            raise DuplicateId("Workflow", validated.id)
        validate_workflow(validated, self.agents)
        self._workflows[validated.id] = validated
        logger.info(
            f"Registered workflow '{validated.id}': {len(validated.steps)} top-level steps, "
            f"{len(validated.step_ids())} ids total"
        )
        return validated

    def get(self, workflow_id: str) -> Optional[Workflow]:
        """Get a workflow definition by id."""
        return self._workflows.get(workflow_id)

    def get_validated(self, workflow_id: str) -> Workflow:
        """Get a workflow definition by id, raising NotFound if absent."""
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise NotFound("Workflow", workflow_id)
        return workflow

    def list_all(self) -> list[Workflow]:
        return list(self._workflows.values())

    def list_summaries(self) -> list[WorkflowSummary]:
        return [
            WorkflowSummary(
                id=w.id,
                name=w.name,
                description=w.description,
                step_count=len(w.step_ids()),
                agent_ids=sorted({agent_id for _, agent_id in w.agent_references()}),
            )
            for w in self._workflows.values()
        ]

    def count(self) -> int:
        return len(self._workflows)
