"""Workflow schemas: ordered, possibly branching sequences of steps.

A step is one of three kinds, discriminated on ``type``:
- agent: invoke one agent with the previous step's output
- condition: evaluate an expression and run one of two nested sequences
- parallel: fan the same input out to several agents at once

Step ids are unique across the whole workflow tree (nested steps and parallel
branches included) because they key both the variable store and history.
"""

from enum import Enum
from typing import Annotated, Iterator, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from agent_orchestrator.agents.schemas import DEFINITION_MODEL_CONFIG


class ParallelFailurePolicy(str, Enum):
    """What a parallel step does when one branch fails."""

    WAIT_ALL = "wait_all"  # let every branch finish, then fail
    FAIL_FAST = "fail_fast"  # stop waiting at the first failure


def _clean_id(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("step id must not be empty")
    return value


class _StepBase(BaseModel):
    model_config = DEFINITION_MODEL_CONFIG

    id: str = Field(..., min_length=1, description="Unique within the workflow")
    name: str = Field(default="", description="Human-readable label")

    @field_validator("id")
    @classmethod
    def _strip_id(cls, value: str) -> str:
        return _clean_id(value)


class AgentStep(_StepBase):
    """Invoke a single agent."""

    type: Literal["agent"] = "agent"
    agent_id: str = Field(..., min_length=1)
    timeout_ms: Optional[int] = Field(
        default=None,
        gt=0,
        description="Per-attempt timeout; falls back to the agent's model timeout",
    )
    retries: int = Field(
        default=0,
        ge=0,
        description="Extra attempts on the primary model before fallbacks",
    )


class ParallelBranch(BaseModel):
    """One agent call inside a parallel step."""

    model_config = DEFINITION_MODEL_CONFIG

    id: str = Field(..., min_length=1)
    agent_id: str = Field(..., min_length=1)
    timeout_ms: Optional[int] = Field(default=None, gt=0)
    retries: int = Field(default=0, ge=0)

    @field_validator("id")
    @classmethod
    def _strip_id(cls, value: str) -> str:
        return _clean_id(value)


class ParallelStep(_StepBase):
    """Run several agents concurrently on the same input.

    Output is a mapping of branch id to branch output. All-or-nothing: one
    failed branch fails the step.
    """

    type: Literal["parallel"] = "parallel"
    branches: tuple[ParallelBranch, ...] = Field(..., min_length=1)
    failure_policy: ParallelFailurePolicy = ParallelFailurePolicy.WAIT_ALL

    @model_validator(mode="after")
    def _unique_branch_ids(self) -> "ParallelStep":
        seen: set[str] = set()
        for branch in self.branches:
            if branch.id in seen:
                raise ValueError(
                    f"Duplicate branch id '{branch.id}' in parallel step '{self.id}'"
                )
            seen.add(branch.id)
        return self


class ConditionStep(_StepBase):
    """Branch on a condition expression over committed step outputs."""

    type: Literal["condition"] = "condition"
    condition: str = Field(
        ...,
        min_length=1,
        description="Expression over 'variables' and 'input'",
        examples=["length(variables.generate_story) > 100"],
    )
    true_steps: tuple["Step", ...] = Field(default=())
    false_steps: tuple["Step", ...] = Field(default=())


Step = Annotated[
    Union[AgentStep, ConditionStep, ParallelStep],
    Field(discriminator="type"),
]

ConditionStep.model_rebuild()


class Workflow(BaseModel):
    """An ordered sequence of steps sharing one variable store per execution."""

    model_config = DEFINITION_MODEL_CONFIG

    id: str = Field(..., min_length=1)
    name: str = Field(default="")
    description: str = Field(default="")
    steps: tuple[Step, ...] = Field(..., min_length=1)

    def iter_steps(self) -> Iterator[Union[AgentStep, ConditionStep, ParallelStep]]:
        """Depth-first walk over every step, nested branches included."""
        yield from iter_steps(self.steps)

    def step_ids(self) -> list[str]:
        """All ids in the tree (steps and parallel branches), in walk order."""
        ids: list[str] = []
        for step in self.iter_steps():
            ids.append(step.id)
            if isinstance(step, ParallelStep):
                ids.extend(b.id for b in step.branches)
        return ids

    def agent_references(self) -> list[tuple[str, str]]:
        """(step_or_branch_id, agent_id) pairs for every agent reference."""
        refs: list[tuple[str, str]] = []
        for step in self.iter_steps():
            if isinstance(step, AgentStep):
                refs.append((step.id, step.agent_id))
            elif isinstance(step, ParallelStep):
                refs.extend((b.id, b.agent_id) for b in step.branches)
        return refs


def iter_steps(steps) -> Iterator[Union[AgentStep, ConditionStep, ParallelStep]]:
    for step in steps:
        yield step
        if isinstance(step, ConditionStep):
            yield from iter_steps(step.true_steps)
            yield from iter_steps(step.false_steps)


class WorkflowSummary(BaseModel):
    """Lightweight workflow listing entry."""

    id: str
    name: str
    description: str
    step_count: int
    agent_ids: list[str] = Field(default_factory=list)
