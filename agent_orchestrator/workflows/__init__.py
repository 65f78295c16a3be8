"""Workflow definitions: ordered, possibly branching sequences of steps.

Steps come in three kinds:
- agent: call one agent with the previous step's output
- condition: pick one of two nested sequences by evaluating an expression
- parallel: fan the same input out to several agents at once
"""

from .schemas import (
    AgentStep,
    ConditionStep,
    ParallelBranch,
    ParallelFailurePolicy,
    ParallelStep,
    Step,
    Workflow,
    WorkflowSummary,
)
from .registry import WorkflowRegistry

__all__ = [
    "AgentStep",
    "ConditionStep",
    "ParallelBranch",
    "ParallelFailurePolicy",
    "ParallelStep",
    "Step",
    "Workflow",
    "WorkflowSummary",
    "WorkflowRegistry",
]
