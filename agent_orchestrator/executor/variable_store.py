"""Per-execution store of committed step outputs, plus input resolution.

The store is write-once: a step id can be committed exactly one time per
execution. A second write means the engine re-ran a step, which is a bug, so
it raises DuplicateWrite rather than overwriting.
"""

from typing import Any, Iterator, Sequence

from agent_orchestrator.errors import DuplicateWrite, MissingVariable


class VariableStore:
    """Ordered, append-only mapping of step id -> output value."""

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}

    def set(self, step_id: str, value: Any) -> None:
        if step_id in self._values:
            raise DuplicateWrite(step_id)
        self._values[step_id] = value

    def get(self, step_id: str) -> Any:
        try:
            return self._values[step_id]
        except KeyError:
            raise MissingVariable(step_id) from None

    def keys(self) -> list[str]:
        return list(self._values.keys())

    def snapshot(self) -> dict[str, Any]:
        """Ordered shallow copy of everything committed so far."""
        return dict(self._values)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._values))

    def __repr__(self) -> str:
        return f"VariableStore({list(self._values)})"


def resolve_input(
    steps: Sequence[Any],
    index: int,
    sequence_input: Any,
    variables: VariableStore,
) -> Any:
    """Input for ``steps[index]``.

    The first step of a sequence gets the sequence's input (the workflow input
    at top level, the condition step's input inside a branch). Every later step
    gets the committed output of the sibling right before it.
    """
    if index == 0:
        return sequence_input
    return variables.get(steps[index - 1].id)
