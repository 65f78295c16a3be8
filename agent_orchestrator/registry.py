"""Combined registry for agents and workflows.

Holds validated, immutable definitions. Writes go through a single lock so a
workflow's agent references are checked against a consistent agent set; reads
are plain dict lookups.

Definitions can also be loaded from a directory laid out as::

    definitions/
        agents/*.yaml | *.yml | *.json
        workflows/*.yaml | *.yml | *.json

Each file holds one definition or a list of them.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Union

import yaml

from agent_orchestrator.agents.registry import AgentRegistry
from agent_orchestrator.agents.schemas import Agent, AgentSummary
from agent_orchestrator.errors import NotFound, OrchestratorError
from agent_orchestrator.workflows.registry import WorkflowRegistry
from agent_orchestrator.workflows.schemas import Workflow, WorkflowSummary

logger = logging.getLogger(__name__)

DEFINITION_SUFFIXES = (".yaml", ".yml", ".json")


def _read_definition_file(path: Path) -> list[dict[str, Any]]:
    with open(path, "r") as f:
        if path.suffix == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    if isinstance(data, list):
        return data
    raise ValueError(f"expected a mapping or a list, got {type(data).__name__}")


def _definition_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if p.suffix in DEFINITION_SUFFIXES)


class Registry:
    """Agent and workflow definitions for one orchestrator."""

    KINDS = ("agent", "workflow")

    def __init__(self) -> None:
        self.agents = AgentRegistry()
        self.workflows = WorkflowRegistry(self.agents)
        self._lock = threading.Lock()

    # ── Registration ──────────────────────────────────────

    def register_agent(self, agent: Union[Agent, dict[str, Any]]) -> Agent:
        """Raises InvalidConfig or DuplicateId."""
        with self._lock:
            return self.agents.register(agent)

    def register_workflow(self, workflow: Union[Workflow, dict[str, Any]]) -> Workflow:
        """Raises InvalidConfig, DuplicateId or UnknownAgent."""
        with self._lock:
            return self.workflows.register(workflow)

    # ── Lookup ────────────────────────────────────────────

    def get(self, kind: str, item_id: str) -> Union[Agent, Workflow]:
        """Look up a definition by kind ("agent" or "workflow") and id."""
        if kind == "agent":
            return self.agents.get_validated(item_id)
        if kind == "workflow":
            return self.workflows.get_validated(item_id)
        raise ValueError(f"Unknown definition kind '{kind}', expected one of {self.KINDS}")

    def get_agent(self, agent_id: str) -> Agent:
        return self.agents.get_validated(agent_id)

    def get_workflow(self, workflow_id: str) -> Workflow:
        return self.workflows.get_validated(workflow_id)

    def has(self, kind: str, item_id: str) -> bool:
        try:
            self.get(kind, item_id)
        except NotFound:
            return False
        return True

    def list_agents(self) -> list[AgentSummary]:
        return self.agents.list_summaries()

    def list_workflows(self) -> list[WorkflowSummary]:
        return self.workflows.list_summaries()

    def count(self) -> dict[str, int]:
        return {"agents": self.agents.count(), "workflows": self.workflows.count()}

    # ── Loading ───────────────────────────────────────────

    def load_definitions(self, definitions_dir: Union[str, Path]) -> dict[str, int]:
        """Register every agent, then every workflow, found under a directory.

        A bad file or definition is logged and skipped; the rest still load.
        Returns how many agents and workflows were registered.
        """
        root = Path(definitions_dir)
        if not root.exists():
            logger.warning(f"Definitions directory not found: {root}")
            return {"agents": 0, "workflows": 0}

        loaded = {
            "agents": self._load_kind(root / "agents", "agent", self.register_agent),
            "workflows": self._load_kind(
                root / "workflows", "workflow", self.register_workflow
            ),
        }
        logger.info(
            f"Loaded definitions from {root}: "
            f"{loaded['agents']} agents, {loaded['workflows']} workflows"
        )
        return loaded

    def _load_kind(self, directory: Path, kind: str, register) -> int:
        count = 0
        for path in _definition_files(directory):
            try:
                items = _read_definition_file(path)
            except (OSError, ValueError, yaml.YAMLError) as e:
                logger.error(f"Failed to read {kind} file {path}: {e}")
                continue
            for item in items:
                try:
                    register(item)
                    count += 1
                except OrchestratorError as e:
                    logger.error(f"Failed to load {kind} from {path}: {e.code}: {e.message}")
        return count
