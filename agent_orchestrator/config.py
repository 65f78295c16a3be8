"""Runtime configuration for the orchestrator.

Values come from environment variables (``ORCHESTRATOR_*``). Provider API keys
are read directly by the LLM backends, not here.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class OrchestratorConfig(BaseModel):
    """Tunables for a single Orchestrator instance."""

    log_level: str = Field(default="INFO", description="Root log level")
    max_invocation_workers: int = Field(
        default=16,
        gt=0,
        description="Thread pool size for model calls (bounds in-flight attempts)",
    )
    max_parallel_branches: int = Field(
        default=8,
        gt=0,
        description="Max concurrently running branches within one parallel step",
    )
    retry_backoff_ms: int = Field(
        default=0,
        ge=0,
        description="Base delay before retrying the same model (doubles per retry)",
    )
    execution_deadline_ms: Optional[int] = Field(
        default=None,
        gt=0,
        description="Default wall-clock budget for one execute() call",
    )
    definitions_dir: Optional[Path] = Field(
        default=None,
        description="Directory with agents/ and workflows/ definition files",
    )

    @classmethod
    def from_env(cls) -> "OrchestratorConfig":
        """Build a config from ORCHESTRATOR_* environment variables."""
        values: dict = {}
        env_map = {
            "log_level": "ORCHESTRATOR_LOG_LEVEL",
            "max_invocation_workers": "ORCHESTRATOR_MAX_INVOCATION_WORKERS",
            "max_parallel_branches": "ORCHESTRATOR_MAX_PARALLEL_BRANCHES",
            "retry_backoff_ms": "ORCHESTRATOR_RETRY_BACKOFF_MS",
            "execution_deadline_ms": "ORCHESTRATOR_EXECUTION_DEADLINE_MS",
            "definitions_dir": "ORCHESTRATOR_DEFINITIONS_DIR",
        }
        for field_name, env_var in env_map.items():
            raw = os.environ.get(env_var)
            if raw is not None and raw.strip() != "":
                values[field_name] = raw.strip()
        return cls.model_validate(values)


def configure_logging(level: str = "INFO") -> None:
    """Apply the standard log format to the root logger."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
