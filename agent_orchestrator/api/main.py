"""Agent Orchestrator API.

HTTP surface over one Orchestrator instance:
- Agent and workflow registration and lookup
- Synchronous workflow execution

Run with ``uvicorn agent_orchestrator.api.main:app``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agent_orchestrator import __version__
from agent_orchestrator.api.routes import agents, workflows
from agent_orchestrator.config import configure_logging
from agent_orchestrator.orchestrator import Orchestrator

logger = logging.getLogger(__name__)


def create_app(orchestrator: Optional[Orchestrator] = None) -> FastAPI:
    """Build the API around an orchestrator (a default one if none is given)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        orch = orchestrator or Orchestrator()
        configure_logging(orch.config.log_level)
        app.state.orchestrator = orch

        logger.info("Loading definitions...")
        loaded = orch.load_definitions()
        logger.info(f"Loaded {loaded['agents']} agents, {loaded['workflows']} workflows")

        logger.info("Agent Orchestrator API ready")
        yield
        logger.info("Shutting down Agent Orchestrator API")
        orch.shutdown()

    app = FastAPI(
        title="Agent Orchestrator API",
        description="""
## Multi-agent workflow execution

Register agents and workflows, then execute workflows synchronously.

### Key Endpoints

- `GET /v1/agents` - List all agents
- `POST /v1/agents` - Register an agent
- `GET /v1/workflows` - List all workflows
- `POST /v1/workflows` - Register a workflow
- `POST /v1/workflows/{id}/execute` - Run a workflow
""",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(agents.router, prefix="/v1")
    app.include_router(workflows.router, prefix="/v1")

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "service": "Agent Orchestrator API",
            "version": __version__,
            "docs": "/docs",
            "endpoints": {
                "agents": "/v1/agents",
                "workflows": "/v1/workflows",
            },
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        stats = app.state.orchestrator.get_stats()
        return {
            "status": "shutting_down" if stats["closed"] else "healthy",
            "agents_loaded": stats["agents"],
            "workflows_loaded": stats["workflows"],
            "executions": stats["executions"],
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "agent_orchestrator.api.main:app",
        host="0.0.0.0",
        port=8001,
        reload=True,
    )
