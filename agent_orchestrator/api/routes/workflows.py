"""Workflow API routes, including execution."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from agent_orchestrator.api.deps import get_orchestrator, http_error
from agent_orchestrator.errors import OrchestratorError, WorkflowTimeout
from agent_orchestrator.executor.schemas import ExecuteRequest, ExecutionResult
from agent_orchestrator.orchestrator import Orchestrator
from agent_orchestrator.workflows.schemas import Workflow, WorkflowSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflows", tags=["workflows"])


@router.get("", response_model=list[WorkflowSummary])
async def list_workflows(
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> list[WorkflowSummary]:
    """List all registered workflows."""
    return orchestrator.list_workflows()


@router.get("/{workflow_id}", response_model=Workflow)
async def get_workflow(
    workflow_id: str, orchestrator: Orchestrator = Depends(get_orchestrator)
) -> Workflow:
    """Get a full workflow definition."""
    try:
        return orchestrator.get_workflow(workflow_id)
    except OrchestratorError as e:
        raise http_error(e)


@router.post("", response_model=Workflow, status_code=201)
async def register_workflow(
    definition: dict[str, Any] = Body(...),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> Workflow:
    """Register a new workflow.

    409 if the id is taken, 422 if the definition is invalid or references
    an unknown agent.
    """
    try:
        return orchestrator.register_workflow(definition)
    except OrchestratorError as e:
        raise http_error(e)


# Plain def: execution blocks on model calls, so FastAPI runs it in its threadpool.
@router.post("/{workflow_id}/execute", response_model=ExecutionResult)
def execute_workflow(
    workflow_id: str,
    request: Optional[ExecuteRequest] = None,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """Execute a workflow and return its result.

    A failed step still returns 200 with ``success: false``. 404 for an
    unknown workflow; 504 with the partial result when the deadline expires.
    """
    request = request or ExecuteRequest()
    try:
        return orchestrator.execute(
            workflow_id, request.input, deadline_ms=request.deadline_ms
        )
    except WorkflowTimeout as e:
        logger.warning(f"[{workflow_id}] Execution timed out: {e.message}")
        content: dict[str, Any] = {"error": e.code, "message": e.message}
        if e.result is not None:
            content["result"] = e.result.model_dump(mode="json")
        return JSONResponse(status_code=504, content=content)
    except OrchestratorError as e:
        raise http_error(e)
