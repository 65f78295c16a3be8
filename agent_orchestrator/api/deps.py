"""Shared route dependencies."""

from fastapi import HTTPException, Request

from agent_orchestrator.errors import OrchestratorError
from agent_orchestrator.orchestrator import Orchestrator

# Registration and lookup errors -> HTTP status
ERROR_STATUS = {
    "DuplicateId": 409,
    "InvalidConfig": 422,
    "UnknownAgent": 422,
    "NotFound": 404,
    "WorkflowTimeout": 504,
    "OrchestratorClosed": 503,
}


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


def http_error(error: OrchestratorError) -> HTTPException:
    status_code = ERROR_STATUS.get(error.code, 400)
    return HTTPException(
        status_code=status_code,
        detail={"error": error.code, "message": error.message},
    )
