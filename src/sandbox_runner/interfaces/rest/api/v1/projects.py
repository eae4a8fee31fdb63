"""
Project tool routes.
"""

from fastapi import APIRouter, Depends

from sandbox_runner.application.services.project_service import RunProjectService
from sandbox_runner.infrastructure.dependencies import get_project_service
from sandbox_runner.interfaces.rest.schemas.request import RunProjectRequest
from sandbox_runner.interfaces.rest.schemas.response import ErrorResponse, RunProjectResponse

router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("/run", response_model=RunProjectResponse, responses={500: {"model": ErrorResponse}})
async def run_project(
    request: RunProjectRequest,
    service: RunProjectService = Depends(get_project_service),
) -> RunProjectResponse:
    """
    Run a command in an experience of a project, or commit/discard it.

    Tool errors such as ``EXPERIENCE_NOT_FOUND`` come back in ``error``
    with status 200.
    """
    result = await service.run(
        command=request.command,
        agent_id=request.agent_id,
        experience_id=request.experience_id,
        action=request.action,
        env=request.env,
        timeout=request.timeout,
    )
    return RunProjectResponse(**result.to_dict())
