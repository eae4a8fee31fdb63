"""
Execution routes.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from sandbox_runner.application.services.config_resolver import ContainerConfigResolver
from sandbox_runner.application.services.execution_service import ExecutionService
from sandbox_runner.infrastructure.dependencies import (
    Services,
    get_config_resolver,
    get_execution_service,
    get_services,
)
from sandbox_runner.interfaces.rest.schemas.request import ExecuteCodeRequest
from sandbox_runner.interfaces.rest.schemas.response import (
    ErrorResponse,
    ExecutionResponse,
    LanguagesResponse,
)

router = APIRouter(tags=["executions"])


@router.post(
    "/execute",
    response_model=ExecutionResponse,
    responses={503: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def execute_code(
    request: ExecuteCodeRequest,
    service: ExecutionService = Depends(get_execution_service),
    services: Services = Depends(get_services),
) -> ExecutionResponse:
    """
    Execute a code snippet in an ephemeral container.

    - **code**: Source code
    - **language**: Language name or alias (python, js, ts, go, ...)
    - **timeout**: Seconds, at most the configured maximum
    - **use_ai_config**: Ask the LLM even for registry languages

    Execution failures are reported in the body with an ``outcome``; the
    status code is 200 whenever the request itself was valid.
    """
    if request.timeout > services.settings.max_timeout:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"timeout must not exceed {services.settings.max_timeout} seconds",
        )
    result = await service.run_code(request.to_domain())
    return ExecutionResponse(**result.to_dict())


@router.get("/languages", response_model=LanguagesResponse)
async def list_languages(
    resolver: ContainerConfigResolver = Depends(get_config_resolver),
) -> LanguagesResponse:
    """Languages served from the static registry."""
    return LanguagesResponse(languages=resolver.get_supported_languages())
