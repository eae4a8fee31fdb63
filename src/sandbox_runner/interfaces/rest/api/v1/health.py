"""
Health check routes.
"""

import time

from fastapi import APIRouter, Depends

from sandbox_runner.infrastructure.dependencies import Services, get_services
from sandbox_runner.interfaces.rest.schemas.response import HealthResponse

router = APIRouter(prefix="/health", tags=["health"])

_start_time = time.time()


@router.get("", response_model=HealthResponse)
async def health_check(services: Services = Depends(get_services)) -> HealthResponse:
    """
    Report service status and whether the container engine answers.

    The service stays up without an engine; executions then report
    ``connection_failure``.
    """
    engine_available = await services.engine.ping()
    return HealthResponse(
        status="healthy" if engine_available else "degraded",
        uptime=time.time() - _start_time,
        engine_available=engine_available,
    )
