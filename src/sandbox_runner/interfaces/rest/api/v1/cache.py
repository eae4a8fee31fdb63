"""
Configuration cache routes.
"""

from fastapi import APIRouter, Depends, Response, status

from sandbox_runner.application.services.config_resolver import ContainerConfigResolver
from sandbox_runner.infrastructure.dependencies import get_config_resolver
from sandbox_runner.interfaces.rest.schemas.response import CacheStatsResponse

router = APIRouter(prefix="/cache", tags=["cache"])


@router.get("/stats", response_model=CacheStatsResponse)
async def get_cache_stats(
    resolver: ContainerConfigResolver = Depends(get_config_resolver),
) -> CacheStatsResponse:
    return CacheStatsResponse(**(await resolver.get_cache_stats()).to_dict())


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def clear_cache(
    resolver: ContainerConfigResolver = Depends(get_config_resolver),
) -> Response:
    """Empty both cache tiers."""
    await resolver.clear_cache()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
