"""
Dependency injection

Builds the service graph from settings and exposes it to FastAPI routes
through ``app.state``.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, Request

from sandbox_runner.application.services.config_resolver import ContainerConfigResolver
from sandbox_runner.application.services.execution_service import ExecutionService
from sandbox_runner.application.services.experience_service import ExperienceService
from sandbox_runner.application.services.project_service import RunProjectService
from sandbox_runner.domain.ports import IContainerEngine
from sandbox_runner.domain.services.project_analyzer import ProjectRequirementsDetector
from sandbox_runner.infrastructure.cache import ContainerConfigCache
from sandbox_runner.infrastructure.config import Settings, get_settings
from sandbox_runner.infrastructure.container_engine import DockerEngine
from sandbox_runner.infrastructure.llm import HttpConfigProposer
from sandbox_runner.infrastructure.logging import get_logger
from sandbox_runner.infrastructure.project_context import SettingsProjectContext, load_agents

logger = get_logger(__name__)


@dataclass
class Services:
    """The wired application services."""

    settings: Settings
    engine: IContainerEngine
    resolver: ContainerConfigResolver
    execution: ExecutionService
    projects: RunProjectService
    proposer: Optional[HttpConfigProposer] = None

    async def close(self) -> None:
        if self.proposer is not None:
            await self.proposer.close()


def build_services(settings: Optional[Settings] = None) -> Services:
    """Create every service from ``settings`` (process settings by default)."""
    settings = settings or get_settings()

    proposer = None
    if settings.llm_enabled:
        proposer = HttpConfigProposer(
            base_url=settings.llm_base_url,
            model=settings.llm_model,
            api_key=settings.llm_api_key,
            timeout=settings.llm_timeout,
            max_code_chars=settings.llm_max_code_chars,
        )
    else:
        logger.info("No LLM model configured; only registry languages can be resolved")

    cache = ContainerConfigCache(settings.cache_dir, max_memory_size=settings.memory_cache_size)
    resolver = ContainerConfigResolver(cache, proposer=proposer)
    engine = DockerEngine(docker_url=settings.docker_url, volume_prefix=settings.volume_prefix)
    execution = ExecutionService(resolver, engine, host_timeout_grace=settings.host_timeout_grace)

    agents = load_agents(settings.agents_file) if settings.agents_file else []
    context = SettingsProjectContext(settings.work_dir, agents=agents, extra_roots=settings.allowed_roots)
    projects = RunProjectService(
        context,
        ExperienceService(),
        ProjectRequirementsDetector(cache_ttl_seconds=settings.analysis_cache_ttl_seconds),
        execution,
        default_timeout=settings.project_timeout,
    )

    logger.info(
        "Services initialized",
        cache_dir=str(settings.cache_dir),
        llm_enabled=settings.llm_enabled,
        agents=len(agents),
    )
    return Services(
        settings=settings,
        engine=engine,
        resolver=resolver,
        execution=execution,
        projects=projects,
        proposer=proposer,
    )


def initialize_dependencies(app: FastAPI, services: Optional[Services] = None) -> Services:
    """Store the services on the application state."""
    services = services or build_services()
    app.state.services = services
    return services


async def cleanup_dependencies(app: FastAPI) -> None:
    services = getattr(app.state, "services", None)
    if services is not None:
        await services.close()


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_execution_service(request: Request) -> ExecutionService:
    return request.app.state.services.execution


def get_config_resolver(request: Request) -> ContainerConfigResolver:
    return request.app.state.services.resolver


def get_project_service(request: Request) -> RunProjectService:
    return request.app.state.services.projects
