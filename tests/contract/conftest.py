"""Fixtures for API contract tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from sandbox_runner.application.services.config_resolver import ContainerConfigResolver
from sandbox_runner.application.services.execution_service import ExecutionService
from sandbox_runner.application.services.experience_service import ExperienceService
from sandbox_runner.application.services.project_service import RunProjectService
from sandbox_runner.domain.services.project_analyzer import ProjectRequirementsDetector
from sandbox_runner.infrastructure.config import Settings
from sandbox_runner.infrastructure.dependencies import Services, initialize_dependencies
from sandbox_runner.interfaces.rest.main import create_app
from tests.helpers import StaticProjectContext


@pytest.fixture
def settings(tmp_path, cache_dir):
    work_dir = tmp_path / "work"
    work_dir.mkdir()
    (work_dir / "run.sh").write_text("#!/bin/bash\necho ok\n")
    return Settings(cache_dir=cache_dir, work_dir=work_dir, max_timeout=600)


@pytest.fixture
def services(settings, config_cache, engine):
    resolver = ContainerConfigResolver(config_cache)
    execution = ExecutionService(resolver, engine)
    projects = RunProjectService(
        StaticProjectContext(settings.work_dir),
        ExperienceService(),
        ProjectRequirementsDetector(),
        execution,
    )
    return Services(
        settings=settings,
        engine=engine,
        resolver=resolver,
        execution=execution,
        projects=projects,
    )


@pytest.fixture
async def client(services) -> AsyncClient:
    """HTTP client bound to an app wired with test doubles."""
    app = create_app(services)
    # ASGITransport does not run the lifespan.
    initialize_dependencies(app, services)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
