"""
Application services.
"""

from .config_resolver import ContainerConfigResolver
from .execution_service import ExecutionService
from .experience_service import ExperienceService, generate_experience_id
from .project_service import RunProjectContext, RunProjectResult, RunProjectService

__all__ = [
    "ContainerConfigResolver",
    "ExecutionService",
    "ExperienceService",
    "generate_experience_id",
    "RunProjectContext",
    "RunProjectResult",
    "RunProjectService",
]
