"""
Domain services: project requirements detection and skill provisioning.
"""

from .project_analyzer import (
    ProjectRequirementsDetector,
    analyze_project,
    build_project_container_config,
)
from .skill_provisioner import (
    KNOWN_SKILLS,
    detect_skill_requirements,
    normalize_git_url,
    resolve_skill_repo,
)

__all__ = [
    "ProjectRequirementsDetector",
    "analyze_project",
    "build_project_container_config",
    "KNOWN_SKILLS",
    "detect_skill_requirements",
    "normalize_git_url",
    "resolve_skill_repo",
]
