"""
Error types.
"""

from .domain import (
    AgentNotFoundError,
    ConfigurationError,
    DomainError,
    ExecutionRuntimeError,
    ExecutionTimeoutError,
    ExperienceClosedError,
    ExperienceExistsError,
    ExperienceNotFoundError,
    FilesystemError,
    InvalidExperienceIdError,
    PathNotAllowedError,
)
from .infrastructure import (
    ContainerError,
    EngineConnectionError,
    InfrastructureError,
    ProposerError,
)

__all__ = [
    # Domain
    "DomainError",
    "ConfigurationError",
    "ExecutionRuntimeError",
    "ExecutionTimeoutError",
    "FilesystemError",
    "InvalidExperienceIdError",
    "ExperienceNotFoundError",
    "ExperienceExistsError",
    "ExperienceClosedError",
    "AgentNotFoundError",
    "PathNotAllowedError",
    # Infrastructure
    "InfrastructureError",
    "EngineConnectionError",
    "ContainerError",
    "ProposerError",
]
