"""
Sandbox Runner Domain Layer

Value objects, the language registry, ports and domain services.
"""

from .value_objects import (
    CacheVolumeConfig,
    ContainerConfig,
    ExecutionOutcome,
    ExecutionRequest,
    ExecutionResult,
    ResolvedConfig,
)

__all__ = [
    "CacheVolumeConfig",
    "ContainerConfig",
    "ExecutionOutcome",
    "ExecutionRequest",
    "ExecutionResult",
    "ResolvedConfig",
]
