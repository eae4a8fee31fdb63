"""
Container engine adapters.
"""

from .docker_engine import DockerEngine, DockerSession
from .exec_args import (
    TIMEOUT_EXIT_CODE,
    build_shell_exec_args,
    build_timeout_exec_args,
    build_timeout_shell_exec_args,
    is_timeout_exit,
)

__all__ = [
    "DockerEngine",
    "DockerSession",
    "TIMEOUT_EXIT_CODE",
    "build_shell_exec_args",
    "build_timeout_exec_args",
    "build_timeout_shell_exec_args",
    "is_timeout_exit",
]
