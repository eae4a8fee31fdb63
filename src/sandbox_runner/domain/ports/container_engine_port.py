"""
Container Engine Port Interface

Defines the contract for driving a container engine. A session is scoped
to one call: every container started through it is removed, and the engine
client released, when the session context exits on any path.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncContextManager, Collection, List, Optional

from sandbox_runner.domain.value_objects import ContainerConfig


@dataclass
class ExecOutput:
    """
    Output of one command run in a container.

    Attributes:
        stdout: Everything written to stdout, including partial output
        stderr: Everything written to stderr
        exit_code: Exit code, None when the host-side guard fired first
        timed_out: True when the host-side guard fired
    """

    stdout: str
    stderr: str
    exit_code: Optional[int]
    timed_out: bool = False


class IContainerSession(ABC):
    """Operations available inside an engine session."""

    @abstractmethod
    async def start_container(self, config: ContainerConfig) -> str:
        """
        Create and start a long-lived container for ``config``.

        The image is pulled if missing; cache volumes, environment and
        working directory are applied. Setup and run commands are NOT
        executed here.

        Returns:
            Container ID

        Raises:
            EngineConnectionError: If the engine is unreachable
            ContainerError: If the engine rejects the container
        """
        pass

    @abstractmethod
    async def write_file(self, container_id: str, path: str, content: str) -> None:
        """Write ``content`` to the absolute ``path`` inside the container."""
        pass

    @abstractmethod
    async def copy_directory_in(
        self,
        container_id: str,
        source: Path,
        destination: str,
        exclude: Collection[str] = (),
    ) -> None:
        """
        Copy a host directory into the container.

        Entries whose name is in ``exclude`` are skipped at every depth.
        """
        pass

    @abstractmethod
    async def exec(
        self,
        container_id: str,
        argv: List[str],
        workdir: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ExecOutput:
        """
        Run ``argv`` in the container and collect its output.

        Args:
            container_id: Target container
            argv: Command and arguments, never re-parsed by a shell
            workdir: Working directory, defaults to the container's
            timeout: Host-side guard in seconds; on expiry the output
                collected so far is returned with ``timed_out=True``
        """
        pass

    @abstractmethod
    async def copy_directory_out(
        self,
        container_id: str,
        source: str,
        destination: Path,
    ) -> None:
        """Copy a container directory's contents into the host ``destination``."""
        pass


class IContainerEngine(ABC):
    """Port interface for container engines."""

    @abstractmethod
    def session(self) -> AsyncContextManager[IContainerSession]:
        """
        Open a scoped engine session.

        Raises:
            EngineConnectionError: On entry, if the engine is unreachable
        """
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Return whether the engine answers."""
        pass
