"""
Docker container engine

Drives a Docker daemon through aiodocker. Each session owns one client
and every container started through it; leaving the session force-removes
the containers and closes the client, whatever happened inside.
"""

import asyncio
import io
import os
import posixpath
import tarfile
import time
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path, PurePosixPath
from typing import AsyncIterator, Collection, Dict, Iterator, List, Optional

import aiohttp
from aiodocker import Docker
from aiodocker.exceptions import DockerError

from sandbox_runner.domain.ports import ExecOutput, IContainerEngine, IContainerSession
from sandbox_runner.domain.value_objects import ContainerConfig
from sandbox_runner.infrastructure.logging import get_logger
from sandbox_runner.shared.errors import ContainerError, EngineConnectionError

logger = get_logger(__name__)

MANAGED_LABEL = "sandbox-runner.managed"

# aiodocker reports transport failures as DockerError with this status.
_CONNECTION_STATUS = 900

# Keeps the container alive so setup and run commands can be exec'd into it.
_KEEPALIVE_ENTRYPOINT = ["tail", "-f", "/dev/null"]


def image_reference(image: str) -> str:
    """Add ``:latest`` to an untagged image so a pull fetches one tag."""
    if "@" in image:
        return image
    last = image.rsplit("/", 1)[-1]
    return image if ":" in last else f"{image}:latest"


@contextmanager
def _engine_errors(action: str, **context) -> Iterator[None]:
    try:
        yield
    except DockerError as e:
        if e.status == _CONNECTION_STATUS:
            raise EngineConnectionError(
                f"Container engine unreachable during {action}: {e.message}", e
            ) from e
        logger.error("Container engine rejected request", action=action, error=e.message, **context)
        raise ContainerError(f"Failed to {action}: {e.message}", e) from e
    except (aiohttp.ClientError, OSError) as e:
        raise EngineConnectionError(
            f"Container engine unreachable during {action}: {e}", e
        ) from e


def _tar_directory_entries(tar: tarfile.TarFile, arcpath: str) -> None:
    parts = PurePosixPath(arcpath).parts
    for i in range(1, len(parts) + 1):
        info = tarfile.TarInfo("/".join(parts[:i]))
        info.type = tarfile.DIRTYPE
        info.mode = 0o755
        info.mtime = int(time.time())
        tar.addfile(info)


def build_file_archive(path: str, content: str) -> bytes:
    """Tar a single file at absolute ``path``, including its parent directories."""
    target = PurePosixPath(path)
    if not target.is_absolute():
        raise ValueError(f"Container path must be absolute: {path}")
    data = content.encode("utf-8")
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        parent = str(target.parent).lstrip("/")
        if parent:
            _tar_directory_entries(tar, parent)
        info = tarfile.TarInfo(str(target).lstrip("/"))
        info.size = len(data)
        info.mode = 0o644
        info.mtime = int(time.time())
        tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def build_directory_archive(source: Path, destination: str, exclude: Collection[str] = ()) -> bytes:
    """
    Tar the contents of ``source`` so they extract under ``destination``
    when the archive is put at ``/``.
    """
    dest = PurePosixPath(destination)
    if not dest.is_absolute():
        raise ValueError(f"Container path must be absolute: {destination}")
    excluded = set(exclude)
    root = str(dest).lstrip("/")
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        if root:
            _tar_directory_entries(tar, root)
        for dirpath, dirnames, filenames in os.walk(source):
            dirnames[:] = sorted(d for d in dirnames if d not in excluded)
            rel_dir = Path(dirpath).relative_to(source)
            for name in dirnames + sorted(f for f in filenames if f not in excluded):
                full = Path(dirpath) / name
                arcname = posixpath.join(root, *rel_dir.parts, name)
                tar.add(str(full), arcname=arcname, recursive=False)
    return buf.getvalue()


def _link_stays_inside(destination: Path, target: Path, linkname: str) -> bool:
    if not linkname or PurePosixPath(linkname).is_absolute():
        return False
    resolved = Path(os.path.normpath(target.parent / linkname))
    return resolved == destination or destination in resolved.parents


def extract_archive(tar: tarfile.TarFile, destination: Path) -> int:
    """
    Extract an archive returned by the engine into ``destination``.

    The first path component (the name of the copied directory) is dropped.
    Symlinks are recreated when their relative target stays inside
    ``destination``. Members escaping ``destination``, other links and
    special files are skipped.

    Returns:
        Number of regular files and symlinks written
    """
    destination = destination.resolve()
    destination.mkdir(parents=True, exist_ok=True)
    written = 0
    for member in tar.getmembers():
        parts = PurePosixPath(member.name).parts[1:]
        if not parts or any(p in ("..", "") for p in parts) or PurePosixPath(member.name).is_absolute():
            continue
        target = destination.joinpath(*parts)
        if destination not in target.parent.resolve().parents and target.parent.resolve() != destination:
            continue
        if member.isdir():
            if target.is_symlink():
                continue
            target.mkdir(parents=True, exist_ok=True)
        elif member.isfile():
            fileobj = tar.extractfile(member)
            if fileobj is None:
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            if target.is_symlink():
                target.unlink()
            with open(target, "wb") as f:
                f.write(fileobj.read())
            os.chmod(target, member.mode & 0o777 or 0o644)
            written += 1
        elif member.issym():
            if not _link_stays_inside(destination, target, member.linkname):
                logger.warning(
                    "Skipping symlink pointing outside the workspace",
                    name=member.name,
                    link=member.linkname,
                )
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            if target.is_symlink() or target.is_file():
                target.unlink()
            elif target.exists():
                continue
            os.symlink(member.linkname, target)
            # The lexical check cannot see through links created earlier.
            real = target.resolve()
            if real != destination and destination not in real.parents:
                target.unlink()
                logger.warning("Skipping symlink resolving outside the workspace", name=member.name)
                continue
            written += 1
        else:
            logger.debug("Skipping non-regular archive member", name=member.name)
    return written


class DockerSession(IContainerSession):
    """Engine session bound to one aiodocker client."""

    def __init__(self, docker: Docker, volume_prefix: str):
        self._docker = docker
        self._volume_prefix = volume_prefix
        self.container_ids: List[str] = []

    async def _ensure_image(self, image: str) -> None:
        reference = image_reference(image)
        with _engine_errors("inspect image", image=reference):
            try:
                await self._docker.images.inspect(reference)
                return
            except DockerError as e:
                if e.status != 404:
                    raise
        logger.info("Pulling image", image=reference)
        with _engine_errors("pull image", image=reference):
            await self._docker.images.pull(reference)

    def _create_config(self, config: ContainerConfig) -> Dict:
        binds = [
            f"{self._volume_prefix}-{volume.name}:{volume.mount_path}"
            for volume in config.cache_volumes
        ]
        return {
            "Image": image_reference(config.base_image),
            "Entrypoint": _KEEPALIVE_ENTRYPOINT,
            "WorkingDir": config.workdir,
            "Env": [f"{k}={v}" for k, v in config.environment.items()],
            "Labels": {MANAGED_LABEL: "true"},
            "Tty": False,
            "HostConfig": {"Binds": binds},
        }

    async def start_container(self, config: ContainerConfig) -> str:
        await self._ensure_image(config.base_image)
        with _engine_errors("create container", image=config.base_image):
            container = await self._docker.containers.create(self._create_config(config))
        self.container_ids.append(container.id)
        with _engine_errors("start container", container_id=container.id):
            await container.start()
        logger.info(
            "Container started",
            container_id=container.id[:12],
            image=config.base_image,
            volumes=len(config.cache_volumes),
        )
        return container.id

    async def write_file(self, container_id: str, path: str, content: str) -> None:
        archive = build_file_archive(path, content)
        with _engine_errors("write file", container_id=container_id, path=path):
            container = self._docker.containers.container(container_id)
            await container.put_archive("/", archive)

    async def copy_directory_in(
        self,
        container_id: str,
        source: Path,
        destination: str,
        exclude: Collection[str] = (),
    ) -> None:
        archive = await asyncio.to_thread(build_directory_archive, Path(source), destination, exclude)
        with _engine_errors("copy directory in", container_id=container_id, path=destination):
            container = self._docker.containers.container(container_id)
            await container.put_archive("/", archive)
        logger.debug("Directory copied into container", bytes=len(archive), destination=destination)

    async def exec(
        self,
        container_id: str,
        argv: List[str],
        workdir: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ExecOutput:
        stdout: List[bytes] = []
        stderr: List[bytes] = []

        with _engine_errors("exec", container_id=container_id):
            container = self._docker.containers.container(container_id)
            exec_ = await container.exec(
                cmd=argv,
                stdout=True,
                stderr=True,
                tty=False,
                workdir=workdir,
            )

            async def collect() -> None:
                async with exec_.start(detach=False) as stream:
                    while True:
                        message = await stream.read_out()
                        if message is None:
                            break
                        (stdout if message.stream == 1 else stderr).append(message.data)

            timed_out = False
            try:
                await asyncio.wait_for(collect(), timeout=timeout)
            except asyncio.TimeoutError:
                timed_out = True
                logger.warning("Exec exceeded host-side guard", container_id=container_id[:12], timeout=timeout)

            exit_code = None
            if not timed_out:
                info = await exec_.inspect()
                exit_code = info.get("ExitCode")

        return ExecOutput(
            stdout=b"".join(stdout).decode("utf-8", errors="replace"),
            stderr=b"".join(stderr).decode("utf-8", errors="replace"),
            exit_code=exit_code,
            timed_out=timed_out,
        )

    async def copy_directory_out(self, container_id: str, source: str, destination: Path) -> None:
        with _engine_errors("copy directory out", container_id=container_id, path=source):
            container = self._docker.containers.container(container_id)
            tar = await container.get_archive(source)
        try:
            written = await asyncio.to_thread(extract_archive, tar, Path(destination))
        finally:
            tar.close()
        logger.debug("Directory copied out of container", files=written, source=source)

    async def release(self) -> None:
        for container_id in reversed(self.container_ids):
            try:
                await self._docker.containers.container(container_id).delete(force=True)
                logger.info("Container removed", container_id=container_id[:12])
            except DockerError as e:
                logger.warning("Failed to remove container", container_id=container_id[:12], error=e.message)
            except (aiohttp.ClientError, OSError) as e:
                logger.warning("Failed to remove container", container_id=container_id[:12], error=str(e))
        self.container_ids.clear()


class DockerEngine(IContainerEngine):
    """
    Container engine backed by a Docker daemon.

    Args:
        docker_url: Daemon URL (``unix:///var/run/docker.sock``,
            ``tcp://host:2375``); None lets aiodocker use DOCKER_HOST or
            the local socket
        volume_prefix: Prefix for named cache volumes
    """

    def __init__(self, docker_url: Optional[str] = None, volume_prefix: str = "sandbox-runner"):
        self._docker_url = docker_url
        self._volume_prefix = volume_prefix

    def _connect(self) -> Docker:
        try:
            return Docker(url=self._docker_url)
        except ValueError as e:
            raise EngineConnectionError(f"No container engine endpoint available: {e}", e) from e

    @asynccontextmanager
    async def session(self) -> AsyncIterator[DockerSession]:
        docker = self._connect()
        try:
            try:
                await docker.version()
            except (DockerError, aiohttp.ClientError, OSError) as e:
                raise EngineConnectionError(f"Container engine unreachable: {e}", e) from e

            session = DockerSession(docker, self._volume_prefix)
            try:
                yield session
            finally:
                await session.release()
        finally:
            await docker.close()

    async def ping(self) -> bool:
        """Check that the daemon answers."""
        try:
            async with self.session():
                return True
        except EngineConnectionError as e:
            logger.error("Container engine ping failed", error=str(e))
            return False
