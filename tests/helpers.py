"""Test doubles shared by the unit tests."""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from sandbox_runner.domain.ports import (
    ConfigProposalRequest,
    ExecOutput,
    IConfigProposer,
    IContainerEngine,
    IContainerSession,
)
from sandbox_runner.domain.value_objects import ContainerConfig
from sandbox_runner.shared.errors import EngineConnectionError

Responder = Callable[[List[str]], ExecOutput]


def ok(stdout: str = "", stderr: str = "") -> ExecOutput:
    return ExecOutput(stdout=stdout, stderr=stderr, exit_code=0)


def failed(exit_code: int = 1, stdout: str = "", stderr: str = "") -> ExecOutput:
    return ExecOutput(stdout=stdout, stderr=stderr, exit_code=exit_code)


class FakeSession(IContainerSession):
    """In-memory container session recording every call."""

    def __init__(self, engine: "FakeContainerEngine"):
        self.engine = engine
        self.started: List[ContainerConfig] = []
        self.files: Dict[str, str] = {}
        self.copied_in: List[Dict[str, Any]] = []
        self.execs: List[Dict[str, Any]] = []
        self.released = False

    async def start_container(self, config: ContainerConfig) -> str:
        if self.engine.start_error is not None:
            raise self.engine.start_error
        self.started.append(config)
        return f"container-{len(self.started)}"

    async def write_file(self, container_id: str, path: str, content: str) -> None:
        self.files[path] = content

    async def copy_directory_in(
        self,
        container_id: str,
        source: Path,
        destination: str,
        exclude: Sequence[str] = (),
    ) -> None:
        self.copied_in.append({"source": Path(source), "destination": destination, "exclude": tuple(exclude)})

    async def exec(
        self,
        container_id: str,
        argv: Sequence[str],
        workdir: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ExecOutput:
        argv = list(argv)
        self.execs.append({"argv": argv, "workdir": workdir, "timeout": timeout})
        return self.engine.responder(argv)

    async def copy_directory_out(self, container_id: str, source: str, destination: Path) -> None:
        """Write ``exported_files``, then raise ``export_error`` if one is set."""
        destination = Path(destination)
        destination.mkdir(parents=True, exist_ok=True)
        for relative, content in self.engine.exported_files.items():
            target = destination / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        if self.engine.export_error is not None:
            raise self.engine.export_error


class FakeContainerEngine(IContainerEngine):
    """
    Container engine double.

    ``responder`` maps an exec argv to its output; by default every command
    succeeds with empty output.
    """

    def __init__(self, responder: Optional[Responder] = None):
        self.responder: Responder = responder or (lambda argv: ok())
        self.sessions: List[FakeSession] = []
        self.connect_error: Optional[Exception] = None
        self.start_error: Optional[Exception] = None
        self.export_error: Optional[Exception] = None
        self.exported_files: Dict[str, str] = {}
        self.available = True

    @asynccontextmanager
    async def session(self):
        if self.connect_error is not None:
            raise self.connect_error
        session = FakeSession(self)
        self.sessions.append(session)
        try:
            yield session
        finally:
            session.released = True

    async def ping(self) -> bool:
        return self.available

    @property
    def last_session(self) -> FakeSession:
        return self.sessions[-1]

    def fail_connection(self, message: str = "Cannot connect to the Docker daemon") -> None:
        self.connect_error = EngineConnectionError(message)


class FakeProposer(IConfigProposer):
    """Config proposer double returning a canned mapping."""

    def __init__(self, proposal: Optional[Mapping[str, Any]] = None, error: Optional[Exception] = None):
        self.proposal = proposal if proposal is not None else {
            "baseImage": "elixir:1.16-alpine",
            "setupCommands": [],
            "runCommand": ["elixir", "/app/code.elixir"],
        }
        self.error = error
        self.requests: List[ConfigProposalRequest] = []

    async def propose(self, request: ConfigProposalRequest) -> Mapping[str, Any]:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.proposal


class StaticProjectContext:
    """Project tool context over fixed values."""

    def __init__(self, work_dir, agents=(), secrets=None, roots=None):
        self.work_dir = str(work_dir)
        self.agents = list(agents)
        self.secrets = dict(secrets or {})
        self.roots = list(roots) if roots is not None else [str(work_dir)]

    def get_agent(self, id_or_name):
        for agent in self.agents:
            if agent.id == id_or_name or agent.name == id_or_name:
                return agent
        return None

    def get_allowed_roots(self):
        return self.roots + [a.project_path for a in self.agents]

    def get_secret(self, name):
        return self.secrets.get(name)
