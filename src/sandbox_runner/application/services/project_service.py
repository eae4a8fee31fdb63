"""
Run Project Service

The project-command tool: runs a shell command against an experience copy
of a project, in a container provisioned from the project's detected
requirements, with secrets injected from the caller's secret store.
"""

import asyncio
import dataclasses
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol

from sandbox_runner.application.services.execution_service import ExecutionService
from sandbox_runner.application.services.experience_service import (
    ExperienceService,
    generate_experience_id,
)
from sandbox_runner.domain.services.project_analyzer import (
    APT_CACHE_VOLUME,
    ProjectRequirementsDetector,
    build_setup_commands,
)
from sandbox_runner.domain.services.skill_provisioner import resolve_skill_repo
from sandbox_runner.domain.value_objects import (
    AgentEntry,
    CommandOutput,
    ExecutionOutcome,
    ExperienceStatus,
    ProjectRequirements,
)
from sandbox_runner.infrastructure.logging import bound_context, get_logger
from sandbox_runner.shared.errors import (
    AgentNotFoundError,
    DomainError,
    ExperienceExistsError,
    ExperienceNotFoundError,
    PathNotAllowedError,
)

logger = get_logger(__name__)

ACTIONS = ("new", "continue", "commit", "discard")

HINT_NEW = "Reuse this exact experienceId for the next run_project call in this workflow."
HINT_FAILED = "Retry with the SAME experienceId after fixing the command. Dependencies are already installed."
HINT_TIMEOUT = "Reuse this experienceId on retry so the next command sees current state."


class RunProjectContext(Protocol):
    """What the project tool needs from its host."""

    @property
    def work_dir(self) -> str:
        ...

    def get_agent(self, id_or_name: str) -> Optional[AgentEntry]:
        ...

    def get_allowed_roots(self) -> List[str]:
        ...

    def get_secret(self, name: str) -> Optional[str]:
        ...


@dataclass
class RunProjectResult:
    """
    Result of a project-tool call.

    Failures are reported through ``error`` (a stable code) and ``message``;
    the tool never raises.
    """

    experience_id: Optional[str] = None
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None
    success: bool = False
    status: Optional[ExperienceStatus] = None
    hint: Optional[str] = None
    timed_out: bool = False
    error: Optional[str] = None
    message: Optional[str] = None
    setup_warnings: List[str] = field(default_factory=list)
    detected_requirements: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["status"] = self.status.value if self.status else None
        return data


def is_within(path: Path, root: Path) -> bool:
    return path == root or root in path.parents


class RunProjectService:
    """
    Project-command tool.

    Args:
        context: Host callbacks for agents, allowed roots and secrets
        experiences: Experience manager
        detector: Project requirements detector
        execution: Execution service used in project mode
        default_timeout: Seconds allowed when the call gives no timeout
    """

    def __init__(
        self,
        context: RunProjectContext,
        experiences: ExperienceService,
        detector: ProjectRequirementsDetector,
        execution: ExecutionService,
        default_timeout: int = 300,
    ):
        self._context = context
        self._experiences = experiences
        self._detector = detector
        self._execution = execution
        self._default_timeout = default_timeout

    def _resolve_source(self, agent: Optional[AgentEntry], agent_id: Optional[str]) -> Path:
        if agent_id is not None:
            if agent is None:
                raise AgentNotFoundError(agent_id)
            return Path(agent.project_path).resolve()
        return Path(self._context.work_dir).resolve()

    def _ensure_allowed(self, path: Path) -> None:
        roots = [Path(root).resolve() for root in self._context.get_allowed_roots()]
        if not any(is_within(path, root) for root in roots):
            raise PathNotAllowedError(
                "path is not under the work directory or any configured agent project",
                details={"path": str(path)},
            )

    @staticmethod
    def _with_agent_skills(requirements: ProjectRequirements, agent: Optional[AgentEntry]) -> ProjectRequirements:
        """Merge agent-declared skills into a copy of ``requirements``."""
        skill_repos = list(requirements.skill_repos)
        apt_packages = list(requirements.apt_packages)
        if agent is not None:
            seen = {repo.name for repo in skill_repos}
            for ref in agent.skills_from_git:
                repo = resolve_skill_repo(ref)
                if repo.name in seen:
                    continue
                seen.add(repo.name)
                skill_repos.append(repo)
                apt_packages.extend(p for p in repo.apt_packages if p not in apt_packages)

        if skill_repos and "git" not in apt_packages:
            apt_packages.append("git")
        if apt_packages == requirements.apt_packages and skill_repos == requirements.skill_repos:
            return requirements

        volumes = list(requirements.cache_volumes)
        if apt_packages and all(v.name != APT_CACHE_VOLUME.name for v in volumes):
            volumes.append(APT_CACHE_VOLUME)
        return dataclasses.replace(
            requirements,
            skill_repos=skill_repos,
            apt_packages=apt_packages,
            cache_volumes=volumes,
            setup_commands=build_setup_commands(
                requirements.base_image,
                apt_packages,
                requirements.npm_global_packages,
                requirements.project_type,
            ),
        )

    def _gather_env(
        self,
        requirements: ProjectRequirements,
        agent: Optional[AgentEntry],
        explicit: Optional[Mapping[str, str]],
    ) -> Dict[str, str]:
        """Detected names, then agent secrets, then explicit values; later sources win."""
        env: Dict[str, str] = {}
        names = list(requirements.env_var_names)
        if agent is not None:
            names.extend(agent.secrets)
        for name in names:
            value = self._context.get_secret(name)
            if value:
                env[name] = value
        if explicit:
            env.update({str(k): str(v) for k, v in explicit.items()})
        return env

    async def run(
        self,
        command: str = "",
        agent_id: Optional[str] = None,
        experience_id: Optional[str] = None,
        action: str = "continue",
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[int] = None,
    ) -> RunProjectResult:
        """
        Run ``command`` in an experience of the agent's project, or
        commit/discard that experience.

        Args:
            command: Bash command line (required for new/continue)
            agent_id: Agent whose project is the source; defaults to the work dir
            experience_id: Experience to use; generated when omitted
            action: ``new``, ``continue`` (default, starts when absent),
                ``commit`` or ``discard``
            env: Extra environment variables, overriding secrets
            timeout: Seconds, defaults to the service default
        """
        experience_id = experience_id or generate_experience_id()
        with bound_context(experience_id=experience_id, action=action):
            try:
                return await self._run(command, agent_id, experience_id, action, env, timeout)
            except DomainError as e:
                logger.warning("Project command rejected", error=e.code, message=e.message)
                return RunProjectResult(
                    experience_id=experience_id,
                    error=e.code,
                    message=e.message,
                )

    async def _run(
        self,
        command: str,
        agent_id: Optional[str],
        experience_id: str,
        action: str,
        env: Optional[Mapping[str, str]],
        timeout: Optional[int],
    ) -> RunProjectResult:
        if action not in ACTIONS:
            return RunProjectResult(
                experience_id=experience_id,
                error="INVALID_ACTION",
                message=f"action must be one of {', '.join(ACTIONS)}",
            )

        agent = self._context.get_agent(agent_id) if agent_id is not None else None
        source = self._resolve_source(agent, agent_id)
        self._ensure_allowed(source)
        work_dir = self._context.work_dir
        self._experiences.validate_id(experience_id)
        exists = self._experiences.experience_exists(work_dir, experience_id)

        if action == "discard":
            if not exists:
                raise ExperienceNotFoundError(f"Experience {experience_id} does not exist.")
            await asyncio.to_thread(self._experiences.discard_experience, work_dir, experience_id)
            return RunProjectResult(
                experience_id=experience_id,
                success=True,
                status=ExperienceStatus.DISCARDED,
                message=f"Experience {experience_id} discarded.",
            )

        if action == "commit":
            if not exists:
                raise ExperienceNotFoundError(f"Experience {experience_id} does not exist.")
            metadata = await asyncio.to_thread(self._experiences.commit_experience, work_dir, experience_id)
            return RunProjectResult(
                experience_id=experience_id,
                success=True,
                status=ExperienceStatus.COMMITTED,
                message=f"Experience {experience_id} committed to {metadata.source_path}.",
            )

        if not command or not command.strip():
            return RunProjectResult(
                experience_id=experience_id,
                error="COMMAND_REQUIRED",
                message="A command is required for new and continue actions",
            )
        timeout = timeout if timeout is not None else self._default_timeout
        if timeout < 1:
            return RunProjectResult(
                experience_id=experience_id,
                error="INVALID_TIMEOUT",
                message="timeout must be at least 1 second",
            )

        if action == "new" and exists:
            raise ExperienceExistsError(f"Experience {experience_id} already exists")
        if exists:
            await asyncio.to_thread(self._experiences.continue_experience, work_dir, experience_id)
            status = ExperienceStatus.CONTINUED
        else:
            await asyncio.to_thread(
                self._experiences.start_experience, work_dir, experience_id, source, agent_id
            )
            status = ExperienceStatus.NEW

        requirements = await asyncio.to_thread(self._detector.detect, source)
        logger.info(
            "Project analyzed",
            project_path=str(source),
            project_type=requirements.project_type,
            tools=requirements.detected_tools,
            env_vars=len(requirements.env_var_names),
            skills=[s.name for s in requirements.skill_repos],
        )
        requirements = self._with_agent_skills(requirements, agent)
        environment = self._gather_env(requirements, agent, env)
        experience_dir = self._experiences.experience_dir(work_dir, experience_id)

        with tempfile.TemporaryDirectory(prefix="sandbox-export-") as staging:
            export_dir = Path(staging) / "workspace"
            output = await self._execution.run_project_command(
                experience_dir,
                command,
                requirements,
                environment=environment,
                timeout=timeout,
                export_dir=export_dir,
            )
            if output.exported:
                await asyncio.to_thread(
                    self._experiences.apply_workspace_export, work_dir, experience_id, export_dir
                )

        return self._build_result(experience_id, status, output, requirements, environment, timeout)

    @staticmethod
    def _build_result(
        experience_id: str,
        status: ExperienceStatus,
        output: CommandOutput,
        requirements: ProjectRequirements,
        environment: Mapping[str, str],
        timeout: int,
    ) -> RunProjectResult:
        success = output.outcome == ExecutionOutcome.SUCCESS
        stderr = output.stderr.strip()
        if output.timed_out:
            hint = HINT_TIMEOUT
            stderr = stderr or f"Execution timed out after {timeout} seconds"
        elif not success:
            hint = HINT_FAILED
        elif status == ExperienceStatus.NEW:
            hint = HINT_NEW
        else:
            hint = None

        error = None
        if output.outcome == ExecutionOutcome.CONNECTION_FAILURE:
            error = "CONNECTION_FAILURE"
        elif output.error and not output.timed_out and output.exit_code is None:
            error = "EXECUTION_FAILED"

        return RunProjectResult(
            experience_id=experience_id,
            stdout=output.stdout.strip(),
            stderr=stderr,
            exit_code=output.exit_code,
            success=success,
            status=status,
            hint=hint,
            timed_out=output.timed_out,
            error=error,
            message=output.error,
            setup_warnings=list(output.setup_warnings),
            detected_requirements={
                "project_type": requirements.project_type,
                "detected_tools": list(requirements.detected_tools),
                "base_image": requirements.base_image,
                "env_vars_injected": list(environment),
                "skill_repos": [f"{r.name} ({r.git_repo})" for r in requirements.skill_repos],
            },
        )
