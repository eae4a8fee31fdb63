"""
Sandbox Value Objects

Immutable value objects for container configuration, execution requests
and results, project requirements and experience metadata.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from sandbox_runner.shared.errors import ConfigurationError


class CacheVolumeConfig(BaseModel):
    """
    A named persistent volume mounted into the container.

    Volumes with the same name are shared by every run that mounts them,
    which is how package-manager caches survive across executions.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str = Field(..., min_length=1)
    mount_path: str = Field(..., alias="mountPath", min_length=1)


class ContainerConfig(BaseModel):
    """
    Everything needed to build and run a container for one execution.

    Attributes:
        base_image: Container image reference, e.g. ``python:3.11-alpine``
        workdir: Working directory inside the container
        cache_volumes: Named volumes to mount
        environment: Environment variables set in the container
        setup_commands: Shell commands run in order before the program
        run_command: argv of the program to run
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    base_image: str = Field(..., alias="baseImage", min_length=1)
    workdir: str = Field(default="/app", min_length=1)
    cache_volumes: List[CacheVolumeConfig] = Field(default_factory=list, alias="cacheVolumes")
    environment: Dict[str, str] = Field(default_factory=dict)
    setup_commands: List[str] = Field(default_factory=list, alias="setupCommands")
    run_command: List[str] = Field(..., alias="runCommand", min_length=1)

    @field_validator("base_image")
    @classmethod
    def validate_base_image(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("baseImage must be a non-empty string")
        return v

    @field_validator("run_command")
    @classmethod
    def validate_run_command(cls, v: List[str]) -> List[str]:
        if any(not part for part in v):
            raise ValueError("runCommand elements must be non-empty strings")
        return v

    @field_validator("environment", mode="before")
    @classmethod
    def stringify_environment(cls, v: Any) -> Any:
        if v is None:
            return {}
        if isinstance(v, Mapping):
            return {
                str(key): value if isinstance(value, str) else str(value)
                for key, value in v.items()
                if value is not None
            }
        return v

    @classmethod
    def from_untrusted(cls, payload: Any) -> "ContainerConfig":
        """
        Validate an externally produced configuration.

        Used for LLM output and disk cache entries. Anything that is not a
        mapping with the required fields is rejected; nothing is defaulted
        except ``workdir`` and the optional collections.

        Raises:
            ConfigurationError: If the payload does not describe a valid config
        """
        if not isinstance(payload, Mapping):
            raise ConfigurationError(
                "Container configuration must be a JSON object",
                details={"received": type(payload).__name__},
            )
        try:
            return cls.model_validate(dict(payload))
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid container configuration: {e.error_count()} error(s)",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e

    def with_setup_commands(self, commands: List[str]) -> "ContainerConfig":
        """Return a copy with ``commands`` appended to the setup sequence."""
        return self.model_copy(update={"setup_commands": [*self.setup_commands, *commands]})

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase JSON shape."""
        return self.model_dump(by_alias=True)


@dataclass(frozen=True)
class ResolvedConfig:
    """A resolved container configuration and whether it came from a cache tier."""

    config: ContainerConfig
    cached: bool


@dataclass(frozen=True)
class CacheStats:
    """Sizes of the configuration cache tiers."""

    memory_size: int
    disk_size: int
    cache_dir: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "memory_size": self.memory_size,
            "disk_size": self.disk_size,
            "cache_dir": self.cache_dir,
        }


@dataclass(frozen=True)
class ExecutionRequest:
    """
    Request to execute a code snippet.

    Attributes:
        code: Source code to execute
        language: Language name, e.g. ``python`` or ``typescript``
        timeout: Wall-clock deadline in seconds (1-3600)
        model_name: Opaque label passed through to the result
        use_ai_config: Ask the LLM proposer even for registry languages
    """

    code: str
    language: str
    timeout: int = 30
    model_name: Optional[str] = None
    use_ai_config: bool = False

    def __post_init__(self):
        """Validate execution request."""
        if not self.language or not self.language.strip():
            raise ValueError("Language must not be empty")
        if self.timeout < 1 or self.timeout > 3600:
            raise ValueError("Timeout must be between 1 and 3600 seconds")


class ExecutionOutcome(str, Enum):
    """Classification of a finished execution."""

    SUCCESS = "success"
    RUNTIME_FAILURE = "runtime_failure"
    TIMEOUT = "timeout"
    CONNECTION_FAILURE = "connection_failure"
    CONFIGURATION_ERROR = "configuration_error"


@dataclass
class ExecutionResult:
    """
    Result of a code execution.

    Not frozen because the result is built up while the execution runs.

    Attributes:
        success: True only for ``ExecutionOutcome.SUCCESS``
        outcome: Failure classification
        output: Trimmed stdout, present whenever any was produced
        error: Failure description, absent on success
        exit_code: Process exit code, None when nothing ran
        model_name: Label copied from the request
        container_config: The config used, None when resolution failed
        cached: Whether the config came from a cache tier
        execution_time: Milliseconds since the call started
    """

    success: bool
    outcome: ExecutionOutcome
    output: Optional[str] = None
    error: Optional[str] = None
    exit_code: Optional[int] = None
    model_name: Optional[str] = None
    container_config: Optional[ContainerConfig] = None
    cached: bool = False
    execution_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "success": self.success,
            "outcome": self.outcome.value,
            "output": self.output,
            "error": self.error,
            "exit_code": self.exit_code,
            "model_name": self.model_name,
            "container_config": self.container_config.to_dict() if self.container_config else None,
            "cached": self.cached,
            "execution_time": self.execution_time,
        }


@dataclass
class CommandOutput:
    """
    Result of a command run in project mode.

    Attributes:
        stdout: Untrimmed standard output
        stderr: Untrimmed standard error
        exit_code: Exit code, None when the command never ran
        outcome: Failure classification
        timed_out: True when the deadline terminated the command
        execution_time: Milliseconds since the call started
        error: Failure description for timeout, engine or connection errors
        setup_warnings: Setup commands that failed without stopping the run
        exported: True when /workspace was copied out completely
    """

    stdout: str
    stderr: str
    exit_code: Optional[int]
    outcome: ExecutionOutcome
    timed_out: bool = False
    execution_time: float = 0.0
    error: Optional[str] = None
    setup_warnings: List[str] = field(default_factory=list)
    exported: bool = False


@dataclass(frozen=True)
class SkillRepo:
    """
    A tool repository cloned into the container before a project command.

    Attributes:
        name: Skill name, e.g. ``chrome-driver``
        git_repo: Clone URL or ``owner/repo`` shorthand
        container_path: Absolute clone destination
        apt_packages: System packages the skill needs
        setup_commands: Commands run inside the clone after cloning
    """

    name: str
    git_repo: str
    container_path: str
    apt_packages: List[str] = field(default_factory=list)
    setup_commands: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ProjectRequirements:
    """
    What a project directory needs at run time, inferred from its files.

    Only environment variable NAMES are recorded, never values.
    """

    project_type: str
    base_image: str
    detected_tools: List[str] = field(default_factory=list)
    env_var_names: List[str] = field(default_factory=list)
    apt_packages: List[str] = field(default_factory=list)
    npm_global_packages: List[str] = field(default_factory=list)
    setup_commands: List[str] = field(default_factory=list)
    cache_volumes: List[CacheVolumeConfig] = field(default_factory=list)
    skill_repos: List[SkillRepo] = field(default_factory=list)


EXPERIENCE_METADATA_FILE = ".experience-meta.json"


class ExperienceStatus(str, Enum):
    """Lifecycle status reported for an experience."""

    NEW = "new"
    CONTINUED = "continued"
    COMMITTED = "committed"
    DISCARDED = "discarded"


@dataclass
class ExperienceMetadata:
    """
    Metadata stored inside an experience directory.

    Attributes:
        experience_id: Caller-chosen or generated identifier
        source_path: Absolute path of the project the experience was copied from
        created: Creation time (UTC)
        last_used: Time of the most recent start/continue (UTC)
        agent_id: Optional agent that owns the experience
    """

    experience_id: str
    source_path: str
    created: datetime
    last_used: datetime
    agent_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "experienceId": self.experience_id,
            "sourcePath": self.source_path,
            "created": self.created.isoformat(),
            "lastUsed": self.last_used.isoformat(),
        }
        if self.agent_id is not None:
            data["agentId"] = self.agent_id
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExperienceMetadata":
        return cls(
            experience_id=data["experienceId"],
            source_path=data["sourcePath"],
            created=datetime.fromisoformat(data["created"]),
            last_used=datetime.fromisoformat(data["lastUsed"]),
            agent_id=data.get("agentId"),
        )


@dataclass(frozen=True)
class AgentEntry:
    """
    An agent whose project the project tool may run commands in.

    Attributes:
        id: Agent identifier
        project_path: Directory used as the experience source
        name: Display name, also accepted for lookup
        secrets: Secret names injected into the agent's containers
        skills_from_git: Skill names or repositories cloned before each command
    """

    id: str
    project_path: str
    name: Optional[str] = None
    secrets: List[str] = field(default_factory=list)
    skills_from_git: List[str] = field(default_factory=list)
