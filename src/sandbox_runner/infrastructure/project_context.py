"""
Project tool host context backed by settings.

Agents come from an optional JSON file; secrets are read from the process
environment.
"""

import json
import os
from pathlib import Path
from typing import List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from sandbox_runner.domain.value_objects import AgentEntry
from sandbox_runner.infrastructure.logging import get_logger
from sandbox_runner.shared.errors import ConfigurationError

logger = get_logger(__name__)


class AgentConfig(BaseModel):
    """One entry of the agents file."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    project_path: str = Field(..., alias="projectPath", min_length=1)
    secrets: List[str] = Field(default_factory=list)
    skills_from_git: List[str] = Field(default_factory=list, alias="skillsFromGit")

    def to_entry(self) -> AgentEntry:
        return AgentEntry(
            id=self.id,
            name=self.name,
            project_path=self.project_path,
            secrets=list(self.secrets),
            skills_from_git=list(self.skills_from_git),
        )


def load_agents(path: Union[str, Path]) -> List[AgentEntry]:
    """
    Load agents from a JSON file holding a list of agent objects.

    Raises:
        ConfigurationError: If the file is unreadable or malformed
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Cannot read agents file {path}: {e}") from e
    if not isinstance(raw, list):
        raise ConfigurationError(f"Agents file {path} must contain a JSON list")
    try:
        return [AgentConfig.model_validate(item).to_entry() for item in raw]
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid agents file {path}: {e.error_count()} error(s)",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e


class SettingsProjectContext:
    """
    Host context for the project tool.

    Args:
        work_dir: Default project directory, anchor for experiences
        agents: Known agents
        extra_roots: Additional allowed project roots
    """

    def __init__(
        self,
        work_dir: Union[str, Path],
        agents: Sequence[AgentEntry] = (),
        extra_roots: Sequence[Union[str, Path]] = (),
    ):
        self.work_dir = str(Path(work_dir).resolve())
        self.agents = list(agents)
        self.extra_roots = [str(root) for root in extra_roots]

    def get_agent(self, id_or_name: str) -> Optional[AgentEntry]:
        for agent in self.agents:
            if agent.id == id_or_name or agent.name == id_or_name:
                return agent
        return None

    def get_allowed_roots(self) -> List[str]:
        """Work dir, configured roots, then every agent project path."""
        return [self.work_dir, *self.extra_roots, *(a.project_path for a in self.agents)]

    def get_secret(self, name: str) -> Optional[str]:
        return os.environ.get(name) or None
