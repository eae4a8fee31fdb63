"""
Config Proposer Port Interface

Defines the contract for the collaborator that proposes a container
configuration for code the static registry cannot handle. This is an output
port, implemented by the infrastructure layer (an LLM client).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Mapping


@dataclass(frozen=True)
class ConfigProposalRequest:
    """
    Input to a configuration proposal.

    Attributes:
        code: Source code to run
        language: Normalized language name
        detected_packages: Third-party packages found by static detection
    """

    code: str
    language: str
    detected_packages: List[str] = field(default_factory=list)


class IConfigProposer(ABC):
    """
    Port interface for configuration proposals.

    The returned mapping is untrusted; callers validate it before use.
    """

    @abstractmethod
    async def propose(self, request: ConfigProposalRequest) -> Mapping[str, Any]:
        """
        Propose a container configuration.

        Args:
            request: Code, language and detected packages

        Returns:
            A mapping shaped like ContainerConfig's JSON form

        Raises:
            ProposerError: If the collaborator cannot be reached
            ConfigurationError: If the reply contains no JSON object
        """
        pass
