"""
Infrastructure errors

Error types raised by adapters (container engine, LLM transport).
"""
from typing import Optional


class InfrastructureError(Exception):
    """Base class for infrastructure errors."""

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None
    ):
        self.message = message
        self.original_error = original_error
        super().__init__(self.message)


class EngineConnectionError(InfrastructureError):
    """The container engine is unreachable."""
    pass


class ContainerError(InfrastructureError):
    """The container engine rejected an operation."""
    pass


class ProposerError(InfrastructureError):
    """The LLM proposer could not be reached or returned an error status."""
    pass
