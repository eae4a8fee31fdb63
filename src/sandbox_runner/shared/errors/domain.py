"""
Domain errors

Error types raised by the domain and application layers. Every error
carries a stable ``code`` so callers (the project tool, the HTTP layer)
can report failures without parsing messages.
"""
from typing import Any, Optional


class DomainError(Exception):
    """Base class for domain errors."""

    code = "DOMAIN_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(DomainError):
    """No valid container configuration could be produced."""

    code = "CONFIGURATION_ERROR"


class ExecutionRuntimeError(DomainError):
    """A command inside the container exited with a non-zero status."""

    code = "RUNTIME_ERROR"

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
        command: Optional[str] = None,
    ):
        super().__init__(
            message,
            details={"exit_code": exit_code, "command": command},
        )
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.command = command


class ExecutionTimeoutError(DomainError):
    """Execution exceeded its wall-clock deadline."""

    code = "TIMEOUT"

    def __init__(self, timeout: int, partial_output: str = "", partial_stderr: str = ""):
        super().__init__(
            f"Execution timed out after {timeout} seconds",
            details={"timeout": timeout},
        )
        self.timeout = timeout
        self.partial_output = partial_output
        self.partial_stderr = partial_stderr


class _CodedError(DomainError):
    """Error whose message is prefixed with its code, e.g. ``EXPERIENCE_NOT_FOUND: ...``."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(f"{self.code}: {message}", details)


class FilesystemError(DomainError):
    """Copy, delete or metadata I/O failed."""

    code = "FILESYSTEM_ERROR"


class InvalidExperienceIdError(_CodedError, FilesystemError):
    code = "INVALID_EXPERIENCE_ID"


class ExperienceNotFoundError(_CodedError, FilesystemError):
    code = "EXPERIENCE_NOT_FOUND"


class ExperienceExistsError(_CodedError, FilesystemError):
    code = "EXPERIENCE_EXISTS"


class ExperienceClosedError(_CodedError, FilesystemError):
    """The experience was committed or discarded and cannot be reused."""

    code = "EXPERIENCE_CLOSED"


class AgentNotFoundError(_CodedError):
    code = "AGENT_NOT_FOUND"


class PathNotAllowedError(_CodedError):
    code = "OUTSIDE_ALLOWED_PATH"
