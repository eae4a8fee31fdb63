"""
Execution Service

Runs code snippets and project commands in ephemeral containers. Every
call opens its own engine session, so containers are removed and the
engine released on every exit path. Failures come back as results with an
outcome; nothing is raised to the caller.
"""

import time
from pathlib import Path
from typing import List, Mapping, Optional

from sandbox_runner.domain import languages
from sandbox_runner.domain.ports import ExecOutput, IContainerEngine, IContainerSession
from sandbox_runner.domain.services.project_analyzer import (
    WORKSPACE_DIR,
    build_project_container_config,
)
from sandbox_runner.domain.value_objects import (
    EXPERIENCE_METADATA_FILE,
    CommandOutput,
    ContainerConfig,
    ExecutionOutcome,
    ExecutionRequest,
    ExecutionResult,
    ProjectRequirements,
)
from sandbox_runner.application.services.config_resolver import ContainerConfigResolver
from sandbox_runner.infrastructure.container_engine.exec_args import (
    TIMEOUT_EXIT_CODE,
    build_shell_exec_args,
    build_timeout_exec_args,
    build_timeout_shell_exec_args,
    is_timeout_exit,
)
from sandbox_runner.infrastructure.logging import get_logger
from sandbox_runner.shared.errors import (
    ConfigurationError,
    ContainerError,
    EngineConnectionError,
    ExecutionRuntimeError,
    ExecutionTimeoutError,
)

logger = get_logger(__name__)

WORKSPACE_EXCLUDES = (".git", "node_modules", EXPERIENCE_METADATA_FILE)


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 2)


class ExecutionService:
    """
    Main service for executing code in containers.

    The execution flow:
    1. Resolve the container configuration
    2. Start a container and write the code into it
    3. Run setup commands, stopping at the first failure
    4. Run the program under the timeout guard
    5. Classify the outcome; the session removes the container

    Args:
        resolver: Container configuration resolver
        engine: Container engine adapter
        host_timeout_grace: Seconds the host waits beyond the in-container
            deadline before abandoning the exec
        setup_timeout: Host-side limit for each setup command
    """

    def __init__(
        self,
        resolver: ContainerConfigResolver,
        engine: IContainerEngine,
        host_timeout_grace: float = 10.0,
        setup_timeout: float = 900.0,
    ):
        self._resolver = resolver
        self._engine = engine
        self._host_timeout_grace = host_timeout_grace
        self._setup_timeout = setup_timeout

    async def run_code(self, request: ExecutionRequest) -> ExecutionResult:
        """
        Execute a code snippet.

        Args:
            request: Code, language, timeout and options

        Returns:
            ExecutionResult classified into exactly one outcome
        """
        started = time.monotonic()
        language = languages.normalize_language(request.language)
        logger.info(
            "Starting execution",
            language=language,
            timeout=request.timeout,
            model_name=request.model_name,
        )

        try:
            resolved = await self._resolver.resolve(request.code, language, request.use_ai_config)
        except ConfigurationError as e:
            logger.warning("Config resolution failed", language=language, error=e.message)
            return ExecutionResult(
                success=False,
                outcome=ExecutionOutcome.CONFIGURATION_ERROR,
                error=e.message,
                model_name=request.model_name,
                execution_time=_elapsed_ms(started),
            )

        result = ExecutionResult(
            success=False,
            outcome=ExecutionOutcome.RUNTIME_FAILURE,
            model_name=request.model_name,
            container_config=resolved.config,
            cached=resolved.cached,
        )
        config = resolved.config

        try:
            async with self._engine.session() as session:
                container_id = await session.start_container(config)
                await session.write_file(container_id, languages.code_path_for(language), request.code)
                await self._run_setup(session, container_id, config, shell="sh")

                run_started = time.monotonic()
                output = await session.exec(
                    container_id,
                    build_timeout_exec_args(request.timeout, config.run_command),
                    workdir=config.workdir,
                    timeout=request.timeout + self._host_timeout_grace,
                )
                result.exit_code = output.exit_code
                elapsed = time.monotonic() - run_started
                if is_timeout_exit(output.exit_code, output.timed_out, elapsed, request.timeout):
                    raise ExecutionTimeoutError(
                        request.timeout,
                        partial_output=output.stdout,
                        partial_stderr=output.stderr,
                    )
                self._classify(result, output)

        except ExecutionTimeoutError as e:
            result.outcome = ExecutionOutcome.TIMEOUT
            result.exit_code = TIMEOUT_EXIT_CODE
            result.output = e.partial_output.strip() or None
            stderr = e.partial_stderr.strip()
            result.error = f"{e.message}\n{stderr}" if stderr else e.message
        except ExecutionRuntimeError as e:
            result.outcome = ExecutionOutcome.RUNTIME_FAILURE
            result.exit_code = e.exit_code
            result.output = e.stdout.strip() or None
            result.error = e.message
        except EngineConnectionError as e:
            logger.error("Container engine unreachable", error=e.message)
            result.outcome = ExecutionOutcome.CONNECTION_FAILURE
            result.error = e.message
        except ContainerError as e:
            result.outcome = ExecutionOutcome.RUNTIME_FAILURE
            result.error = e.message
        except Exception as e:
            logger.exception("Execution failed unexpectedly", language=language)
            result.outcome = ExecutionOutcome.RUNTIME_FAILURE
            result.error = f"{type(e).__name__}: {e}"

        result.success = result.outcome == ExecutionOutcome.SUCCESS
        result.execution_time = _elapsed_ms(started)
        logger.info(
            "Execution finished",
            language=language,
            outcome=result.outcome.value,
            exit_code=result.exit_code,
            cached=result.cached,
            execution_time_ms=result.execution_time,
        )
        return result

    @staticmethod
    def _classify(result: ExecutionResult, output: ExecOutput) -> None:
        stdout = output.stdout.strip()
        if output.exit_code == 0:
            result.outcome = ExecutionOutcome.SUCCESS
            result.output = stdout
        else:
            result.outcome = ExecutionOutcome.RUNTIME_FAILURE
            result.output = stdout or None
            result.error = output.stderr.strip() or f"Process exited with code {output.exit_code}"

    async def _run_setup(
        self,
        session: IContainerSession,
        container_id: str,
        config: ContainerConfig,
        shell: str,
        strict: bool = True,
    ) -> List[str]:
        """
        Run setup commands in order.

        Args:
            strict: Abort on the first failure; otherwise record it and go on

        Returns:
            Failure messages of the commands that failed (non-strict mode)

        Raises:
            ExecutionRuntimeError: For the first command that fails (strict mode)
        """
        warnings = []
        for index, command in enumerate(config.setup_commands, start=1):
            logger.debug("Running setup command", step=index, command=command)
            output = await session.exec(
                container_id,
                build_shell_exec_args(command, shell),
                workdir=config.workdir,
                timeout=self._setup_timeout,
            )
            if output.exit_code == 0 and not output.timed_out:
                continue

            if output.timed_out:
                message = f"Setup command timed out after {self._setup_timeout:g} seconds: {command}"
            else:
                message = f"Setup command failed with exit code {output.exit_code}: {command}"
            detail = output.stderr.strip() or output.stdout.strip()
            logger.warning("Setup command failed", step=index, exit_code=output.exit_code, strict=strict)

            if strict:
                raise ExecutionRuntimeError(
                    message + (f"\n{detail}" if detail else ""),
                    exit_code=output.exit_code,
                    stdout=output.stdout,
                    stderr=output.stderr,
                    command=command,
                )
            warnings.append(message)
        return warnings

    async def run_project_command(
        self,
        workspace_dir: Path,
        command: str,
        requirements: ProjectRequirements,
        environment: Optional[Mapping[str, str]] = None,
        timeout: int = 300,
        export_dir: Optional[Path] = None,
    ) -> CommandOutput:
        """
        Run a shell command against a copy of a project directory.

        The directory is copied to /workspace, the command runs through
        ``bash -c`` under the timeout guard, and /workspace is copied back
        out to ``export_dir`` whatever the command's outcome.

        Args:
            workspace_dir: Host directory to copy in
            command: Shell command line, passed as a single argument
            requirements: Detected project requirements
            environment: Variables set in the container (secret values included)
            timeout: Deadline in seconds
            export_dir: Host directory receiving /workspace afterwards

        Returns:
            CommandOutput; never raises
        """
        started = time.monotonic()
        config = build_project_container_config(requirements, environment)
        logger.info(
            "Starting project command",
            project_type=requirements.project_type,
            base_image=config.base_image,
            timeout=timeout,
            env_vars=len(config.environment),
        )

        try:
            async with self._engine.session() as session:
                container_id = await session.start_container(config)
                await session.copy_directory_in(
                    container_id, Path(workspace_dir), WORKSPACE_DIR, exclude=WORKSPACE_EXCLUDES
                )
                # Optional dependencies may fail to install; the command still runs.
                setup_warnings = await self._run_setup(
                    session, container_id, config, shell="bash", strict=False
                )

                run_started = time.monotonic()
                output = await session.exec(
                    container_id,
                    build_timeout_shell_exec_args(timeout, command),
                    workdir=WORKSPACE_DIR,
                    timeout=timeout + self._host_timeout_grace,
                )
                timed_out = is_timeout_exit(
                    output.exit_code, output.timed_out, time.monotonic() - run_started, timeout
                )
                if timed_out:
                    outcome = ExecutionOutcome.TIMEOUT
                elif output.exit_code == 0:
                    outcome = ExecutionOutcome.SUCCESS
                else:
                    outcome = ExecutionOutcome.RUNTIME_FAILURE
                result = CommandOutput(
                    stdout=output.stdout,
                    stderr=output.stderr,
                    exit_code=TIMEOUT_EXIT_CODE if timed_out else output.exit_code,
                    outcome=outcome,
                    timed_out=timed_out,
                    error=f"Command timed out after {timeout} seconds" if timed_out else None,
                    setup_warnings=setup_warnings,
                )

                if export_dir is not None:
                    try:
                        await session.copy_directory_out(container_id, WORKSPACE_DIR, Path(export_dir))
                        result.exported = True
                    except ContainerError as e:
                        logger.error("Workspace export failed", error=e.message)
                        result.error = f"Workspace export failed: {e.message}"
                    except OSError as e:
                        logger.error("Workspace export failed", error=str(e))
                        result.error = f"Workspace export failed: {e}"

        except EngineConnectionError as e:
            logger.error("Container engine unreachable", error=e.message)
            result = CommandOutput(
                stdout="",
                stderr="",
                exit_code=None,
                outcome=ExecutionOutcome.CONNECTION_FAILURE,
                error=e.message,
            )
        except ContainerError as e:
            result = CommandOutput(
                stdout="",
                stderr="",
                exit_code=None,
                outcome=ExecutionOutcome.RUNTIME_FAILURE,
                error=e.message,
            )
        except Exception as e:
            logger.exception("Project command failed unexpectedly")
            result = CommandOutput(
                stdout="",
                stderr="",
                exit_code=None,
                outcome=ExecutionOutcome.RUNTIME_FAILURE,
                error=f"{type(e).__name__}: {e}",
            )

        result.execution_time = _elapsed_ms(started)
        logger.info(
            "Project command finished",
            outcome=result.outcome.value,
            exit_code=result.exit_code,
            execution_time_ms=result.execution_time,
        )
        return result
