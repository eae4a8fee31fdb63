"""
Command line construction for in-container execution.

The program argv is never joined into a string; user commands are passed
to the shell as a single ``-c`` argument.
"""

from typing import List, Optional, Sequence

# Exit code `timeout` uses when the deadline is hit.
TIMEOUT_EXIT_CODE = 124

# Some `timeout` builds (busybox) exit with the signal status instead.
SIGNAL_EXIT_CODES = (128 + 9, 128 + 15)

# Seconds between SIGTERM and SIGKILL once the deadline passes.
KILL_AFTER_SECONDS = 2


def build_shell_exec_args(command: str, shell: str = "sh") -> List[str]:
    return [shell, "-c", command]


def build_timeout_exec_args(
    timeout: int,
    argv: Sequence[str],
    kill_after: int = KILL_AFTER_SECONDS,
) -> List[str]:
    """
    Wrap ``argv`` with the ``timeout`` utility.

    The program gets SIGTERM at the deadline and SIGKILL ``kill_after``
    seconds later if it is still running.
    """
    if timeout < 1:
        raise ValueError("timeout must be at least 1 second")
    if kill_after < 1:
        raise ValueError("kill_after must be at least 1 second")
    return ["timeout", "-k", str(kill_after), str(timeout), *argv]


def build_timeout_shell_exec_args(
    timeout: int,
    command: str,
    shell: str = "bash",
    kill_after: int = KILL_AFTER_SECONDS,
) -> List[str]:
    return build_timeout_exec_args(timeout, build_shell_exec_args(command, shell), kill_after)


def is_timeout_exit(
    exit_code: Optional[int],
    timed_out_on_host: bool,
    elapsed_seconds: float,
    timeout: int,
) -> bool:
    """
    Decide whether a finished command was terminated by its deadline.

    True for the reserved exit code, for a host-side guard expiry, and for a
    SIGKILL/SIGTERM exit once the deadline has elapsed.
    """
    if timed_out_on_host or exit_code == TIMEOUT_EXIT_CODE:
        return True
    return exit_code in SIGNAL_EXIT_CODES and elapsed_seconds >= timeout
