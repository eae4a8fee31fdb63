"""
Exec argv builder unit tests.
"""
import pytest

from sandbox_runner.infrastructure.container_engine import (
    TIMEOUT_EXIT_CODE,
    build_shell_exec_args,
    build_timeout_exec_args,
    build_timeout_shell_exec_args,
    is_timeout_exit,
)


class TestBuilders:
    def test_shell_command_is_one_argument(self):
        command = "echo 'a b' && rm -rf \"$HOME/x\"; exit 3"

        assert build_shell_exec_args(command) == ["sh", "-c", command]
        assert build_timeout_shell_exec_args(5, command) == [
            "timeout", "-k", "2", "5", "bash", "-c", command,
        ]

    def test_program_argv_is_not_joined(self):
        assert build_timeout_exec_args(30, ["python", "/app/code.py"]) == [
            "timeout", "-k", "2", "30", "python", "/app/code.py",
        ]

    def test_rejects_zero_timeout(self):
        with pytest.raises(ValueError):
            build_timeout_exec_args(0, ["true"])

    def test_kill_after_grace(self):
        assert build_timeout_exec_args(10, ["sleep", "99"], kill_after=5)[:4] == ["timeout", "-k", "5", "10"]
        with pytest.raises(ValueError):
            build_timeout_exec_args(10, ["true"], kill_after=0)


class TestTimeoutDetection:
    def test_reserved_exit_code(self):
        assert TIMEOUT_EXIT_CODE == 124
        assert is_timeout_exit(124, False, 0.1, 10) is True

    def test_host_guard(self):
        assert is_timeout_exit(None, True, 12.0, 10) is True

    @pytest.mark.parametrize("code", [137, 143])
    def test_signal_exit_after_deadline(self, code):
        assert is_timeout_exit(code, False, 10.5, 10) is True
        assert is_timeout_exit(code, False, 2.0, 10) is False

    @pytest.mark.parametrize("code", [0, 1, 2, None])
    def test_ordinary_exits(self, code):
        assert is_timeout_exit(code, False, 20.0, 10) is False
