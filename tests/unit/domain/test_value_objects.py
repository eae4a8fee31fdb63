"""
Value object unit tests.
"""
from datetime import datetime, timezone

import pytest

from sandbox_runner.domain.value_objects import (
    ContainerConfig,
    ExecutionOutcome,
    ExecutionRequest,
    ExecutionResult,
    ExperienceMetadata,
)
from sandbox_runner.shared.errors import ConfigurationError


class TestContainerConfig:
    """ContainerConfig validation."""

    def test_accepts_camel_case_payload(self):
        config = ContainerConfig.from_untrusted(
            {
                "baseImage": "python:3.12-slim",
                "cacheVolumes": [{"name": "pip-cache", "mountPath": "/root/.cache/pip"}],
                "setupCommands": ["pip install requests"],
                "runCommand": ["python", "/app/code.py"],
                "environment": {"DEBUG": 1},
            }
        )

        assert config.base_image == "python:3.12-slim"
        assert config.workdir == "/app"
        assert config.cache_volumes[0].mount_path == "/root/.cache/pip"
        assert config.environment == {"DEBUG": "1"}

    def test_to_dict_round_trips_through_from_untrusted(self):
        config = ContainerConfig(base_image="node:20", run_command=["node", "/app/code.js"])

        data = config.to_dict()

        assert data["baseImage"] == "node:20"
        assert data["runCommand"] == ["node", "/app/code.js"]
        assert ContainerConfig.from_untrusted(data) == config

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            "python:3.11",
            ["python"],
            {"runCommand": ["python"]},
            {"baseImage": "", "runCommand": ["python"]},
            {"baseImage": "   ", "runCommand": ["python"]},
            {"baseImage": "python:3.11"},
            {"baseImage": "python:3.11", "runCommand": []},
            {"baseImage": "python:3.11", "runCommand": ["python", ""]},
            {"baseImage": "python:3.11", "runCommand": "python code.py"},
        ],
    )
    def test_rejects_invalid_payloads(self, payload):
        with pytest.raises(ConfigurationError):
            ContainerConfig.from_untrusted(payload)

    def test_with_setup_commands_appends(self):
        config = ContainerConfig(base_image="node:20", setup_commands=["a"], run_command=["node"])

        updated = config.with_setup_commands(["b"])

        assert updated.setup_commands == ["a", "b"]
        assert config.setup_commands == ["a"]


class TestExecutionRequest:
    """ExecutionRequest validation."""

    def test_defaults(self):
        request = ExecutionRequest(code="print(1)", language="python")

        assert request.timeout == 30
        assert request.use_ai_config is False

    @pytest.mark.parametrize("timeout", [0, -1, 3601])
    def test_timeout_bounds(self, timeout):
        with pytest.raises(ValueError, match="Timeout"):
            ExecutionRequest(code="", language="python", timeout=timeout)

    def test_blank_language(self):
        with pytest.raises(ValueError, match="Language"):
            ExecutionRequest(code="", language="  ")


class TestExecutionResult:
    def test_to_dict(self):
        result = ExecutionResult(
            success=True,
            outcome=ExecutionOutcome.SUCCESS,
            output="hi",
            exit_code=0,
            container_config=ContainerConfig(base_image="bash", run_command=["bash", "/app/code.sh"]),
            cached=True,
        )

        data = result.to_dict()

        assert data["outcome"] == "success"
        assert data["container_config"]["baseImage"] == "bash"
        assert data["cached"] is True


class TestExperienceMetadata:
    def test_round_trip(self):
        now = datetime(2025, 1, 14, 10, 30, tzinfo=timezone.utc)
        metadata = ExperienceMetadata(
            experience_id="exp-1",
            source_path="/projects/app",
            created=now,
            last_used=now,
            agent_id="agent-1",
        )

        data = metadata.to_dict()

        assert data["experienceId"] == "exp-1"
        assert data["agentId"] == "agent-1"
        assert ExperienceMetadata.from_dict(data) == metadata

    def test_agent_id_is_optional(self):
        now = datetime.now(timezone.utc)
        metadata = ExperienceMetadata("exp-1", "/p", now, now)

        assert "agentId" not in metadata.to_dict()
