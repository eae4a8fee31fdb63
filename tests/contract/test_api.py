"""Contract tests for the REST API."""

import pytest
from httpx import AsyncClient

from tests.helpers import failed, ok


@pytest.mark.contract
class TestHealthAPIContract:
    async def test_healthy(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["engine_available"] is True
        assert "version" in data
        assert "uptime" in data

    async def test_degraded_without_engine(self, client: AsyncClient, engine) -> None:
        engine.available = False

        response = await client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"

    async def test_request_id_is_echoed(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/health", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"
        assert "X-Process-Time" in response.headers

    async def test_root(self, client: AsyncClient) -> None:
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["documentation"]["openapi"] == "/openapi.json"


@pytest.mark.contract
class TestExecutionsAPIContract:
    """POST /execute and GET /languages."""

    async def test_execute_success(self, client: AsyncClient, engine) -> None:
        engine.responder = lambda argv: ok(stdout="2\n")

        response = await client.post(
            "/api/v1/execute",
            json={"code": "print(1 + 1)", "language": "python", "model_name": "m1"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["outcome"] == "success"
        assert data["output"] == "2"
        assert data["exit_code"] == 0
        assert data["model_name"] == "m1"
        assert data["container_config"]["baseImage"] == "python:3.11-alpine"
        assert data["cached"] is False
        assert "execution_time" in data

    async def test_execute_failure_is_200(self, client: AsyncClient, engine) -> None:
        engine.responder = lambda argv: failed(1, stderr="NameError: x\n")

        response = await client.post("/api/v1/execute", json={"code": "x", "language": "python"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["outcome"] == "runtime_failure"
        assert data["error"] == "NameError: x"

    async def test_unknown_language_without_proposer(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/execute", json={"code": "IO.puts 1", "language": "elixir"})

        assert response.status_code == 200
        assert response.json()["outcome"] == "configuration_error"

    @pytest.mark.parametrize(
        "body",
        [
            {"code": "print(1)"},
            {"code": "print(1)", "language": "   "},
            {"code": "print(1)", "language": "python", "timeout": 0},
            {"code": "print(1)", "language": "python", "timeout": 3601},
        ],
    )
    async def test_invalid_requests(self, client: AsyncClient, body) -> None:
        response = await client.post("/api/v1/execute", json=body)

        assert response.status_code == 422

    async def test_timeout_above_configured_maximum(self, client: AsyncClient, engine) -> None:
        response = await client.post(
            "/api/v1/execute",
            json={"code": "print(1)", "language": "python", "timeout": 601},
        )

        assert response.status_code == 422
        assert engine.sessions == []

    async def test_languages(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/languages")

        assert response.status_code == 200
        languages = response.json()["languages"]
        assert "python" in languages
        assert "typescript" in languages


@pytest.mark.contract
class TestCacheAPIContract:
    async def test_stats_and_clear(self, client: AsyncClient, cache_dir) -> None:
        await client.post("/api/v1/execute", json={"code": "echo hi", "language": "bash"})

        stats = await client.get("/api/v1/cache/stats")
        assert stats.status_code == 200
        assert stats.json() == {"memory_size": 1, "disk_size": 1, "cache_dir": str(cache_dir)}

        cleared = await client.delete("/api/v1/cache")
        assert cleared.status_code == 204

        stats = await client.get("/api/v1/cache/stats")
        assert stats.json()["memory_size"] == 0


@pytest.mark.contract
class TestProjectsAPIContract:
    async def test_run_commit_cycle(self, client: AsyncClient, engine, settings) -> None:
        engine.responder = lambda argv: ok(stdout="ok\n") if argv[0] == "timeout" else ok()
        engine.exported_files = {"run.sh": "#!/bin/bash\necho changed\n"}

        response = await client.post(
            "/api/v1/projects/run",
            json={"command": "./run.sh", "experience_id": "exp-1"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["status"] == "new"
        assert data["stdout"] == "ok"
        assert data["detected_requirements"]["project_type"] == "shell"

        response = await client.post("/api/v1/projects/run", json={"experience_id": "exp-1", "action": "commit"})

        assert response.json()["status"] == "committed"
        assert "changed" in (settings.work_dir / "run.sh").read_text()

    async def test_tool_errors_are_200(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/projects/run",
            json={"experience_id": "exp-missing", "action": "discard"},
        )

        assert response.status_code == 200
        assert response.json()["error"] == "EXPERIENCE_NOT_FOUND"

    async def test_unknown_action_is_rejected(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/projects/run", json={"command": "ls", "action": "rebase"})

        assert response.status_code == 422
