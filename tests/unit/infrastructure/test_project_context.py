"""
Settings-backed project context.
"""
import json

import pytest

from sandbox_runner.infrastructure.project_context import SettingsProjectContext, load_agents
from sandbox_runner.shared.errors import ConfigurationError


@pytest.fixture
def agents_file(tmp_path):
    path = tmp_path / "agents.json"
    path.write_text(json.dumps([
        {
            "id": "agent-1",
            "name": "Writer",
            "projectPath": str(tmp_path / "writer"),
            "secrets": ["WRITER_TOKEN"],
            "skillsFromGit": ["nano-banana"],
        },
        {"id": "agent-2", "projectPath": str(tmp_path / "reviewer")},
    ]))
    return path


class TestLoadAgents:
    def test_load(self, agents_file, tmp_path):
        agents = load_agents(agents_file)

        assert [a.id for a in agents] == ["agent-1", "agent-2"]
        assert agents[0].secrets == ["WRITER_TOKEN"]
        assert agents[0].skills_from_git == ["nano-banana"]
        assert agents[1].name is None
        assert agents[1].project_path == str(tmp_path / "reviewer")

    @pytest.mark.parametrize("content", ["{not json", '{"id": "x"}', '[{"id": "x"}]'])
    def test_malformed(self, tmp_path, content):
        path = tmp_path / "agents.json"
        path.write_text(content)

        with pytest.raises(ConfigurationError):
            load_agents(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Cannot read"):
            load_agents(tmp_path / "absent.json")


class TestContext:
    def test_lookup_roots_and_secrets(self, agents_file, tmp_path, monkeypatch):
        monkeypatch.setenv("WRITER_TOKEN", "t0k")
        monkeypatch.delenv("ABSENT_TOKEN", raising=False)
        context = SettingsProjectContext(tmp_path, load_agents(agents_file), extra_roots=["/srv/projects"])

        assert context.get_agent("Writer").id == "agent-1"
        assert context.get_agent("agent-2").id == "agent-2"
        assert context.get_agent("nobody") is None
        assert context.get_allowed_roots() == [
            str(tmp_path.resolve()),
            "/srv/projects",
            str(tmp_path / "writer"),
            str(tmp_path / "reviewer"),
        ]
        assert context.get_secret("WRITER_TOKEN") == "t0k"
        assert context.get_secret("ABSENT_TOKEN") is None
