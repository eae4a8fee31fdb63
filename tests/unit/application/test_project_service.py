"""
Project tool unit tests.
"""
import pytest

from sandbox_runner.application.services.config_resolver import ContainerConfigResolver
from sandbox_runner.application.services.execution_service import ExecutionService
from sandbox_runner.application.services.experience_service import ExperienceService
from sandbox_runner.application.services.project_service import (
    HINT_FAILED,
    HINT_NEW,
    HINT_TIMEOUT,
    RunProjectService,
)
from sandbox_runner.domain.services.project_analyzer import ProjectRequirementsDetector
from sandbox_runner.domain.value_objects import AgentEntry, ExperienceStatus
from tests.helpers import FakeContainerEngine, StaticProjectContext, failed, ok


@pytest.fixture
def project(tmp_path):
    path = tmp_path / "work"
    (path / "bin").mkdir(parents=True)
    (path / "bin" / "summarize").write_text('#!/bin/bash\ncurl -H "x: $OPENAI_API_KEY" https://api\n')
    (path / "notes.md").write_text("notes\n")
    return path


@pytest.fixture
def experiences():
    return ExperienceService()


@pytest.fixture
def detector():
    return ProjectRequirementsDetector(home="/home/tester")


@pytest.fixture
def engine():
    def responder(argv):
        if argv[0] == "timeout":
            return ok(stdout="done\n")
        return ok()

    return FakeContainerEngine(responder)


@pytest.fixture
def make_tool(config_cache, experiences, detector, engine, project):
    def factory(context=None):
        context = context or StaticProjectContext(project, secrets={"OPENAI_API_KEY": "sk-test"})
        execution = ExecutionService(ContainerConfigResolver(config_cache), engine)
        return RunProjectService(context, experiences, detector, execution, default_timeout=120)

    return factory


class TestRun:
    """new / continue."""

    async def test_continue_starts_missing_experience(self, make_tool, engine, experiences, project):
        tool = make_tool()

        result = await tool.run("ls", experience_id="exp-1")

        assert result.error is None
        assert result.success is True
        assert result.status == ExperienceStatus.NEW
        assert result.stdout == "done"
        assert result.exit_code == 0
        assert result.hint == HINT_NEW
        assert experiences.experience_exists(project, "exp-1")

        session = engine.last_session
        assert session.execs[-1]["argv"] == ["timeout", "-k", "2", "120", "bash", "-c", "ls"]
        assert session.copied_in[0]["source"] == experiences.experience_dir(project, "exp-1")

    async def test_second_call_continues(self, make_tool):
        tool = make_tool()
        await tool.run("ls", experience_id="exp-1")

        result = await tool.run("ls", experience_id="exp-1")

        assert result.status == ExperienceStatus.CONTINUED
        assert result.hint is None

    async def test_generates_experience_id(self, make_tool):
        result = await make_tool().run("ls")

        assert result.experience_id.startswith("experience-")
        assert result.status == ExperienceStatus.NEW

    async def test_detected_requirements_and_secrets(self, make_tool, engine):
        result = await make_tool().run("bin/summarize", experience_id="exp-1", env={"EXTRA": "1"})

        config = engine.last_session.started[0]
        assert config.environment == {"OPENAI_API_KEY": "sk-test", "EXTRA": "1"}
        assert result.detected_requirements["project_type"] == "shell"
        assert result.detected_requirements["detected_tools"] == ["curl"]
        assert result.detected_requirements["env_vars_injected"] == ["OPENAI_API_KEY", "EXTRA"]
        assert "sk-test" not in repr(result.to_dict())

    async def test_explicit_env_overrides_secret(self, make_tool, engine):
        await make_tool().run("ls", experience_id="exp-1", env={"OPENAI_API_KEY": "override"})

        assert engine.last_session.started[0].environment["OPENAI_API_KEY"] == "override"

    async def test_workspace_export_is_applied(self, make_tool, engine, experiences, project):
        engine.exported_files = {"notes.md": "edited\n", "summary.txt": "short\n"}

        await make_tool().run("bin/summarize > summary.txt", experience_id="exp-1")

        target = experiences.experience_dir(project, "exp-1")
        assert (target / "summary.txt").read_text() == "short\n"
        assert (target / "notes.md").read_text() == "edited\n"
        assert not (target / "bin").exists()
        assert (project / "notes.md").read_text() == "notes\n"

    async def test_partial_export_leaves_experience_untouched(self, make_tool, engine, experiences, project):
        engine.exported_files = {"summary.txt": "half\n"}
        engine.export_error = OSError(13, "Permission denied")

        result = await make_tool().run("ls", experience_id="exp-1")

        target = experiences.experience_dir(project, "exp-1")
        assert result.stdout == "done"
        assert result.exit_code == 0
        assert (target / "bin" / "summarize").exists()
        assert (target / "notes.md").read_text() == "notes\n"
        assert not (target / "summary.txt").exists()

    async def test_failure_hint(self, make_tool, engine):
        engine.responder = lambda argv: failed(1, stderr="boom\n") if argv[0] == "timeout" else ok()

        result = await make_tool().run("false", experience_id="exp-1")

        assert result.success is False
        assert result.exit_code == 1
        assert result.stderr == "boom"
        assert result.hint == HINT_FAILED

    async def test_timeout_hint(self, make_tool, engine):
        engine.responder = lambda argv: failed(124) if argv[0] == "timeout" else ok()

        result = await make_tool().run("sleep 100", experience_id="exp-1", timeout=1)

        assert result.timed_out is True
        assert result.hint == HINT_TIMEOUT
        assert result.stderr == "Execution timed out after 1 seconds"

    async def test_new_rejects_existing(self, make_tool):
        tool = make_tool()
        await tool.run("ls", experience_id="exp-1")

        result = await tool.run("ls", experience_id="exp-1", action="new")

        assert result.error == "EXPERIENCE_EXISTS"
        assert result.message.startswith("EXPERIENCE_EXISTS:")

    async def test_command_required(self, make_tool, engine):
        result = await make_tool().run("  ", experience_id="exp-1")

        assert result.error == "COMMAND_REQUIRED"
        assert engine.sessions == []

    async def test_invalid_action(self, make_tool):
        result = await make_tool().run("ls", action="rebase")

        assert result.error == "INVALID_ACTION"

    async def test_invalid_experience_id(self, make_tool):
        result = await make_tool().run("ls", experience_id="../../etc")

        assert result.error == "INVALID_EXPERIENCE_ID"

    async def test_connection_failure(self, make_tool, engine):
        engine.fail_connection()

        result = await make_tool().run("ls", experience_id="exp-1")

        assert result.success is False
        assert result.error == "CONNECTION_FAILURE"


class TestCommitDiscard:
    async def test_commit(self, make_tool, engine, project):
        engine.exported_files = {"notes.md": "edited\n"}
        tool = make_tool()
        await tool.run("edit", experience_id="exp-1")

        result = await tool.run(experience_id="exp-1", action="commit")

        assert result.success is True
        assert result.status == ExperienceStatus.COMMITTED
        assert (project / "notes.md").read_text() == "edited\n"

    async def test_discard(self, make_tool, experiences, project):
        tool = make_tool()
        await tool.run("ls", experience_id="exp-1")

        result = await tool.run(experience_id="exp-1", action="discard")

        assert result.status == ExperienceStatus.DISCARDED
        assert not experiences.experience_exists(project, "exp-1")

    @pytest.mark.parametrize("action", ["commit", "discard"])
    async def test_missing_experience(self, make_tool, action):
        result = await make_tool().run(experience_id="exp-404", action=action)

        assert result.error == "EXPERIENCE_NOT_FOUND"

    async def test_terminated_experience_cannot_continue(self, make_tool):
        tool = make_tool()
        await tool.run("ls", experience_id="exp-1")
        await tool.run(experience_id="exp-1", action="discard")

        result = await tool.run("ls", experience_id="exp-1")

        assert result.error == "EXPERIENCE_CLOSED"


class TestAgents:
    @pytest.fixture
    def agent_project(self, tmp_path):
        path = tmp_path / "agents" / "writer"
        path.mkdir(parents=True)
        (path / "package.json").write_text("{}")
        return path

    async def test_agent_project_and_skills(self, make_tool, engine, project, agent_project):
        agent = AgentEntry(
            id="agent-1",
            name="Writer",
            project_path=str(agent_project),
            secrets=["WRITER_TOKEN"],
            skills_from_git=["nano-banana"],
        )
        context = StaticProjectContext(project, agents=[agent], secrets={"WRITER_TOKEN": "t"})

        result = await make_tool(context).run("npm test", agent_id="Writer", experience_id="exp-1")

        assert result.error is None
        assert result.detected_requirements["project_type"] == "npm"
        assert result.detected_requirements["skill_repos"] == ["nano-banana (The-Focus-AI/nano-banana-cli)"]
        config = engine.last_session.started[0]
        assert config.environment == {"WRITER_TOKEN": "t"}
        assert any("apt-get install -y -qq git" in c for c in config.setup_commands)
        assert any(c.startswith("git clone --depth 1") for c in config.setup_commands)

    async def test_agent_skills_do_not_mutate_cached_requirements(self, make_tool, detector, project, agent_project):
        agent = AgentEntry(id="agent-1", project_path=str(agent_project), skills_from_git=["acme/tools"])
        context = StaticProjectContext(project, agents=[agent])

        await make_tool(context).run("ls", agent_id="agent-1", experience_id="exp-1")

        cached = detector.detect(agent_project)
        assert cached.skill_repos == []
        assert cached.apt_packages == []

    async def test_unknown_agent(self, make_tool):
        result = await make_tool().run("ls", agent_id="ghost")

        assert result.error == "AGENT_NOT_FOUND"

    async def test_path_outside_allowed_roots(self, make_tool, project, tmp_path):
        outside = tmp_path / "elsewhere"
        outside.mkdir()

        class NarrowContext(StaticProjectContext):
            def get_allowed_roots(self):
                return [str(project)]

        agent = AgentEntry(id="agent-1", project_path=str(outside))
        context = NarrowContext(project, agents=[agent])

        result = await make_tool(context).run("ls", agent_id="agent-1")

        assert result.error == "OUTSIDE_ALLOWED_PATH"
