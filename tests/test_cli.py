"""Tests for the nspec-llm command line."""

from unittest.mock import MagicMock, patch

from click.testing import CliRunner

from nspec_llm.cli import main
from nspec_llm.errors import ConfigurationError, GenerationCancelled, TransportError
from nspec_llm.types import BackendKind, RunCommand, StreamEvent, WriteFile


class FakeClient:
    def __init__(self, events=(), changes=(), error=None):
        self.events = list(events)
        self.changes = list(changes)
        self.error = error
        self.selected_model_id = None
        self.selected = []
        self.closed = False

    def set_selected_model(self, model_id, backend=None):
        self.selected.append((model_id, backend))

    async def stream(self, system, prompt, token=None):
        for event in self.events:
            yield event

    async def request_with_tools(self, system, prompt, tools, token=None):
        if self.error is not None:
            raise self.error
        return self.changes

    async def aclose(self):
        self.closed = True


def _invoke(args, client=None, env=None):
    runner = CliRunner()
    if client is None:
        return runner.invoke(main, args, env=env)
    with patch("nspec_llm.cli.LMClient", MagicMock(return_value=client)):
        return runner.invoke(main, args, env=env)


class TestModelsCommand:
    def test_lists_direct_model(self, tmp_path):
        result = _invoke(
            ["--config", str(tmp_path / "missing.yaml"), "models"],
            env={"NSPEC_API_KEY": "sk-test", "NSPEC_MODEL": "gpt-4o-mini", "COLUMNS": "200"},
        )
        assert result.exit_code == 0
        assert "gpt-4o-mini" in result.output
        assert "openai" in result.output

    def test_no_models(self, tmp_path):
        result = _invoke(
            ["--config", str(tmp_path / "missing.yaml"), "models"],
            env={"NSPEC_API_KEY": ""},
        )
        assert result.exit_code == 0
        assert "No models available" in result.output


class TestCompleteCommand:
    def test_streams_to_stdout(self):
        client = FakeClient(events=[
            StreamEvent.chunk("Hello"),
            StreamEvent.chunk(" world"),
            StreamEvent.done(),
        ])
        result = _invoke(["complete", "say hi"], client)
        assert result.exit_code == 0
        assert "Hello world" in result.output
        assert client.closed

    def test_error_exit_code(self):
        client = FakeClient(events=[StreamEvent.failed(TransportError("connection refused"))])
        result = _invoke(["complete", "say hi"], client)
        assert result.exit_code == 1
        assert "connection refused" in result.output

    def test_cancelled_exit_code(self):
        client = FakeClient(events=[StreamEvent.chunk("par"), StreamEvent.failed(GenerationCancelled())])
        result = _invoke(["complete", "say hi"], client)
        assert result.exit_code == 130
        assert "Generation cancelled." in result.output

    def test_pin_backend(self):
        client = FakeClient(events=[StreamEvent.done()])
        result = _invoke(["complete", "-m", "claude-x", "-b", "anthropic", "hi"], client)
        assert result.exit_code == 0
        assert client.selected == [("claude-x", BackendKind.ANTHROPIC)]

    def test_rejects_host_backend_choice(self):
        result = _invoke(["complete", "-b", "host", "hi"], FakeClient())
        assert result.exit_code == 2


class TestProposeCommand:
    def test_prints_changes(self):
        client = FakeClient(changes=[WriteFile("a.ts", "x"), RunCommand("npm test")])
        result = _invoke(["propose", "add a file"], client)
        assert result.exit_code == 0
        assert "2 change(s) proposed" in result.output
        assert "write a.ts (1 chars)" in result.output
        assert "run npm test" in result.output

    def test_no_changes(self):
        result = _invoke(["propose", "nothing"], FakeClient())
        assert result.exit_code == 0
        assert "No changes proposed." in result.output

    def test_configuration_error(self):
        result = _invoke(["propose", "x"], FakeClient(error=ConfigurationError()))
        assert result.exit_code == 1
        assert "No AI provider configured" in result.output
