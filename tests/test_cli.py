"""Tests for the Typer command line."""

import pytest
from fakes import FakeChatClient
from typer.testing import CliRunner

from steward.checkpoints.manager import CheckpointManager
from steward.cli import typer_commands
from steward.config import StewardConfig
from steward.messages import Message
from steward.provider.base import ChatResponse
from steward.session import create_session

runner = CliRunner()


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    root = tmp_path / "project"
    root.mkdir()
    monkeypatch.setattr(
        typer_commands, "load_config", lambda: StewardConfig(workspace_root=str(root), output_flush_delay=0)
    )
    return root


@pytest.fixture
def saved(workspace):
    (workspace / "notes.txt").write_text("v1")
    manager = CheckpointManager(workspace)
    manager.save_checkpoint(
        "first",
        [Message(role="user", content="take notes"), Message(role="assistant", content="ok")],
        provider="openai",
        model="gpt-4o",
        files=["notes.txt"],
    )
    return manager


class TestCheckpointCommands:
    def test_list_empty(self, workspace):
        result = runner.invoke(typer_commands.app, ["checkpoints", "list"])
        assert result.exit_code == 0
        assert "No checkpoints found" in result.output

    def test_list(self, saved):
        result = runner.invoke(typer_commands.app, ["checkpoints", "list"])
        assert result.exit_code == 0
        assert "first" in result.output

    def test_validate(self, saved):
        result = runner.invoke(typer_commands.app, ["checkpoints", "validate", "first"])
        assert result.exit_code == 0
        assert "is valid" in result.output

    def test_validate_missing(self, workspace):
        result = runner.invoke(typer_commands.app, ["checkpoints", "validate", "nope"])
        assert result.exit_code == 1

    def test_delete_asks(self, saved):
        result = runner.invoke(typer_commands.app, ["checkpoints", "delete", "first"], input="n\n")
        assert result.exit_code == 0
        assert [item.name for item in saved.list_checkpoints()] == ["first"]

    def test_delete_yes(self, saved):
        result = runner.invoke(typer_commands.app, ["checkpoints", "delete", "first", "--yes"])
        assert result.exit_code == 0
        assert saved.list_checkpoints() == []

    def test_delete_missing(self, workspace):
        result = runner.invoke(typer_commands.app, ["checkpoints", "delete", "nope", "-y"])
        assert result.exit_code == 1
        assert "does not exist" in result.output

    def test_delete_traversal_name_refused(self, saved, workspace):
        result = runner.invoke(typer_commands.app, ["checkpoints", "delete", "../..", "-y"])
        assert result.exit_code == 1
        assert (workspace / "notes.txt").read_text() == "v1"
        assert [item.name for item in saved.list_checkpoints()] == ["first"]

    def test_restore(self, saved, workspace):
        (workspace / "notes.txt").write_text("v2")
        result = runner.invoke(typer_commands.app, ["checkpoints", "restore", "first"])
        assert result.exit_code == 0
        assert (workspace / "notes.txt").read_text() == "v1"


class TestRunCommand:
    def fake_sessions(self, monkeypatch, responses):
        def build(config, **kwargs):
            return create_session(config, client=FakeChatClient(responses), **kwargs)

        monkeypatch.setattr(typer_commands, "create_session", build)

    def test_complete_exits_zero(self, workspace, monkeypatch):
        self.fake_sessions(monkeypatch, [ChatResponse(content="All done here.")])
        result = runner.invoke(typer_commands.app, ["run", "say hi", "--timeout", "5"])
        assert result.exit_code == 0
        assert "All done here." in result.output

    def test_missing_api_key(self, workspace):
        result = runner.invoke(typer_commands.app, ["run", "say hi"])
        assert result.exit_code == 1
        assert "Client initialization failed" in result.output
