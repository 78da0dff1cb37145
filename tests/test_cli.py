"""
Tests for the command-line entry point and the console front end.
"""

import json

import pytest

from shellmind import __version__, cli
from shellmind.llm import RemoteRejected
from shellmind.types import ConfirmationDecision, ExecutionOutcome


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    monkeypatch.setenv("SHELLMIND_CONFIG_FILE", str(path))
    return path


class TestCommands:
    """Test the non-interactive subcommands."""

    def test_version(self, capsys) -> None:
        assert cli.main(["version"]) == 0
        assert capsys.readouterr().out.strip() == f"Shellmind CLI Version: {__version__}"

    def test_config_show_masks_key(self, config_path, capsys) -> None:
        config_path.write_text(json.dumps({"api_key": "secret"}))

        assert cli.main(["config", "show"]) == 0
        out = capsys.readouterr().out
        assert "secret" not in out
        assert "api_key: ********" in out
        assert "model_name: gemini-1.5-flash" in out

    def test_config_set_writes_file(self, config_path) -> None:
        assert cli.main(["config", "set", "model_name", "gemini-pro"]) == 0
        assert json.loads(config_path.read_text())["model_name"] == "gemini-pro"

    def test_config_set_bad_value_fails(self, config_path, capsys) -> None:
        assert cli.main(["config", "set", "api_type", "soap"]) == 1
        assert "Invalid API type" in capsys.readouterr().err
        assert not config_path.exists()

    def test_prompt_prints_suggestion(self, config_path, monkeypatch, capsys, fake_backend) -> None:
        backend = fake_backend(["ls -la"])
        monkeypatch.setattr(cli, "create_backend_client", lambda config: backend)

        assert cli.main(["prompt", "--text", "list files"]) == 0
        assert capsys.readouterr().out.strip() == "ls -la"
        assert backend.calls[0]["prompt"] == "list files"

    def test_prompt_backend_error(self, config_path, monkeypatch, capsys, fake_backend) -> None:
        backend = fake_backend([RemoteRejected(500, "boom")])
        monkeypatch.setattr(cli, "create_backend_client", lambda config: backend)

        assert cli.main(["prompt", "-t", "x"]) == 1
        assert "Error generating command" in capsys.readouterr().err

    def test_unwritable_history_exits_with_error(self, config_path, tmp_path, capsys) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        config_path.write_text(json.dumps({"history_file": str(blocker / "history")}))

        assert cli.main([]) == 1
        assert "not writable" in capsys.readouterr().err


class TestConsoleIO:
    """Test answer parsing in the console front end."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "answer, expected",
        [
            ("r", ConfirmationDecision.RUN_ONCE),
            ("yes", ConfirmationDecision.RUN_ONCE),
            ("A", ConfirmationDecision.ALWAYS_ALLOW),
            ("n", ConfirmationDecision.DENY),
            ("", ConfirmationDecision.DENY),
        ],
    )
    async def test_shell_choice(self, monkeypatch, answer, expected) -> None:
        monkeypatch.setattr("builtins.input", lambda prompt="": answer)
        assert await cli.ConsoleIO().choose_shell_action("ls") is expected

    @pytest.mark.asyncio
    async def test_confirm_defaults_to_no(self, monkeypatch) -> None:
        monkeypatch.setattr("builtins.input", lambda prompt="": "")
        assert await cli.ConsoleIO().confirm("Sure?", "Write to file: x") is False

    @pytest.mark.asyncio
    async def test_end_of_input_reads_none(self, monkeypatch) -> None:
        def raise_eof(prompt=""):
            raise EOFError

        monkeypatch.setattr("builtins.input", raise_eof)
        assert await cli.ConsoleIO().read_line() is None

    def test_failure_goes_to_stderr(self, capsys) -> None:
        cli.ConsoleIO().show_outcome(ExecutionOutcome.fail("nope"))
        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err.strip() == "Error: nope"
