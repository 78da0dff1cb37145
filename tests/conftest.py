"""Shared fixtures: a config rooted in tmp_path, a scripted terminal, a fake backend."""

import os
from collections.abc import Sequence

import pytest

from shellmind.config import ShellmindConfig
from shellmind.llm import BackendError
from shellmind.types import ConfirmationDecision, ExecutionOutcome, Turn


class ScriptedIO:
    """Session IO that replays canned answers and records what was shown."""

    def __init__(
        self,
        lines: Sequence[str] = (),
        confirmations: Sequence[bool] = (),
        shell_choices: Sequence[ConfirmationDecision] = (),
    ) -> None:
        self.lines = list(lines)
        self.confirmations = list(confirmations)
        self.shell_choices = list(shell_choices)
        self.confirm_calls: list[tuple[str, str]] = []
        self.shell_prompts: list[str] = []
        self.messages: list[str] = []
        self.outcomes: list[ExecutionOutcome] = []
        self.errors: list[str] = []

    async def read_line(self) -> str | None:
        return self.lines.pop(0) if self.lines else None

    async def confirm(self, message: str, description: str) -> bool:
        self.confirm_calls.append((message, description))
        return self.confirmations.pop(0) if self.confirmations else False

    async def choose_shell_action(self, command: str) -> ConfirmationDecision:
        self.shell_prompts.append(command)
        if self.shell_choices:
            return self.shell_choices.pop(0)
        return ConfirmationDecision.DENY

    def show_message(self, text: str) -> None:
        self.messages.append(text)

    def show_outcome(self, outcome: ExecutionOutcome) -> None:
        self.outcomes.append(outcome)

    def show_error(self, text: str) -> None:
        self.errors.append(text)


class FakeBackend:
    """Backend that returns queued replies (or raises queued errors)."""

    def __init__(self, replies: Sequence[str | BackendError] = ()) -> None:
        self.replies = list(replies)
        self.calls: list[dict] = []

    async def generate(
        self,
        config: ShellmindConfig,
        user_prompt: str,
        history: Sequence[Turn],
        system_instruction: str | None = None,
    ) -> str:
        self.calls.append({
            "prompt": user_prompt,
            "history": list(history),
            "system_instruction": system_instruction,
        })
        reply = self.replies.pop(0) if self.replies else "No command generated"
        if isinstance(reply, BackendError):
            raise reply
        return reply


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment out of config loading."""
    for key in list(os.environ):
        if key.startswith("SHELLMIND_") or key in ("GEMINI_API_KEY", "EXA_API_KEY"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def config(tmp_path) -> ShellmindConfig:
    cfg = ShellmindConfig(
        api_key="test-key",
        history_file=str(tmp_path / "state" / "history"),
        memory_file=str(tmp_path / "state" / "memory.md"),
    )
    cfg.config_file = str(tmp_path / "state" / "config.json")
    return cfg


@pytest.fixture
def scripted_io():
    return ScriptedIO


@pytest.fixture
def fake_backend():
    return FakeBackend
