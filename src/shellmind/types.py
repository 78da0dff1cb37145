"""
Core types for the assistant.

These types represent the data that flows through a single turn:
conversation turns, parsed tool invocations, confirmation decisions
and execution outcomes. Turns, invocations and outcomes are frozen.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Roles in the conversation, named the way the backend names them."""
    USER = "user"
    MODEL = "model"


@dataclass(frozen=True)
class Turn:
    """
    One role-tagged text unit of the conversation.

    Turns are frozen: once appended to the history they never change.
    """
    role: Role
    text: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to the backend's content shape."""
        return {"role": self.role.value, "parts": [{"text": self.text}]}


class History:
    """
    Ordered, append-only conversation history.

    The whole history is resent to the backend on every turn. There is no
    truncation, reordering or deduplication.
    """

    def __init__(self, turns: list[Turn] | None = None) -> None:
        self._turns: list[Turn] = list(turns or [])

    def append(self, turn: Turn) -> None:
        """Append a turn to the end of the history."""
        self._turns.append(turn)

    def turns(self) -> tuple[Turn, ...]:
        """Snapshot of all turns, oldest first."""
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))


@dataclass(frozen=True)
class ToolDescriptor:
    """Capability description of a tool, advertised to the backend."""
    name: str
    display_name: str
    description: str
    parameter_schema: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolInvocation:
    """
    A request parsed from backend text to run a registered tool.

    Constructed per turn and consumed immediately by dispatch.
    """
    name: str
    params: dict[str, Any] = field(default_factory=dict)


class ConfirmationDecision(Enum):
    """The user's answer to a confirmation prompt."""
    RUN_ONCE = "run_once"
    ALWAYS_ALLOW = "always_allow"
    DENY = "deny"


@dataclass(frozen=True)
class ExecutionOutcome:
    """
    Result of running a tool or a shell command.

    Every executable path produces exactly one of these; failures are
    values, not exceptions.
    """
    success: bool
    output: str

    @classmethod
    def ok(cls, output: str) -> "ExecutionOutcome":
        return cls(success=True, output=output)

    @classmethod
    def fail(cls, message: str) -> "ExecutionOutcome":
        return cls(success=False, output=message)

    @property
    def message(self) -> str:
        """Alias of output, reads better for failures."""
        return self.output
