"""
Session - The turn-based assistant loop.

A session owns the conversation history and runs one turn at a time:

1. Wait for a line of user input
2. Ask the backend for a suggestion, sending the whole history
3. Classify the suggestion (prose, tool call, shell command)
4. Gate actions through the confirmation state machine
5. Execute what was approved and show the outcome
6. Record the user input and the suggestion in the history, and the
   input in the command-history log

Only startup failures and unusable input are fatal. Backend errors,
occasional read errors and execution failures are shown to the user
and the loop continues. The history receives the suggestion, never the
execution output.
"""

import errno
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from shellmind.builtin_tools import create_default_tools
from shellmind.cancellation import CancellationToken
from shellmind.config import ConfigError, ShellmindConfig
from shellmind.confirmation import ConfirmationGate, ConfirmationPrompter, GateState
from shellmind.interpreter import (
    Action,
    InformationalMessage,
    ResponseInterpreter,
    ShellCommand,
    ToolCallAction,
    UnknownToolAction,
)
from shellmind.llm import BackendClient, BackendError, create_backend_client
from shellmind.prompts import build_system_instruction
from shellmind.sandbox import NoSandbox, Sandbox
from shellmind.shell import run_command
from shellmind.tools import ToolRegistry
from shellmind.types import ExecutionOutcome, History, Role, Turn

logger = logging.getLogger(__name__)

EXIT_TOKENS = frozenset({"exit", "quit"})
MAX_READ_FAILURES = 3
# stdin is gone for good
FATAL_READ_ERRNOS = frozenset({errno.EBADF, errno.EIO, errno.ENXIO})


class SessionInitError(Exception):
    """The session could not start."""
    pass


class SessionState(Enum):
    AWAITING_INPUT = "awaiting_input"
    GENERATING = "generating"
    INTERPRETING = "interpreting"
    GATING = "gating"
    EXECUTING = "executing"
    RECORDING = "recording"


class SessionIO(ConfirmationPrompter, Protocol):
    """Everything the session needs from the terminal."""

    async def read_line(self) -> str | None:
        """Next line of input, or None at end of input."""
        ...

    def show_message(self, text: str) -> None: ...

    def show_outcome(self, outcome: ExecutionOutcome) -> None: ...

    def show_error(self, text: str) -> None: ...


@dataclass
class TurnResult:
    """What happened during one turn."""
    user_input: str
    suggestion: str | None = None
    action: Action | None = None
    gate_state: GateState | None = None
    outcome: ExecutionOutcome | None = None
    error: str | None = None

    @property
    def executed(self) -> bool:
        return self.outcome is not None


class CommandHistoryLog:
    """Append-only, newline-delimited log of raw user inputs."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def open(self) -> None:
        """
        Make sure the log can be written.

        Raises:
            SessionInitError: If the file or its directory is not writable
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8"):
                pass
        except OSError as e:
            raise SessionInitError(
                f"Command history file '{self.path}' is not writable: {e}"
            ) from e

    def append(self, line: str) -> None:
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(" ".join(line.splitlines()) + "\n")

    def read(self) -> list[str]:
        if not self.path.is_file():
            return []
        return self.path.read_text(encoding="utf-8").splitlines()


class Session:
    """
    One interactive session.

    Turns are strictly sequential; the history and the allow-list have
    this session as their only writer.
    """

    def __init__(
        self,
        config: ShellmindConfig,
        backend: BackendClient,
        registry: ToolRegistry,
        io: SessionIO,
        command_log: CommandHistoryLog,
        sandbox: Sandbox | None = None,
    ) -> None:
        self.config = config
        self.backend = backend
        self.registry = registry
        self.io = io
        self.command_log = command_log
        self.sandbox = sandbox or NoSandbox()
        self.history = History()
        self.interpreter = ResponseInterpreter(registry)
        self.gate = ConfirmationGate(config, io)
        self.state = SessionState.AWAITING_INPUT
        self.system_instruction = build_system_instruction(config, registry)
        self._cancel: CancellationToken | None = None

    @classmethod
    def create(
        cls,
        config: ShellmindConfig,
        io: SessionIO,
        backend: BackendClient | None = None,
        registry: ToolRegistry | None = None,
        sandbox: Sandbox | None = None,
    ) -> "Session":
        """
        Build a session with default collaborators.

        Raises:
            SessionInitError: If the command-history log is not writable
        """
        sandbox = sandbox or NoSandbox()
        command_log = CommandHistoryLog(config.history_file)
        command_log.open()
        return cls(
            config=config,
            backend=backend or create_backend_client(config),
            registry=registry or create_default_tools(config, sandbox),
            io=io,
            command_log=command_log,
            sandbox=sandbox,
        )

    async def run(self) -> None:
        """Loop until an exit token, end of input, or input that keeps failing."""
        await self.registry.discover()

        read_failures = 0
        while True:
            self.state = SessionState.AWAITING_INPUT
            try:
                line = await self.io.read_line()
            except (OSError, UnicodeDecodeError) as e:
                read_failures += 1
                logger.error(f"Failed to read input: {e}")
                self.io.show_error(f"Failed to read input: {e}")
                if _is_fatal_read_error(e) or read_failures >= MAX_READ_FAILURES:
                    logger.error(
                        f"Input is unusable, ending session after {read_failures} failures"
                    )
                    break
                continue
            read_failures = 0

            if line is None:
                break
            text = line.strip()
            if not text:
                continue
            if text.lower() in EXIT_TOKENS:
                break

            await self.handle_input(text)

        logger.info(f"Session ended after {len(self.history) // 2} recorded turns")

    async def handle_input(self, user_input: str) -> TurnResult:
        """Run one turn for one line of user input."""
        result = TurnResult(user_input=user_input)

        self.state = SessionState.GENERATING
        try:
            suggestion = await self.backend.generate(
                self.config,
                user_input,
                self.history.turns(),
                self.system_instruction,
            )
        except BackendError as e:
            logger.error(f"Backend error: {e}")
            self.io.show_error(f"Error generating command: {e}")
            result.error = str(e)
            self.state = SessionState.AWAITING_INPUT
            return result
        except Exception as e:
            logger.exception(f"Unexpected backend failure: {e}")
            self.io.show_error(f"Error generating command: {e}")
            result.error = str(e)
            self.state = SessionState.AWAITING_INPUT
            return result
        result.suggestion = suggestion

        self.state = SessionState.INTERPRETING
        action = self.interpreter.interpret(suggestion)
        result.action = action

        if isinstance(action, InformationalMessage):
            self.io.show_message(action.text)
            self._append_turns(user_input, suggestion)
            self.state = SessionState.AWAITING_INPUT
            return result

        if isinstance(action, UnknownToolAction):
            result.error = f"Unknown tool: {action.name}"
            self.io.show_error(result.error)
        else:
            try:
                await self._act(action, result)
            except Exception as e:
                # the suggestion is still recorded below
                logger.exception(f"Turn failed: {e}")
                result.error = f"Turn failed: {e}"
                self.io.show_error(result.error)

        self.state = SessionState.RECORDING
        self._record(user_input, suggestion)
        self.state = SessionState.AWAITING_INPUT
        return result

    async def _act(self, action: ToolCallAction | ShellCommand, result: TurnResult) -> None:
        self.state = SessionState.GATING
        result.gate_state = await self._gate(action)

        if result.gate_state.permits_execution:
            self.state = SessionState.EXECUTING
            result.outcome = await self._execute(action)
            self.io.show_outcome(result.outcome)
        else:
            self.io.show_message("Not executed.")

    def cancel_current(self) -> bool:
        """Cancel the execution in flight, if any."""
        if self._cancel is None or self._cancel.cancelled:
            return False
        self._cancel.cancel("Interrupted by user")
        return True

    async def _gate(self, action: ToolCallAction | ShellCommand) -> GateState:
        try:
            if isinstance(action, ToolCallAction):
                tool = self.registry.require(action.name)
                return await self.gate.check_tool(tool, action.params)
            return await self.gate.check_shell(action.text)
        except ConfigError as e:
            logger.error(f"Failed to persist allow-list: {e}")
            self.io.show_error(f"Could not save allow-list, command not executed: {e}")
            return GateState.DENIED

    async def _execute(self, action: ToolCallAction | ShellCommand) -> ExecutionOutcome:
        self._cancel = CancellationToken()
        try:
            if isinstance(action, ToolCallAction):
                tool = self.registry.require(action.name)
                logger.info(f"Executing tool: {tool.describe(action.params)}")
                return await tool.execute(action.params, self._cancel)

            try:
                command_result = await run_command(
                    action.text, cancel=self._cancel, sandbox=self.sandbox
                )
            except (OSError, ValueError) as e:
                logger.error(f"Failed to spawn shell command: {e}")
                return ExecutionOutcome.fail(f"Failed to execute command: {e}")
            return command_result.to_outcome()
        finally:
            self._cancel = None

    def _append_turns(self, user_input: str, suggestion: str) -> None:
        self.history.append(Turn(Role.USER, user_input))
        self.history.append(Turn(Role.MODEL, suggestion))

    def _record(self, user_input: str, suggestion: str) -> None:
        self._append_turns(user_input, suggestion)
        try:
            self.command_log.append(user_input)
        except OSError as e:
            logger.error(f"Failed to write command history: {e}")
            self.io.show_error(f"Failed to write command history: {e}")


def _is_fatal_read_error(error: Exception) -> bool:
    return isinstance(error, OSError) and error.errno in FATAL_READ_ERRNOS
