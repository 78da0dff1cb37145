"""
Response Interpreter - Turns raw backend text into an action.

The grammar is a contract with the system instruction:

1. Text containing a newline anywhere, trailing ones included, is prose:
   an informational message.
2. A single line that, once trimmed, has the form name(arguments),
   where name is letters and underscores, is a tool call. The arguments
   are parsed as a JSON object; anything unparseable becomes an empty
   parameter set.
3. Any other single line is a shell command, taken verbatim and
   untrimmed.

A call whose name is not a registered tool is reported as unknown. It
is never re-read as a shell command.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from shellmind.tools import ToolRegistry
from shellmind.types import ToolInvocation

logger = logging.getLogger(__name__)

TOOL_CALL_PATTERN = re.compile(r"^([a-zA-Z_]+)\((.*)\)$", re.DOTALL)


class ParseError(ValueError):
    """Tool call arguments could not be parsed."""
    pass


@dataclass(frozen=True)
class InformationalMessage:
    """Prose reply. Recorded, never executed."""
    text: str


@dataclass(frozen=True)
class ToolCallAction:
    """A call to a registered tool."""
    invocation: ToolInvocation
    text: str

    @property
    def name(self) -> str:
        return self.invocation.name

    @property
    def params(self) -> dict[str, Any]:
        return self.invocation.params


@dataclass(frozen=True)
class UnknownToolAction:
    """A call-shaped line naming a tool that is not registered."""
    name: str
    text: str


@dataclass(frozen=True)
class ShellCommand:
    """A command line for the native shell."""
    text: str


Action = InformationalMessage | ToolCallAction | UnknownToolAction | ShellCommand


class ResponseInterpreter:
    """Classifies backend text against the tools in a registry."""

    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry

    def interpret(self, raw_text: str) -> Action:
        if "\n" in raw_text:
            return InformationalMessage(raw_text)

        match = TOOL_CALL_PATTERN.match(raw_text.strip())
        if match:
            name, arguments = match.group(1), match.group(2)
            if name not in self.registry:
                logger.warning(f"Backend suggested unknown tool: {name}")
                return UnknownToolAction(name=name, text=raw_text)
            try:
                params = parse_arguments(arguments)
            except ParseError as e:
                logger.warning(f"Could not parse arguments for {name}, using none: {e}")
                params = {}
            return ToolCallAction(ToolInvocation(name=name, params=params), text=raw_text)

        return ShellCommand(raw_text)


def parse_arguments(arguments: str) -> dict[str, Any]:
    """
    Parse the inner span of name(...) as a JSON object.

    Raises:
        ParseError: If it is not valid JSON or not an object
    """
    if not arguments.strip():
        return {}
    try:
        value = json.loads(arguments)
    except json.JSONDecodeError as e:
        raise ParseError(str(e)) from e
    if not isinstance(value, dict):
        raise ParseError(f"expected an object, got {type(value).__name__}")
    return value
