"""
Tool System - Named capabilities the assistant can invoke.

A tool describes itself (name, display name, description, JSON schema),
checks and renders its parameters, says whether running it needs the
user's confirmation, and executes. Execution is the only place a tool
has side effects, and it never raises: every failure is folded into a
failed ExecutionOutcome.

Tools are registered by name in a ToolRegistry. Adding a tool means
subclassing Tool and registering an instance.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Any

from shellmind.cancellation import CancellationToken
from shellmind.types import ExecutionOutcome, ToolDescriptor

logger = logging.getLogger(__name__)


class ToolError(Exception):
    """A tool could not do its job (bad parameter, I/O failure, ...)."""
    pass


class UnknownToolError(Exception):
    """A tool name was not found in the registry."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class DuplicateToolError(Exception):
    """A tool with the same name is already registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool already registered: {name}")


class Tool(ABC):
    """
    Base class for all tools.

    Subclasses set the identity attributes and implement run(). Parameter
    checks default to the schema's required list with string values;
    override validate() for other shapes.
    """

    name: str = ""
    display_name: str = ""
    description: str = ""

    @property
    @abstractmethod
    def parameter_schema(self) -> dict[str, Any]:
        """JSON schema: {type: object, properties: {...}, required: [...]}"""
        pass

    @property
    def descriptor(self) -> ToolDescriptor:
        return ToolDescriptor(
            name=self.name,
            display_name=self.display_name,
            description=self.description,
            parameter_schema=self.parameter_schema,
        )

    def validate(self, params: dict[str, Any]) -> bool:
        """Check that every required parameter is present as a string."""
        if not isinstance(params, dict):
            return False
        required = self.parameter_schema.get("required", [])
        return all(isinstance(params.get(key), str) for key in required)

    @abstractmethod
    def describe(self, params: dict[str, Any]) -> str:
        """One line saying what the call will do. Must not fail."""
        pass

    def confirmation_message(self, params: dict[str, Any]) -> str | None:
        """
        None if the call is safe to run unattended, otherwise the text
        to show when asking the user.
        """
        return None

    @abstractmethod
    async def run(
        self, params: dict[str, Any], cancel: CancellationToken | None
    ) -> ExecutionOutcome:
        """Do the work. May raise; execute() folds errors into the outcome."""
        pass

    async def execute(
        self,
        params: dict[str, Any],
        cancel: CancellationToken | None = None,
    ) -> ExecutionOutcome:
        """
        Execute the tool with the given parameters.

        This is where side effects happen. Errors never escape: they come
        back as a failed outcome.
        """
        if cancel is not None and cancel.cancelled:
            return ExecutionOutcome.fail(f"Cancelled before start: {cancel.reason}")
        if not self.validate(params):
            missing = [
                key for key in self.parameter_schema.get("required", [])
                if key not in (params or {})
            ]
            detail = f"missing {', '.join(missing)}" if missing else "invalid parameter types"
            return ExecutionOutcome.fail(f"Invalid parameters for {self.name}: {detail}")

        try:
            return await self.run(params, cancel)
        except Exception as e:
            logger.error(f"Tool {self.name} failed: {e}")
            return ExecutionOutcome.fail(f"Error: {e}")

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class ToolRegistry:
    """
    Registry of available tools, keyed by name.

    Registration order is kept so schemas are always listed the same way.
    """

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """
        Register a tool.

        Raises:
            DuplicateToolError: If the name is already taken
        """
        if tool.name in self._tools:
            logger.warning(f"Refusing to overwrite existing tool: {tool.name}")
            raise DuplicateToolError(tool.name)
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def get(self, name: str) -> Tool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def require(self, name: str) -> Tool:
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(name)
        return tool

    def list_schemas(self) -> list[ToolDescriptor]:
        """Descriptors of all tools, in registration order."""
        return [tool.descriptor for tool in self._tools.values()]

    async def discover(self) -> None:
        """Hook for dynamic tool sources. Nothing is discovered yet."""
        logger.debug(f"Tool discovery complete: {len(self._tools)} tools")

    @property
    def tool_names(self) -> list[str]:
        """List of registered tool names."""
        return list(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(list(self._tools.values()))
