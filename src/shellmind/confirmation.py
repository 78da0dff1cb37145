"""
Confirmation Gate - Decides whether a proposed action may run.

Every action starts out PROPOSED and ends in one of:
- CONFIRMED: run this once
- ALWAYS_ALLOWED: run, and remember the command in the allow-list
- DENIED: do not run

Tool calls follow the tool's own policy: no confirmation message means
the call is approved without asking, otherwise the user answers yes or
no. Shell commands have no static safety classification, so the user is
always asked, with a third choice to always allow the command. The
allow-list is written back to the config file before the command runs.
It is not consulted to skip the prompt.
"""

import logging
from enum import Enum
from typing import Any, Protocol

from shellmind.config import ConfigError, ShellmindConfig
from shellmind.tools import Tool
from shellmind.types import ConfirmationDecision

logger = logging.getLogger(__name__)


class GateState(Enum):
    PROPOSED = "proposed"
    CONFIRMED = "confirmed"
    ALWAYS_ALLOWED = "always_allowed"
    DENIED = "denied"

    @property
    def permits_execution(self) -> bool:
        return self in (GateState.CONFIRMED, GateState.ALWAYS_ALLOWED)


class ConfirmationPrompter(Protocol):
    """Asks the user. Implemented by the terminal front end."""

    async def confirm(self, message: str, description: str) -> bool:
        """Yes/no question. False on no or cancel."""
        ...

    async def choose_shell_action(self, command: str) -> ConfirmationDecision:
        """Run once, always allow, or decline."""
        ...


class ConfirmationGate:
    """Runs the confirmation state machine for one action at a time."""

    def __init__(self, config: ShellmindConfig, prompter: ConfirmationPrompter) -> None:
        self.config = config
        self.prompter = prompter

    async def check_tool(self, tool: Tool, params: dict[str, Any]) -> GateState:
        """Gate a tool call according to the tool's confirmation policy."""
        message = tool.confirmation_message(params)
        if message is None:
            logger.debug(f"Auto-approved {tool.name}")
            return GateState.CONFIRMED

        approved = await self.prompter.confirm(message, tool.describe(params))
        state = GateState.CONFIRMED if approved else GateState.DENIED
        logger.info(f"Confirmation for {tool.name}: {state.value}")
        return state

    async def check_shell(self, command: str) -> GateState:
        """
        Gate a shell command. Always prompts.

        Raises:
            ConfigError: If an always-allow answer could not be persisted
        """
        decision = await self.prompter.choose_shell_action(command)

        if decision is ConfirmationDecision.ALWAYS_ALLOW:
            if self.config.allow_command(command):
                try:
                    self.config.save()
                except ConfigError:
                    # keep memory in step with the file
                    self.config.allowed_commands.remove(command)
                    raise
                logger.info(f"Added to allow-list: {command}")
            return GateState.ALWAYS_ALLOWED
        if decision is ConfirmationDecision.RUN_ONCE:
            return GateState.CONFIRMED
        return GateState.DENIED
