"""
Sandbox interface for shell execution.

Only the seam exists: every command line is routed through a Sandbox
before it is spawned. NoSandbox runs commands as they are.
"""

from abc import ABC, abstractmethod


class Sandbox(ABC):
    """Rewrites a command's argv so it runs inside some isolation."""

    name: str = "sandbox"

    @abstractmethod
    def wrap(self, argv: list[str]) -> list[str]:
        """Return the argv to spawn instead of the given one."""
        pass


class NoSandbox(Sandbox):
    name = "none"

    def wrap(self, argv: list[str]) -> list[str]:
        return list(argv)
