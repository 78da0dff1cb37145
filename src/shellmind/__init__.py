"""
Shellmind - A terminal assistant that turns requests into actions.

Each turn, the user's request and the whole conversation so far go to a
generative backend (REST or gRPC). The reply is classified as prose, a
call to one of the registered tools, or a shell command. Anything with
side effects passes a confirmation gate before it runs, and every run
ends in a typed outcome rather than an exception.
"""

__version__ = "0.1.0"

from shellmind.config import ApiType, ConfigError, ShellmindConfig
from shellmind.confirmation import ConfirmationGate, GateState
from shellmind.interpreter import (
    InformationalMessage,
    ResponseInterpreter,
    ShellCommand,
    ToolCallAction,
    UnknownToolAction,
)
from shellmind.llm import (
    BackendError,
    GrpcBackendClient,
    MalformedResponse,
    RemoteRejected,
    RestBackendClient,
    TransportUnavailable,
    create_backend_client,
)
from shellmind.session import Session, SessionInitError, TurnResult
from shellmind.tools import Tool, ToolRegistry
from shellmind.builtin_tools import create_default_tools
from shellmind.types import (
    ConfirmationDecision,
    ExecutionOutcome,
    History,
    Role,
    ToolDescriptor,
    ToolInvocation,
    Turn,
)

__all__ = [
    "ApiType",
    "ConfigError",
    "ShellmindConfig",
    "ConfirmationGate",
    "GateState",
    "InformationalMessage",
    "ResponseInterpreter",
    "ShellCommand",
    "ToolCallAction",
    "UnknownToolAction",
    "BackendError",
    "GrpcBackendClient",
    "MalformedResponse",
    "RemoteRejected",
    "RestBackendClient",
    "TransportUnavailable",
    "create_backend_client",
    "Session",
    "SessionInitError",
    "TurnResult",
    "Tool",
    "ToolRegistry",
    "create_default_tools",
    "ConfirmationDecision",
    "ExecutionOutcome",
    "History",
    "Role",
    "ToolDescriptor",
    "ToolInvocation",
    "Turn",
]
