"""System instruction sent with every backend request."""

import json

from shellmind.config import ShellmindConfig
from shellmind.tools import ToolRegistry

RESPONSE_RULES = [
    "Reply in exactly one of three forms:",
    (
        "1. A tool call on a single line: tool_name({json arguments}), for example"
        ' list_directory({"path": "."}).'
    ),
    "2. A single shell command on a single line, with no explanation or code fences.",
    "3. An explanation in prose spanning several lines, when no action is needed.",
]


def build_system_instruction(config: ShellmindConfig, registry: ToolRegistry) -> str:
    """Configured prompt, response rules and the schema of every tool."""
    parts = [config.system_prompt.strip(), "", *RESPONSE_RULES]
    descriptors = registry.list_schemas()
    if descriptors:
        parts.extend(["", "Available tools:"])
        for descriptor in descriptors:
            schema = json.dumps(descriptor.parameter_schema, separators=(",", ":"))
            parts.append(f"- {descriptor.name}: {descriptor.description} Parameters: {schema}")
    return "\n".join(parts)
