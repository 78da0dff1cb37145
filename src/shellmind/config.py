"""
Configuration for the assistant.

Configuration is layered: built-in defaults, then a JSON file in the
user's home directory, then environment variables prefixed with
SHELLMIND_. The same object carries the allow-list of shell commands the
user approved permanently, so it is saved back to the file explicitly
whenever that list grows.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

ENV_PREFIX = "SHELLMIND_"
DEFAULT_CONFIG_FILE = "~/.shellmind/config.json"

DEFAULT_SYSTEM_PROMPT = (
    "You are Shellmind, a helpful AI assistant that translates natural language "
    "into shell commands. You are running on a Linux system."
)


class ConfigError(Exception):
    """Configuration is missing or malformed."""
    pass


class ApiType(str, Enum):
    """Which transport the backend client uses."""
    REST = "rest"
    GRPC = "grpc"

    @classmethod
    def parse(cls, value: "str | ApiType") -> "ApiType":
        if isinstance(value, ApiType):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigError(
                f"Invalid API type '{value}'. Use 'rest' or 'grpc'"
            ) from None


@dataclass
class ShellmindConfig:
    """All runtime settings, including the persisted allow-list."""
    api_key: str = ""
    model_name: str = "gemini-1.5-flash"
    temperature: float = 0.2
    api_type: ApiType = ApiType.REST
    api_host: str = "generativelanguage.googleapis.com"
    grpc_endpoint: str = "https://generativelanguage.googleapis.com"
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    allowed_commands: list[str] = field(default_factory=list)
    history_file: str = "~/.shellmind/history"
    memory_file: str = "~/.shellmind/memory.md"
    request_timeout: float = 60.0
    config_file: str = field(default=DEFAULT_CONFIG_FILE, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.api_type = ApiType.parse(self.api_type)
        self.temperature = _to_float("temperature", self.temperature)
        self.request_timeout = _to_float("request_timeout", self.request_timeout)
        if not isinstance(self.allowed_commands, list) or not all(
            isinstance(item, str) for item in self.allowed_commands
        ):
            raise ConfigError("allowed_commands must be a list of strings")

    @classmethod
    def load(cls, path: str | Path | None = None) -> "ShellmindConfig":
        """
        Load configuration from defaults, the config file and the environment.

        Raises:
            ConfigError: If the file is unreadable or a value is invalid
        """
        config_path = Path(
            path or os.getenv(f"{ENV_PREFIX}CONFIG_FILE", DEFAULT_CONFIG_FILE)
        ).expanduser()

        values: dict[str, Any] = {"api_key": os.getenv("GEMINI_API_KEY", "")}
        values.update(_read_file(config_path))

        for name in _field_names():
            env_value = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if env_value is not None:
                values[name] = _parse_value(name, env_value)

        unknown = set(values) - set(_field_names())
        for key in sorted(unknown):
            logger.warning(f"Ignoring unknown config key: {key}")
            values.pop(key)

        config = cls(**values)
        config.config_file = str(config_path)
        logger.debug(f"Loaded configuration from {config_path}")
        return config

    def save(self) -> None:
        """
        Write the configuration file.

        Raises:
            ConfigError: If the file cannot be written
        """
        path = Path(self.config_file).expanduser()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(self.to_dict(), indent=2) + "\n", encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Failed to write config file '{path}': {e}") from e
        logger.debug(f"Saved configuration to {path}")

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("config_file")
        data["api_type"] = self.api_type.value
        return data

    def set_value(self, key: str, value: str) -> None:
        """Set a known key from its string form."""
        if key not in _field_names():
            raise ConfigError(f"Unknown config key: {key}")
        parsed = _parse_value(key, value)
        setattr(self, key, parsed)
        self.__post_init__()

    def allow_command(self, command: str) -> bool:
        """
        Add a command to the allow-list.

        Returns True if the list changed. Entries are never removed here.
        """
        if self.is_command_allowed(command):
            return False
        self.allowed_commands.append(command)
        return True

    def is_command_allowed(self, command: str) -> bool:
        return command in self.allowed_commands

    @property
    def rest_url(self) -> str:
        """REST endpoint for the configured model, key included."""
        return (
            f"https://{self.api_host}/v1beta/models/"
            f"{self.model_name}:generateContent?key={self.api_key}"
        )


def _field_names() -> list[str]:
    return [f.name for f in fields(ShellmindConfig) if f.name != "config_file"]


def _read_file(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Failed to read config file '{path}': {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file '{path}' must contain a JSON object")
    return data


def _parse_value(name: str, value: str) -> Any:
    """Convert a string from the environment or the CLI to the field's type."""
    if name == "allowed_commands":
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            # Plain strings are a single entry per line
            return [line for line in value.splitlines() if line.strip()]
        if not isinstance(parsed, list):
            raise ConfigError("allowed_commands must be a JSON list of strings")
        return parsed
    if name in ("temperature", "request_timeout"):
        return _to_float(name, value)
    if name == "api_type":
        return ApiType.parse(value)
    return value


def _to_float(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"Invalid {name} value: {value}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid {name} value: {value}") from None
