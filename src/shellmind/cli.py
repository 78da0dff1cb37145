"""
Command-line entry point.

    shellmind                         interactive session
    shellmind prompt --text "..."     one suggestion, printed, not executed
    shellmind config show
    shellmind config set KEY VALUE
    shellmind version

Ctrl-C while a command is running kills that command and the session
continues.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys

from shellmind import __version__
from shellmind.config import ConfigError, ShellmindConfig
from shellmind.llm import BackendError, create_backend_client
from shellmind.session import Session, SessionInitError
from shellmind.types import ConfirmationDecision, ExecutionOutcome

logger = logging.getLogger(__name__)

SHELL_CHOICES = {
    "r": ConfirmationDecision.RUN_ONCE,
    "run": ConfirmationDecision.RUN_ONCE,
    "y": ConfirmationDecision.RUN_ONCE,
    "yes": ConfirmationDecision.RUN_ONCE,
    "a": ConfirmationDecision.ALWAYS_ALLOW,
    "always": ConfirmationDecision.ALWAYS_ALLOW,
}


class ConsoleIO:
    """Terminal front end for a session: stdin for input, stdout for output."""

    def __init__(self, prompt: str = "> ") -> None:
        self.prompt = prompt

    async def read_line(self) -> str | None:
        return await self._ask(self.prompt)

    async def confirm(self, message: str, description: str) -> bool:
        print(f"\n{description}")
        answer = await self._ask(f"{message} [y/N]: ")
        return (answer or "").strip().lower() in {"y", "yes"}

    async def choose_shell_action(self, command: str) -> ConfirmationDecision:
        print(f"\nSuggested command: {command}")
        answer = await self._ask("[r]un once, [a]lways allow, or [n]o? ")
        return SHELL_CHOICES.get((answer or "").strip().lower(), ConfirmationDecision.DENY)

    def show_message(self, text: str) -> None:
        print(text)

    def show_outcome(self, outcome: ExecutionOutcome) -> None:
        if outcome.success:
            print(outcome.output.rstrip("\n"))
        else:
            print(f"Error: {outcome.message}", file=sys.stderr)

    def show_error(self, text: str) -> None:
        print(f"Error: {text}", file=sys.stderr)

    @staticmethod
    async def _ask(prompt: str) -> str | None:
        try:
            return await asyncio.to_thread(input, prompt)
        except EOFError:
            return None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shellmind",
        description="Terminal assistant that turns requests into commands and tool calls",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("version", help="Show the version")

    prompt_parser = subparsers.add_parser("prompt", help="Send one prompt and print the suggestion")
    prompt_parser.add_argument("-t", "--text", required=True, help="The prompt to send")

    config_parser = subparsers.add_parser("config", help="Manage configuration")
    config_sub = config_parser.add_subparsers(dest="config_command", required=True)
    config_sub.add_parser("show", help="Show current configuration")
    set_parser = config_sub.add_parser("set", help="Set a configuration value")
    set_parser.add_argument("key")
    set_parser.add_argument("value")

    return parser


def show_config(config: ShellmindConfig) -> None:
    data = config.to_dict()
    data["api_key"] = "********" if config.api_key else "Not set"
    print("Current Shellmind Configuration:")
    for key, value in data.items():
        print(f"  {key}: {value}")


async def run_prompt(config: ShellmindConfig, text: str) -> int:
    backend = create_backend_client(config)
    try:
        suggestion = await backend.generate(config, text, [])
    except BackendError as e:
        print(f"Error generating command: {e}", file=sys.stderr)
        return 1
    print(suggestion)
    return 0


async def run_session(session: Session) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, _on_interrupt, session)
    except (NotImplementedError, RuntimeError):
        # Windows event loops have no signal handlers
        pass
    await session.run()


def _on_interrupt(session: Session) -> None:
    if not session.cancel_current():
        print("\n(type 'exit' to quit)")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=os.getenv("SHELLMIND_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "version":
        print(f"Shellmind CLI Version: {__version__}")
        return 0

    try:
        config = ShellmindConfig.load()
        if args.command == "config":
            if args.config_command == "show":
                show_config(config)
                return 0
            config.set_value(args.key, args.value)
            config.save()
            print("Configuration updated successfully.")
            return 0

        if args.command == "prompt":
            return asyncio.run(run_prompt(config, args.text))

        session = Session.create(config, ConsoleIO())
    except (ConfigError, SessionInitError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("Shellmind started. Type 'exit' to quit.")
    asyncio.run(run_session(session))
    print("Shellmind shutting down.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
