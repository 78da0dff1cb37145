"""
Shell execution.

Commands run through the platform's default interpreter (sh -c on POSIX,
cmd /C elsewhere). Both output streams and the exit status are captured;
a non-zero exit is a failed outcome, never an exception. There is no
timeout: a command runs until it exits or its cancellation token fires,
in which case the whole process group is killed.
"""

import asyncio
import logging
import os
import signal
from dataclasses import dataclass

from shellmind.cancellation import CancellationToken
from shellmind.sandbox import NoSandbox, Sandbox
from shellmind.types import ExecutionOutcome

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Raw result of one shell command."""
    command: str
    stdout: str
    stderr: str
    returncode: int | None
    cancelled: bool = False
    cancel_reason: str = ""

    def to_outcome(self) -> ExecutionOutcome:
        if self.cancelled:
            return ExecutionOutcome.fail(f"Command cancelled: {self.cancel_reason}")
        if self.returncode == 0:
            output = self.stdout
            if self.stderr:
                output = f"{output}{self.stderr}" if output else self.stderr
            return ExecutionOutcome.ok(output)
        return ExecutionOutcome.fail(
            f"Command failed with exit code {self.returncode}: {self.stderr}"
        )


def shell_argv(command: str, os_name: str | None = None) -> list[str]:
    """Argv that runs the command through the platform's interpreter."""
    if (os_name or os.name) == "nt":
        return ["cmd", "/C", command]
    return ["sh", "-c", command]


async def run_command(
    command: str,
    cancel: CancellationToken | None = None,
    sandbox: Sandbox | None = None,
    cwd: str | None = None,
) -> CommandResult:
    """
    Run a command line and wait for it to finish or be cancelled.

    Raises:
        OSError: If the interpreter could not be spawned
    """
    argv = (sandbox or NoSandbox()).wrap(shell_argv(command))
    logger.info(f"Executing shell command: {command}")

    process = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
        start_new_session=os.name == "posix",
    )

    communicate = asyncio.ensure_future(process.communicate())
    waiters: set[asyncio.Future] = {communicate}
    cancel_waiter: asyncio.Future | None = None
    if cancel is not None:
        cancel_waiter = asyncio.ensure_future(cancel.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        await _terminate(process, communicate)
        raise
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()

    if communicate not in done:
        logger.warning(f"Cancelling shell command: {command}")
        await _terminate(process, communicate)
        return CommandResult(
            command=command,
            stdout="",
            stderr="",
            returncode=process.returncode,
            cancelled=True,
            cancel_reason=cancel.reason if cancel else "",
        )

    stdout, stderr = communicate.result()
    if process.returncode != 0:
        logger.info(f"Command exited with code {process.returncode}: {command}")
    return CommandResult(
        command=command,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
        returncode=process.returncode,
    )


async def _terminate(process: asyncio.subprocess.Process, communicate: asyncio.Future) -> None:
    """Kill the process (and its group on POSIX) and reap it."""
    if process.returncode is None:
        try:
            if os.name == "posix":
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
        except ProcessLookupError:
            pass
    communicate.cancel()
    await process.wait()
