"""SSH transport: one remote session per call, via the external ssh client."""

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from rich.console import Console
from rich.text import Text

from sup.errors import RemoteCommandError
from sup.hosts import HostIdentity
from sup.remote import build_interactive_cmd, build_session_cmd

logger = logging.getLogger(__name__)

# (host, line) -> None; the relayed-mode destination for output lines.
LineSink = Callable[[str, str], Awaitable[None]]

STDERR_PREFIX = "stderr: "

# Longest single output line accepted from a remote session.
LINE_LIMIT = 1024 * 1024


@dataclass
class RemoteResult:
    """Result of a captured remote command.

    Attributes:
        stdout: Standard output from the command.
        stderr: Standard error from the command.
        returncode: Exit code of the ssh process.
        host: The ``user@host`` target the command ran on.
    """

    stdout: str
    stderr: str
    returncode: int
    host: str


async def run_captured(host: HostIdentity, argv: list[str]) -> RemoteResult:
    """Run an ssh argv to completion and capture both streams.

    Args:
        host: Host the argv targets, recorded on the result.
        argv: Full argument vector, starting with ``ssh``.

    Returns:
        RemoteResult: Captured stdout, stderr and return code.

    Raises:
        RemoteCommandError: If ssh cannot be started.
    """
    logger.debug("Running command: %s", argv)
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise RemoteCommandError(f"Failed to start ssh: {exc}", host=host.target) from exc

    stdout_bytes, stderr_bytes = await proc.communicate()
    return RemoteResult(
        stdout=stdout_bytes.decode(errors="replace"),
        stderr=stderr_bytes.decode(errors="replace"),
        returncode=proc.returncode or 0,
        host=host.target,
    )


async def _read_lines(stream: asyncio.StreamReader) -> list[str]:
    lines = []
    async for raw in stream:
        lines.append(raw.decode(errors="replace").rstrip("\r\n"))
    return lines


async def run_session(
    host: HostIdentity,
    cmd: str,
    sink: LineSink | None = None,
    console: Console | None = None,
    err_console: Console | None = None,
) -> None:
    """Run a remote command on one host and stream its output.

    Stdout lines are delivered as they arrive, then stderr lines, each
    prefixed with ``stderr: ``. Stderr is read in the background while
    stdout streams so the remote side never stalls on a full pipe, but it
    is only delivered once stdout is exhausted.

    In direct mode (``sink`` is None) lines are printed to ``console`` and
    ``err_console``. In relayed mode every line goes to ``sink`` tagged with
    the host's ``user@host`` target.

    Args:
        host: Target host.
        cmd: Raw remote command; a leading sudo is rewritten.
        sink: Relayed-mode line destination.
        console: Direct-mode stdout console.
        err_console: Direct-mode stderr console.

    Raises:
        RemoteCommandError: If ssh cannot be started, exits non-zero or
            emits a line longer than LINE_LIMIT.
    """
    argv = build_session_cmd(host.target, cmd)
    logger.debug("Running command: %s", argv)

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=LINE_LIMIT,
        )
    except OSError as exc:
        raise RemoteCommandError(f"Failed to start ssh: {exc}", host=host.target) from exc

    stderr_task = asyncio.create_task(_read_lines(proc.stderr))

    try:
        if sink is None:
            console = console or Console()
            err_console = err_console or Console(stderr=True)
            async for raw in proc.stdout:
                line = raw.decode(errors="replace").rstrip("\r\n")
                console.print(Text(line), soft_wrap=True, highlight=False)
            for line in await stderr_task:
                err_console.print(Text(STDERR_PREFIX + line), soft_wrap=True, highlight=False)
        else:
            async for raw in proc.stdout:
                await sink(host.target, raw.decode(errors="replace").rstrip("\r\n"))
            for line in await stderr_task:
                await sink(host.target, STDERR_PREFIX + line)
    except ValueError as exc:
        # StreamReader raises ValueError for a line longer than LINE_LIMIT.
        stderr_task.cancel()
        await asyncio.gather(stderr_task, return_exceptions=True)
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()
        raise RemoteCommandError(
            f"Output line exceeds {LINE_LIMIT} bytes", host=host.target
        ) from exc

    returncode = await proc.wait()
    if returncode != 0:
        raise RemoteCommandError(
            f"SSH command failed with status {returncode}",
            host=host.target,
            returncode=returncode,
        )


async def run_interactive(host: HostIdentity, cmd: str) -> None:
    """Run a command with a forced tty and this process's own stdio.

    Raises:
        RemoteCommandError: If ssh cannot be started or exits non-zero.
    """
    argv = build_interactive_cmd(host.target, cmd)
    logger.debug("Starting interactive session: %s", argv)

    try:
        proc = await asyncio.create_subprocess_exec(*argv)
    except OSError as exc:
        raise RemoteCommandError(f"Failed to start ssh: {exc}", host=host.target) from exc

    returncode = await proc.wait()
    if returncode != 0:
        raise RemoteCommandError(
            f"SSH command failed with status {returncode}",
            host=host.target,
            returncode=returncode,
        )
