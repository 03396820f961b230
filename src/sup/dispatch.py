"""Concurrency strategies for the remote ``run`` stage.

A command runs in exactly one of four modes. Interactive and once modes
target a single host and treat any failure as fatal. Serial and parallel
modes fan out over many hosts and contain failures to the host that
produced them, so one broken host never stops its siblings.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

from rich.console import Console

from sup.config import Command
from sup.errors import ConfigError, DispatchError, SupError
from sup.hosts import HostIdentity
from sup.output import OutputMultiplexer
from sup.ssh import run_interactive, run_session

logger = logging.getLogger(__name__)


class DispatchMode(Enum):
    """How a remote command is spread over the resolved hosts."""

    INTERACTIVE = "interactive"
    ONCE = "once"
    SERIAL = "serial"
    PARALLEL = "parallel"


class FailurePolicy(Enum):
    """What a host failure does to the rest of the stage."""

    FATAL = "fatal"
    CONTAINED = "contained"


FAILURE_POLICY: dict[DispatchMode, FailurePolicy] = {
    DispatchMode.INTERACTIVE: FailurePolicy.FATAL,
    DispatchMode.ONCE: FailurePolicy.FATAL,
    DispatchMode.SERIAL: FailurePolicy.CONTAINED,
    DispatchMode.PARALLEL: FailurePolicy.CONTAINED,
}


def select_mode(command: Command) -> DispatchMode:
    """Pick the dispatch mode for a command, in priority order."""
    if command.stdin:
        return DispatchMode.INTERACTIVE
    if command.once:
        return DispatchMode.ONCE
    if command.serial is not None:
        return DispatchMode.SERIAL
    return DispatchMode.PARALLEL


def chunk_hosts(hosts: list[str], size: int) -> list[list[str]]:
    """Split hosts into consecutive batches of ``size``, preserving order."""
    if size < 1:
        raise ConfigError(f"Serial batch size must be a positive integer, got {size}")
    return [hosts[i:i + size] for i in range(0, len(hosts), size)]


@dataclass
class DispatchResult:
    """Outcome of one run stage.

    Attributes:
        mode: The mode the stage ran in.
        hosts: Host literals a session was attempted on.
        failures: Contained failures, keyed by host literal.
    """

    mode: DispatchMode
    hosts: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


class DispatchScheduler:
    """Runs a remote command over a host list in the selected mode.

    Attributes:
        console: Destination for remote stdout and prefixed output.
        err_console: Destination for direct-mode stderr.
        prefix: Prefix fanned-out lines with their host.
    """

    def __init__(
        self,
        console: Console | None = None,
        err_console: Console | None = None,
        prefix: bool = True,
    ):
        self.console = console or Console()
        self.err_console = err_console or Console(stderr=True)
        self.prefix = prefix

    async def run(
        self,
        cmd: str,
        hosts: list[str],
        mode: DispatchMode,
        batch_size: int | None = None,
    ) -> DispatchResult:
        """Run ``cmd`` over ``hosts`` in ``mode``.

        Args:
            cmd: Raw remote command.
            hosts: Resolved and filtered host literals.
            mode: Dispatch mode, see :func:`select_mode`.
            batch_size: Hosts per batch in serial mode.

        Returns:
            DispatchResult: Attempted hosts and any contained failures.

        Raises:
            ConfigError: If serial mode is given a non-positive batch size.
            DispatchError: If interactive mode does not have exactly one host.
            SupError: Any failure in interactive or once mode.
        """
        result = DispatchResult(mode=mode)

        if mode is DispatchMode.INTERACTIVE:
            if len(hosts) != 1:
                raise DispatchError(
                    f"Interactive mode requires exactly one host, {len(hosts)} matched"
                )
            await self._attempt(
                mode, hosts[0], result, lambda host: run_interactive(host, cmd)
            )
            return result

        if mode is DispatchMode.ONCE:
            if hosts:
                await self._attempt(
                    mode, hosts[0], result,
                    lambda host: run_session(
                        host, cmd, console=self.console, err_console=self.err_console
                    ),
                )
            return result

        if mode is DispatchMode.SERIAL:
            batches = chunk_hosts(hosts, batch_size if batch_size is not None else 0)
        else:
            batches = [hosts] if hosts else []

        if not batches:
            logger.warning("No hosts matched the filters")
            return result

        for index, batch in enumerate(batches, start=1):
            if mode is DispatchMode.SERIAL:
                logger.debug("Starting batch %d/%d: %s", index, len(batches), ", ".join(batch))
            await self._fan_out(cmd, batch, mode, result)

        return result

    async def _fan_out(
        self, cmd: str, hosts: list[str], mode: DispatchMode, result: DispatchResult
    ) -> None:
        """Run one batch concurrently through a fresh multiplexer."""
        mux = OutputMultiplexer(self.console, prefix=self.prefix)

        async def produce(literal: str) -> None:
            try:
                await self._attempt(
                    mode, literal, result,
                    lambda host: run_session(host, cmd, sink=mux.send),
                )
            finally:
                await mux.close()

        tasks = [asyncio.create_task(produce(literal)) for literal in hosts]
        await mux.drain(len(tasks))
        await asyncio.gather(*tasks)

    async def _attempt(
        self,
        mode: DispatchMode,
        literal: str,
        result: DispatchResult,
        action: Callable[[HostIdentity], Awaitable[None]],
    ) -> None:
        """Parse a host literal and run ``action`` on it under the mode's policy."""
        result.hosts.append(literal)
        try:
            host = HostIdentity.parse(literal)
            logger.info("Connecting to %s", host)
            await action(host)
        except SupError as exc:
            if FAILURE_POLICY[mode] is FailurePolicy.FATAL:
                raise
            logger.error("Error on host %s: %s", literal, exc)
            result.failures[literal] = str(exc)
