"""Execution engine: runs a command's stages against one network."""

import logging
from types import MappingProxyType
from typing import Mapping

from rich.console import Console

from sup.config import Command, Network
from sup.dispatch import DispatchResult, DispatchScheduler, select_mode
from sup.errors import RemoteCommandError
from sup.hosts import HostFilter, resolve_hosts
from sup.local import run_local, run_script
from sup.upload import upload_all

logger = logging.getLogger(__name__)


class Engine:
    """Runs Supfile commands against one network.

    Stages run in a fixed order, each to completion before the next:
    ``local``, ``script``, ``run`` and ``upload``. Hosts are resolved and
    filtered afresh for every stage that needs them.

    Attributes:
        network: The selected network.
        env: Merged invocation environment, read-only.
        host_filter: Compiled ``--only``/``--except`` patterns.
        strict: Fail a fan-out stage when any host failed.
    """

    def __init__(
        self,
        network: Network,
        env: Mapping[str, str],
        only: str | None = None,
        exclude: str | None = None,
        disable_prefix: bool = False,
        strict: bool = False,
        console: Console | None = None,
        err_console: Console | None = None,
    ):
        self.network = network
        self.env = MappingProxyType(dict(env))
        self.host_filter = HostFilter(only=only, exclude=exclude)
        self.strict = strict
        self.console = console or Console()
        self.scheduler = DispatchScheduler(
            console=self.console,
            err_console=err_console,
            prefix=not disable_prefix,
        )

    async def resolve_hosts(self) -> list[str]:
        """Resolve and filter the network's hosts."""
        return await resolve_hosts(self.network, self.env, self.host_filter)

    async def execute(self, command: Command) -> DispatchResult | None:
        """Run every stage present on ``command``.

        Returns:
            DispatchResult | None: Outcome of the ``run`` stage, if any.

        Raises:
            SupError: On any fatal failure; later stages do not run.
        """
        result = None

        if command.local:
            await run_local(command.local, self.env, self.console)

        if command.script:
            await run_script(command.script, self.env, self.console)

        if command.run:
            hosts = await self.resolve_hosts()
            mode = select_mode(command)
            logger.debug("Dispatching to %d host(s) in %s mode", len(hosts), mode.value)
            result = await self.scheduler.run(command.run, hosts, mode, batch_size=command.serial)
            if self.strict and not result.ok:
                raise RemoteCommandError(
                    f"Command failed on {len(result.failures)} host(s): "
                    f"{', '.join(result.failures)}"
                )

        if command.upload:
            hosts = await self.resolve_hosts()
            await upload_all(hosts, command.upload)

        return result

    async def execute_all(self, commands: list[tuple[str, Command]]) -> None:
        """Run commands one after another, as a target does."""
        for name, command in commands:
            logger.debug("Executing command %s", name)
            await self.execute(command)
