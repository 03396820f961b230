"""Host literal parsing, inventory resolution and include/exclude filtering."""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Mapping

from sup.config import Network
from sup.errors import ConfigError, HostParseError, InventoryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostIdentity:
    """A parsed ``user@host`` literal.

    Attributes:
        username: Login name on the remote host.
        hostname: Name or address passed to ssh.
    """

    username: str
    hostname: str

    @classmethod
    def parse(cls, literal: str) -> "HostIdentity":
        """Split a host literal at its first ``@``.

        Args:
            literal: Host string such as ``deploy@web1.example.com``.

        Returns:
            HostIdentity: The parsed identity.

        Raises:
            HostParseError: If the literal has no ``@`` or an empty part.
        """
        username, sep, hostname = literal.partition("@")
        if not sep or not username or not hostname:
            raise HostParseError(f"Host must be in format user@host: '{literal}'")
        return cls(username=username, hostname=hostname)

    @property
    def target(self) -> str:
        """The ``user@host`` destination handed to ssh."""
        return f"{self.username}@{self.hostname}"

    def __str__(self) -> str:
        return self.target


class HostFilter:
    """Include/exclude regular-expression filter over host literals.

    Both patterns use search semantics, so ``--only web`` keeps
    ``deploy@web1`` and ``deploy@api-web``.
    """

    def __init__(self, only: str | None = None, exclude: str | None = None):
        self.only = self._compile(only, "--only")
        self.exclude = self._compile(exclude, "--except")

    @staticmethod
    def _compile(pattern: str | None, flag: str) -> re.Pattern | None:
        if pattern is None:
            return None
        try:
            return re.compile(pattern)
        except re.error as exc:
            raise ConfigError(f"Invalid {flag} pattern '{pattern}': {exc}") from exc

    def matches(self, host: str) -> bool:
        """Return True if the host passes both patterns."""
        if self.only is not None and not self.only.search(host):
            return False
        if self.exclude is not None and self.exclude.search(host):
            return False
        return True

    def apply(self, hosts: list[str]) -> list[str]:
        """Filter hosts, preserving order and duplicates."""
        return [h for h in hosts if self.matches(h)]


def parse_inventory_output(raw: str) -> list[str]:
    """Turn inventory stdout into trimmed, non-empty host literals."""
    return [line.strip() for line in raw.splitlines() if line.strip()]


async def run_inventory(command: str, env: Mapping[str, str]) -> list[str]:
    """Run an inventory command and return the hosts it prints.

    The subprocess environment is replaced by ``env`` rather than extended.

    Raises:
        InventoryError: If the command cannot be started or exits non-zero.
    """
    logger.debug("Running inventory command: %s", command)
    try:
        proc = await asyncio.create_subprocess_exec(
            "sh", "-c", command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=dict(env),
        )
    except OSError as exc:
        raise InventoryError(f"Inventory command failed to start: {exc}") from exc

    stdout_bytes, stderr_bytes = await proc.communicate()
    if proc.returncode != 0:
        stderr = stderr_bytes.decode(errors="replace").strip()
        raise InventoryError(f"Inventory command failed: {stderr}")

    return parse_inventory_output(stdout_bytes.decode(errors="replace"))


async def resolve_hosts(
    network: Network, env: Mapping[str, str], host_filter: HostFilter | None = None
) -> list[str]:
    """Build the filtered candidate host list for a network.

    Static hosts come first, verbatim, followed by the inventory command's
    output. Hosts listed in both places are kept twice.

    Args:
        network: The selected network.
        env: Merged invocation environment for the inventory command.
        host_filter: Optional include/exclude filter.

    Returns:
        list[str]: Host literals in resolution order.
    """
    hosts = list(network.hosts)
    if network.inventory:
        hosts.extend(await run_inventory(network.inventory, env))

    if host_filter is not None:
        hosts = host_filter.apply(hosts)
    return hosts
