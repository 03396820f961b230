"""Supfile loading, validation, environment layering and target expansion."""

import getpass
import os
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

import yaml
from pydantic import BaseModel, PositiveInt, ValidationError, field_validator

from sup.errors import ConfigError


DEFAULT_SUPFILE = Path("Supfile.yml")
FALLBACK_SUPFILE = Path("Supfile")


def _stringify(value: Any) -> str:
    """Render a YAML scalar the way a shell would expect to see it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


class _EnvMixin(BaseModel):
    """Shared coercion for ``env`` mappings."""

    @field_validator("env", mode="before", check_fields=False)
    @classmethod
    def coerce_env(cls, v: Any) -> Any:
        """Coerce scalar env values (ports, flags) to strings.

        Args:
            v: Raw ``env`` mapping from YAML.

        Returns:
            The mapping with every value rendered as a string.
        """
        if v is None:
            return {}
        if isinstance(v, dict):
            return {str(k): _stringify(val) for k, val in v.items()}
        return v


class Network(_EnvMixin):
    """A named group of hosts.

    Attributes:
        hosts: Static host literals in user@host form, in order.
        inventory: Shell command whose stdout lines are extra hosts.
        env: Variables layered over the global Supfile env.
    """

    hosts: list[str] = []
    inventory: Optional[str] = None
    env: dict[str, str] = {}


class Upload(BaseModel):
    """A local path to stream into a remote directory."""

    src: str
    dst: str


class Command(BaseModel):
    """A command recipe.

    Attributes:
        desc: Human readable description.
        local: Shell command run on this machine.
        script: Path of a local script run with sh.
        run: Shell command run on the network's hosts.
        upload: Files or directories copied to the network's hosts.
        stdin: Run interactively on exactly one host with a tty.
        once: Run on the first host only.
        serial: Run on this many hosts at a time.
    """

    desc: Optional[str] = None
    local: Optional[str] = None
    script: Optional[str] = None
    run: Optional[str] = None
    upload: Optional[list[Upload]] = None
    stdin: bool = False
    once: bool = False
    serial: Optional[PositiveInt] = None


class Supfile(_EnvMixin):
    """Top-level Supfile document."""

    version: str
    env: dict[str, str] = {}
    networks: dict[str, Network] = {}
    commands: dict[str, Command] = {}
    targets: dict[str, list[str]] = {}

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v: Any) -> Any:
        """Accept ``version: 0.4`` which YAML reads as a float."""
        if isinstance(v, (int, float)):
            return str(v)
        return v


def find_supfile(path: Path | None = None) -> Path:
    """Pick the Supfile path to load.

    An explicit path is returned as-is. Otherwise ``Supfile.yml`` is used,
    falling back to a plain ``Supfile`` when only that exists.
    """
    if path is not None:
        return path
    if not DEFAULT_SUPFILE.exists() and FALLBACK_SUPFILE.exists():
        return FALLBACK_SUPFILE
    return DEFAULT_SUPFILE


def load_supfile(path: Path) -> Supfile:
    """Load and validate a Supfile.

    Args:
        path: Path to the YAML document.

    Returns:
        Supfile: The validated document.

    Raises:
        ConfigError: If the file is missing, is not valid YAML, or does not
            match the Supfile schema.
    """
    if not path.exists():
        raise ConfigError(f"Supfile not found: {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to read Supfile {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Failed to parse Supfile {path}: expected a mapping at the top level")

    try:
        return Supfile(**data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid Supfile {path}: {exc}") from exc


def get_network(supfile: Supfile, name: str) -> Network:
    """Look up a network by name, raising ConfigError if it is unknown."""
    try:
        return supfile.networks[name]
    except KeyError:
        raise ConfigError(f"Network '{name}' not found in Supfile") from None


def resolve_invocation(supfile: Supfile, name: str) -> list[tuple[str, Command]]:
    """Expand a command or target name into the commands to execute.

    Targets take precedence over commands of the same name. Every command a
    target references is checked before anything is returned, so a typo in
    a target never leaves a half-executed deployment behind.

    Args:
        supfile: The loaded Supfile.
        name: Command or target name from the command line.

    Returns:
        list[tuple[str, Command]]: (name, command) pairs in execution order.

    Raises:
        ConfigError: If the name is unknown or a target references a
            missing command.
    """
    if name in supfile.targets:
        steps = supfile.targets[name]
        missing = [step for step in steps if step not in supfile.commands]
        if missing:
            raise ConfigError(
                f"Target '{name}' references unknown command(s): {', '.join(missing)}"
            )
        return [(step, supfile.commands[step]) for step in steps]

    if name in supfile.commands:
        return [(name, supfile.commands[name])]

    raise ConfigError(f"Command or target '{name}' not found in Supfile")


def parse_env_overrides(items: list[str]) -> dict[str, str]:
    """Parse repeated ``-e KEY=VALUE`` options.

    Raises:
        ConfigError: If an item has no ``=`` or an empty key.
    """
    overrides: dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ConfigError(f"Invalid environment override '{item}', expected KEY=VALUE")
        overrides[key] = value
    return overrides


def invoking_user() -> str:
    """Name of the user running sup, or the numeric uid if it has none.

    getpass raises when the uid has no passwd entry and neither USER nor
    LOGNAME is set, which happens in minimal containers.
    """
    try:
        return getpass.getuser()
    except (OSError, KeyError):
        return str(os.getuid())


def build_environment(
    supfile: Supfile,
    network_name: str,
    overrides: Mapping[str, str] | None = None,
    base: Mapping[str, str] | None = None,
    now: datetime | None = None,
    user: str | None = None,
) -> Mapping[str, str]:
    """Assemble the invocation environment.

    Layers, lowest precedence first: the inherited process environment,
    the SUP_TIME/SUP_USER/SUP_NETWORK identity variables, the Supfile's
    global env, the network's env, then command-line overrides.

    Args:
        supfile: The loaded Supfile.
        network_name: Name of the selected network.
        overrides: Command-line ``-e`` values.
        base: Inherited environment. Defaults to os.environ.
        now: Invocation timestamp. Defaults to the current local time.
        user: Invoking user. Defaults to invoking_user().

    Returns:
        Mapping[str, str]: A read-only view of the merged environment.
    """
    network = get_network(supfile, network_name)

    env: dict[str, str] = dict(os.environ if base is None else base)
    env["SUP_TIME"] = (now or datetime.now().astimezone()).isoformat()
    env["SUP_USER"] = user or invoking_user()
    env["SUP_NETWORK"] = network_name
    env.update(supfile.env)
    env.update(network.env)
    env.update(overrides or {})

    return MappingProxyType(env)
