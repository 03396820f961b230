"""sup CLI entry point."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from sup import __version__
from sup.config import (
    Supfile,
    build_environment,
    find_supfile,
    get_network,
    load_supfile,
    parse_env_overrides,
    resolve_invocation,
)
from sup.engine import Engine
from sup.errors import SupError
from sup.log import setup_logging


app = typer.Typer(
    name="sup",
    help="sup: run Supfile commands across a fleet of hosts.",
    add_completion=False,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"sup {__version__}")
        raise typer.Exit()


def _print_networks(supfile: Supfile) -> None:
    """Show the networks a Supfile defines."""
    table = Table(title="Networks")
    table.add_column("Network")
    table.add_column("Hosts")
    table.add_column("Inventory")

    for name, network in supfile.networks.items():
        table.add_row(
            escape(name), escape(", ".join(network.hosts)), escape(network.inventory or "")
        )

    console.print(table)


def _print_commands(supfile: Supfile) -> None:
    """Show the targets and commands a Supfile defines."""
    table = Table(title="Targets and commands")
    table.add_column("Name")
    table.add_column("Description")

    for name, steps in supfile.targets.items():
        table.add_row(escape(name), escape(" → ".join(steps)))
    for name, command in supfile.commands.items():
        table.add_row(escape(name), escape(command.desc or ""))

    console.print(table)


@app.command()
def main(
    network: Optional[str] = typer.Argument(None, help="Network to run against."),
    command: Optional[str] = typer.Argument(None, help="Command or target to run."),
    file: Optional[Path] = typer.Option(
        None, "--file", "-f", help="Path to the Supfile (default: Supfile.yml)."
    ),
    debug: bool = typer.Option(False, "--debug", "-D", help="Enable debug logging."),
    env: Optional[list[str]] = typer.Option(
        None, "--env", "-e", help="Set an environment variable, KEY=VALUE. Repeatable."
    ),
    only: Optional[str] = typer.Option(
        None, "--only", help="Only run on hosts matching this regular expression."
    ),
    exclude: Optional[str] = typer.Option(
        None, "--except", help="Skip hosts matching this regular expression."
    ),
    disable_prefix: bool = typer.Option(
        False, "--disable-prefix", help="Do not prefix output lines with the host."
    ),
    strict: bool = typer.Option(
        False, "--strict", help="Exit non-zero if any host fails in a fan-out run."
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Run a Supfile command or target on a network.

    Without a network, lists the Supfile's networks. Without a command,
    lists its targets and commands. Both listings exit with status 1.

    Args:
        network: Name of a network in the Supfile.
        command: Name of a command or target in the Supfile.
        file: Supfile to load.
        debug: Log at debug level.
        env: Environment overrides with the highest precedence.
        only: Include pattern for host literals.
        exclude: Exclude pattern for host literals.
        disable_prefix: Print fanned-out output without host prefixes.
        strict: Treat any failed host in a fan-out run as fatal.
    """
    setup_logging(debug)

    try:
        supfile = load_supfile(find_supfile(file))

        if network is None:
            _print_networks(supfile)
            raise typer.Exit(code=1)
        selected = get_network(supfile, network)

        if command is None:
            _print_commands(supfile)
            raise typer.Exit(code=1)

        # Reason: every command a target names is resolved before any stage runs.
        commands = resolve_invocation(supfile, command)
        environment = build_environment(supfile, network, parse_env_overrides(env or []))

        engine = Engine(
            selected,
            environment,
            only=only,
            exclude=exclude,
            disable_prefix=disable_prefix,
            strict=strict,
            console=console,
        )
        asyncio.run(engine.execute_all(commands))
    except SupError as exc:
        console.print(f"Error: {exc}", markup=False, highlight=False, soft_wrap=True)
        raise typer.Exit(code=1)
