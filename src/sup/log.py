"""Diagnostic logging setup."""

import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(debug: bool = False) -> None:
    """Send log records to stderr through rich.

    Args:
        debug: Log at DEBUG and show the emitting source line.
    """
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=debug,
        show_path=debug,
        markup=False,
        rich_tracebacks=debug,
    )
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
