"""Local command and script execution."""

import asyncio
import logging
from pathlib import Path
from typing import Mapping

from rich.console import Console
from rich.text import Text

from sup.errors import LocalCommandError

logger = logging.getLogger(__name__)


async def _run(argv: list[str], env: Mapping[str, str]) -> int:
    logger.debug("Running local command: %s", argv)
    try:
        proc = await asyncio.create_subprocess_exec(*argv, env=dict(env))
    except OSError as exc:
        raise LocalCommandError(f"Failed to start {argv[0]}: {exc}") from exc
    return await proc.wait()


async def run_local(cmd: str, env: Mapping[str, str], console: Console) -> None:
    """Run ``cmd`` through ``sh -c`` with ``env`` as its whole environment.

    Raises:
        LocalCommandError: If the command exits non-zero.
    """
    console.print(Text.assemble(("LOCAL", "green"), " ", cmd), soft_wrap=True, highlight=False)
    status = await _run(["sh", "-c", cmd], env)
    if status != 0:
        raise LocalCommandError(f"Local command failed with status {status}: {cmd}")


async def run_script(script: str, env: Mapping[str, str], console: Console) -> None:
    """Run a local script file with ``sh``.

    Raises:
        LocalCommandError: If the script is missing or exits non-zero.
    """
    if not Path(script).exists():
        raise LocalCommandError(f"Script file does not exist: {script}")

    console.print(Text.assemble(("SCRIPT", "green"), " ", script), soft_wrap=True, highlight=False)
    status = await _run(["sh", script], env)
    if status != 0:
        raise LocalCommandError(f"Script failed with status {status}: {script}")
