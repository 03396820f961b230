"""Fan-in of per-host output lines into one presentation stream."""

import asyncio

from rich.console import Console
from rich.text import Text


CHANNEL_CAPACITY = 32
HOST_STYLE = "blue"

# Posted by a producer when its session is over, whatever the outcome.
_DONE = object()


def format_line(host: str, line: str, prefix: bool = True) -> Text:
    """Render one output line, optionally prefixed with its host."""
    if not prefix:
        return Text(line)
    return Text.assemble((host, HOST_STYLE), " ", line)


class OutputMultiplexer:
    """Bounded channel drained by a single printing consumer.

    Every session in a batch sends ``(host, line)`` pairs through
    :meth:`send`; a full channel blocks the sender until :meth:`drain`
    catches up. Lines are printed in arrival order, with no re-sorting
    across hosts.

    Attributes:
        console: Where lines are printed.
        prefix: Whether to prefix each line with its host.
    """

    def __init__(self, console: Console, prefix: bool = True, capacity: int = CHANNEL_CAPACITY):
        self.console = console
        self.prefix = prefix
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=capacity)

    async def send(self, host: str, line: str) -> None:
        """Queue a line from ``host``, waiting while the channel is full."""
        await self._queue.put((host, line))

    async def close(self) -> None:
        """Signal that one producer has finished sending."""
        await self._queue.put(_DONE)

    async def drain(self, producers: int) -> int:
        """Print queued lines until ``producers`` producers have closed.

        Args:
            producers: Number of producers feeding this channel.

        Returns:
            int: Number of lines printed.
        """
        finished = 0
        printed = 0
        while finished < producers:
            item = await self._queue.get()
            if item is _DONE:
                finished += 1
                continue
            host, line = item
            self.console.print(
                format_line(host, line, self.prefix), soft_wrap=True, highlight=False
            )
            printed += 1
        return printed
