"""Shared test fixtures for the sup test suite.

Subprocesses are never spawned: ``asyncio.create_subprocess_exec`` is
replaced with a fake that hands back processes whose stdout and stderr are
real ``asyncio.StreamReader`` objects pre-fed with canned bytes.
"""

import asyncio
import io

import pytest
from rich.console import Console


def _reader(data: bytes, limit: int = 2**16) -> asyncio.StreamReader:
    """Build a StreamReader that yields ``data`` and then EOF."""
    reader = asyncio.StreamReader(limit=limit)
    reader.feed_data(data)
    reader.feed_eof()
    return reader


class FakeStdin:
    """Collects bytes written to a fake process's stdin."""

    def __init__(self):
        self.data = bytearray()
        self.closed = False

    def write(self, data: bytes) -> None:
        self.data.extend(data)

    async def drain(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        pass


class FakeProcess:
    """Fake asyncio subprocess with canned output and exit status.

    Attributes:
        argv: Arguments the process was "spawned" with.
        stdout: StreamReader yielding the canned stdout.
        stderr: StreamReader yielding the canned stderr.
        stdin: FakeStdin recording anything piped in.
        returncode: None until wait() is awaited.
    """

    def __init__(self, argv, stdout=b"", stderr=b"", returncode=0, events=None, limit=2**16):
        self.argv = argv
        self.stdout = _reader(stdout, limit)
        self.stderr = _reader(stderr, limit)
        self.stdin = FakeStdin()
        self.returncode = None
        self.killed = False
        self._exit = returncode
        self._events = events

    async def wait(self):
        """Yield once so sibling tasks interleave, then report the exit."""
        await asyncio.sleep(0)
        if self.returncode is None and self._events is not None:
            self._events.append(("end", self.argv))
        self.returncode = self._exit
        return self.returncode

    async def communicate(self, input=None):
        """Return the remaining stdout and stderr."""
        out = await self.stdout.read()
        err = await self.stderr.read()
        await self.wait()
        return out, err

    def kill(self):
        self.killed = True


class FakeExec:
    """Stand-in for ``asyncio.create_subprocess_exec``.

    Responses are registered against substrings of the space-joined argv;
    the first matching registration wins. Unmatched commands succeed with
    no output.

    Attributes:
        calls: (argv, kwargs) for every spawn, in order.
        processes: FakeProcess objects handed out, in order.
        events: ("start", argv) and ("end", argv) markers, in order.
    """

    def __init__(self):
        self.calls: list[tuple[tuple, dict]] = []
        self.processes: list[FakeProcess] = []
        self.events: list[tuple[str, tuple]] = []
        self._rules: list[tuple[str, dict]] = []

    def respond(self, match, stdout=b"", stderr=b"", returncode=0, raises=None):
        if isinstance(stdout, str):
            stdout = stdout.encode()
        if isinstance(stderr, str):
            stderr = stderr.encode()
        self._rules.append(
            (match, {"stdout": stdout, "stderr": stderr, "returncode": returncode, "raises": raises})
        )

    @property
    def argvs(self) -> list[tuple]:
        return [argv for argv, _ in self.calls]

    async def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        joined = " ".join(str(a) for a in args)
        response = {"stdout": b"", "stderr": b"", "returncode": 0, "raises": None}
        for match, candidate in self._rules:
            if match in joined:
                response = candidate
                break
        if response["raises"] is not None:
            raise response["raises"]

        self.events.append(("start", args))
        proc = FakeProcess(
            args,
            stdout=response["stdout"],
            stderr=response["stderr"],
            returncode=response["returncode"],
            events=self.events,
            limit=kwargs.get("limit", 2**16),
        )
        self.processes.append(proc)
        return proc


@pytest.fixture
def fake_exec(monkeypatch):
    """Replace asyncio.create_subprocess_exec with a FakeExec."""
    fake = FakeExec()
    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake)
    yield fake


def make_console() -> Console:
    """A wide, colourless console writing to a StringIO."""
    return Console(file=io.StringIO(), width=200, color_system=None)


@pytest.fixture
def out():
    """Console capturing program output; read it with ``out.file.getvalue()``."""
    return make_console()


@pytest.fixture
def err():
    """Console capturing direct-mode stderr output."""
    return make_console()


@pytest.fixture
def supfile_path(tmp_path):
    """Write a representative Supfile and return its path."""
    path = tmp_path / "Supfile.yml"
    path.write_text(
        "version: 0.4\n"
        "env:\n"
        "  NAME: example-app\n"
        "  HOST_PORT: 8000\n"
        "networks:\n"
        "  dev:\n"
        "    hosts:\n"
        "      - deploy@web1\n"
        "      - deploy@web2\n"
        "    env:\n"
        "      ENV: development\n"
        "      DEBUG: true\n"
        "  staging:\n"
        "    inventory: echo deploy@inv1\n"
        "commands:\n"
        "  ping:\n"
        "    desc: Print uname and current date/time.\n"
        "    run: uname -a; date\n"
        "  build:\n"
        "    desc: Build locally\n"
        "    local: make build\n"
        "  rolling:\n"
        "    run: systemctl restart app\n"
        "    serial: 1\n"
        "  bash:\n"
        "    stdin: true\n"
        "    run: bash\n"
        "targets:\n"
        "  deploy:\n"
        "    - build\n"
        "    - rolling\n"
    )
    return path
