"""Tests for local command and script execution."""

from pathlib import Path

import pytest

from sup.errors import LocalCommandError
from sup.local import run_local, run_script

ENV = {"SUP_NETWORK": "dev", "IMAGE": "example/api:latest"}


@pytest.mark.asyncio
async def test_run_local_replaces_environment(fake_exec, out):
    await run_local("docker build -t $IMAGE .", ENV, out)

    argv, kwargs = fake_exec.calls[0]
    assert argv == ("sh", "-c", "docker build -t $IMAGE .")
    assert kwargs["env"] == ENV
    assert out.file.getvalue() == "LOCAL docker build -t $IMAGE .\n"


@pytest.mark.asyncio
async def test_run_local_failure(fake_exec, out):
    fake_exec.respond("make test", returncode=2)

    with pytest.raises(LocalCommandError, match="status 2"):
        await run_local("make test", ENV, out)


@pytest.mark.asyncio
async def test_run_local_spawn_failure(fake_exec, out):
    fake_exec.respond("sh", raises=FileNotFoundError("sh"))

    with pytest.raises(LocalCommandError, match="Failed to start sh"):
        await run_local("true", ENV, out)


@pytest.mark.asyncio
async def test_run_script(fake_exec, out, tmp_path: Path):
    script = tmp_path / "deploy.sh"
    script.write_text("echo deploying\n")

    await run_script(str(script), ENV, out)

    argv, kwargs = fake_exec.calls[0]
    assert argv == ("sh", str(script))
    assert kwargs["env"] == ENV
    assert out.file.getvalue() == f"SCRIPT {script}\n"


@pytest.mark.asyncio
async def test_run_script_missing(fake_exec, out, tmp_path: Path):
    with pytest.raises(LocalCommandError, match="does not exist"):
        await run_script(str(tmp_path / "nope.sh"), ENV, out)

    assert fake_exec.calls == []


@pytest.mark.asyncio
async def test_run_script_failure(fake_exec, out, tmp_path: Path):
    script = tmp_path / "broken.sh"
    script.write_text("exit 1\n")
    fake_exec.respond("broken.sh", returncode=1)

    with pytest.raises(LocalCommandError, match="Script failed"):
        await run_script(str(script), ENV, out)
