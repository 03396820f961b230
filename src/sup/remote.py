"""Remote command preparation and ssh argument builders.

Everything here is a pure string transform so it can be tested without
spawning processes.
"""

import shlex


SSH = "ssh"
SUDO_WRAPPER = "sudo -E bash -c "


def prepare_remote_command(cmd: str) -> str:
    """Rewrite a leading ``sudo`` so the command survives re-quoting.

    ``sudo apt-get install -y pkg`` becomes
    ``sudo -E bash -c 'apt-get install -y pkg'``. The ``-E`` keeps the
    caller's environment across the privilege boundary and bash runs the
    quoted remainder, so quotes, ``VAR=value`` prefixes and pipelines in the
    original command are preserved. Anything not starting with the ``sudo``
    token is returned unchanged.

    Args:
        cmd: Raw command from the Supfile.

    Returns:
        str: Command ready to be run through ``sh -c`` on the remote side.
    """
    parts = cmd.strip().split(None, 1)
    if not parts or parts[0] != "sudo":
        return cmd

    remainder = parts[1] if len(parts) > 1 else ""
    return SUDO_WRAPPER + shlex.quote(remainder)


def build_session_cmd(target: str, cmd: str) -> list[str]:
    """Build the ssh argv that runs ``cmd`` through ``sh -c`` on ``target``.

    ssh joins its trailing arguments with spaces before handing them to the
    remote login shell, so the prepared command is quoted into a single
    ``sh -c`` word here.
    """
    prepared = prepare_remote_command(cmd)
    return [SSH, target, f"sh -c {shlex.quote(prepared)}"]


def build_interactive_cmd(target: str, cmd: str) -> list[str]:
    """Build the ssh argv for a ``sh -c`` session with a forced pseudo-terminal."""
    prepared = prepare_remote_command(cmd)
    return [SSH, "-tt", target, f"sh -c {shlex.quote(prepared)}"]


def build_mkdir_cmd(target: str, directory: str) -> list[str]:
    """Build the ssh argv that creates ``directory`` recursively."""
    return [SSH, target, f"mkdir -p {shlex.quote(directory)}"]


def build_extract_cmd(target: str, directory: str) -> list[str]:
    """Build the ssh argv that unpacks a gzipped tar stream from stdin."""
    return [SSH, target, f"cd {shlex.quote(directory)} && tar xzf -"]
