"""Exception hierarchy for sup.

Everything raised on purpose derives from SupError so the CLI can report
it with a single handler and a non-zero exit status.
"""


class SupError(Exception):
    """Base class for all sup errors."""

    pass


class ConfigError(SupError):
    """Raised for an unusable Supfile, unknown names, or invalid options."""

    pass


class InventoryError(SupError):
    """Raised when a network's inventory command fails."""

    pass


class HostParseError(SupError):
    """Raised when a host literal is not in user@host form."""

    pass


class LocalCommandError(SupError):
    """Raised when a local command or script fails."""

    pass


class RemoteCommandError(SupError):
    """Raised when a remote session fails to spawn or exits non-zero.

    Attributes:
        host: Host literal the session targeted.
        returncode: Exit status of the ssh process, None if it never ran.
    """

    def __init__(self, message: str, host: str | None = None, returncode: int | None = None):
        super().__init__(message)
        self.host = host
        self.returncode = returncode


class DispatchError(SupError):
    """Raised when the host set does not fit the requested dispatch mode."""

    pass


class UploadError(SupError):
    """Raised when any step of an upload fails."""

    pass
