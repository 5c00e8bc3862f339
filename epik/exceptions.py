"""Exception types raised by epik."""


class EpikError(Exception):
    """Base class for all epik errors."""


class FetchError(EpikError):
    """Reaching the issue tracker failed (network, auth or subprocess error).

    The message always carries the underlying cause text so operators can
    diagnose the failure without digging through logs.
    """


class GhCommandError(FetchError):
    """The GitHub CLI exited unsuccessfully or could not be started."""

    def __init__(self, message: str, returncode: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class TransportError(EpikError):
    """The pub/sub broker could not be reached."""
