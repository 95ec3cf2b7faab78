"""Exceptions raised by the cmsdist provider."""


class CmsdistError(RuntimeError):
    """Base class for provider failures."""


class InvalidPackageName(CmsdistError, ValueError):
    """Resource name is not of the form ``group+package+version[/arch]``."""


class CommandError(CmsdistError):
    """A command exited nonzero; keeps its exit code and captured output."""

    def __init__(self, message: str, *, returncode: int = 1, output: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.output = output


class BootstrapOwnershipError(CmsdistError):
    """The install prefix could not be created or handed to the install user."""


class BootstrapError(CommandError):
    """Fetching or running the bootstrap script failed."""


class DownloadError(CommandError):
    """Fetching the cleanup script failed."""


class InstallError(CommandError):
    """apt-get could not install the package."""


class UninstallError(CommandError):
    """apt-get could not remove the package."""
