from __future__ import annotations


class ServerCtlError(Exception):
    """Base class for every failure the CLI reports instead of crashing."""


class UsageError(ServerCtlError):
    pass


class ValidationError(ServerCtlError):
    pass


class PidResolutionError(ServerCtlError):
    pass


class PidFileMissing(PidResolutionError):
    pass


class PidFileInvalid(PidResolutionError):
    pass


class PrivilegeError(ServerCtlError):
    pass


class BuildError(ServerCtlError):
    pass


class TerminationError(ServerCtlError):
    def __init__(self, message: str, returncode: int | None = None) -> None:
        super().__init__(message)
        self.returncode = returncode


class SpawnError(ServerCtlError):
    pass
