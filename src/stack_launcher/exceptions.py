"""Exception hierarchy for the launcher.

Fatal startup errors (``SpawnError``, ``InitializationError``,
``ReadinessTimeout``, ``AuthenticationFailure``) abort the startup sequence.
``TerminationError`` is only ever logged: teardown never raises.

Keyword arguments are stored as attributes for diagnostics:

    err = SpawnError("api.exe not found", service="api")
    err.service  # "api"
"""

from typing import Any


class LauncherError(Exception):
    """Launcher error occurred"""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        if not message:
            message = self.__class__.__doc__ or "Launcher error occurred"
        super().__init__(message)
        for key, value in kwargs.items():
            setattr(self, key, value)


class SpawnError(LauncherError):
    """Executable is missing or the OS refused to create the process"""


class InitializationError(LauncherError):
    """Database first-run initialization failed"""


class ReadinessTimeout(LauncherError):
    """Service did not start accepting connections before the deadline"""


class AuthenticationFailure(LauncherError):
    """Interactive login did not result in a confirmed logged-in state"""


class TerminationError(LauncherError):
    """Best-effort process termination failed"""


FATAL_STARTUP_ERRORS = (SpawnError, InitializationError, ReadinessTimeout, AuthenticationFailure)

__all__ = [
    "AuthenticationFailure",
    "FATAL_STARTUP_ERRORS",
    "InitializationError",
    "LauncherError",
    "ReadinessTimeout",
    "SpawnError",
    "TerminationError",
]
