"""
Configuration for the launcher session.

Every field is read from the environment (or the ``.env`` / JSON defaults
understood by :mod:`stack_launcher.config`) when the dataclass is created,
so a bare ``LauncherConfig()`` reflects the current deployment. Durations are
in seconds.
"""

from __future__ import annotations

import shlex
import sys
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Optional, Tuple

from .config import ConfigurationError, env_int, env_seconds, env_str

DEFAULT_DATABASE_HOST = "127.0.0.1"
DEFAULT_DATABASE_PORT = 3306
DEFAULT_READINESS_TIMEOUT_SECONDS = 60.0
DEFAULT_POLL_INTERVAL_SECONDS = 0.5
DEFAULT_CONNECT_TIMEOUT_SECONDS = 1.0
DEFAULT_INITIALIZE_TIMEOUT_SECONDS = 300.0
DEFAULT_AUTH_CHECK_TIMEOUT_SECONDS = 15.0
DEFAULT_AUTH_LOGIN_TIMEOUT_SECONDS = 600.0
DEFAULT_AUTH_CONFIRM_ATTEMPTS = 3
DEFAULT_AUTH_CONFIRM_DELAY_SECONDS = 2.0


def _default_app_root() -> Path:
    raw = env_str("STACK_APP_ROOT")
    return Path(raw).expanduser() if raw else Path.cwd()


def _default_log_dir() -> Path:
    raw = env_str("STACK_LOG_DIR")
    return Path(raw).expanduser() if raw else Path.home() / ".stack_launcher"


def _env_command(name: str) -> Tuple[str, ...]:
    raw = env_str(name)
    if not raw:
        return ()
    try:
        return tuple(shlex.split(raw, posix=not sys.platform.startswith("win")))
    except ValueError as exc:
        raise ConfigurationError.invalid_value(name, raw, "Expected a shell-style command line") from exc


@dataclass
class LauncherConfig:
    """
    Settings for one launcher session.

    Attributes:
        app_root: Installation directory holding ``mysql/`` and the API executable
        log_dir: Directory for the session log and the instance lock
        database_host: Host probed for database readiness
        database_port: TCP port the database listens on
        readiness_timeout_seconds: Overall deadline for the database to open its port
        poll_interval_seconds: Pause between failed readiness attempts
        connect_timeout_seconds: Per-attempt connection timeout
        initialize_timeout_seconds: Deadline for first-run database initialization
        auth_check_command: Non-interactive account status command (empty disables the gate)
        auth_login_command: Login command run in a visible terminal
        auth_check_timeout_seconds: Deadline for one status check
        auth_login_timeout_seconds: Deadline for the user to finish the login session
        auth_confirm_attempts: Status checks made after the login session closes
        auth_confirm_delay_seconds: Pause before each confirmation check
        terminal_command: Optional prefix that opens a visible terminal
    """

    app_root: Path = field(default_factory=_default_app_root)
    log_dir: Path = field(default_factory=_default_log_dir)

    database_host: str = field(default_factory=partial(env_str, "STACK_DATABASE_HOST", DEFAULT_DATABASE_HOST))
    database_port: int = field(default_factory=partial(env_int, "STACK_DATABASE_PORT", DEFAULT_DATABASE_PORT))
    readiness_timeout_seconds: float = field(
        default_factory=partial(env_seconds, "STACK_READINESS_TIMEOUT_SECONDS", DEFAULT_READINESS_TIMEOUT_SECONDS)
    )
    poll_interval_seconds: float = field(
        default_factory=partial(env_seconds, "STACK_POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS)
    )
    connect_timeout_seconds: float = field(
        default_factory=partial(env_seconds, "STACK_CONNECT_TIMEOUT_SECONDS", DEFAULT_CONNECT_TIMEOUT_SECONDS)
    )
    initialize_timeout_seconds: float = field(
        default_factory=partial(env_seconds, "STACK_INITIALIZE_TIMEOUT_SECONDS", DEFAULT_INITIALIZE_TIMEOUT_SECONDS)
    )

    auth_check_command: Tuple[str, ...] = field(default_factory=partial(_env_command, "STACK_AUTH_CHECK_COMMAND"))
    auth_login_command: Tuple[str, ...] = field(default_factory=partial(_env_command, "STACK_AUTH_LOGIN_COMMAND"))
    auth_check_timeout_seconds: float = field(
        default_factory=partial(env_seconds, "STACK_AUTH_CHECK_TIMEOUT_SECONDS", DEFAULT_AUTH_CHECK_TIMEOUT_SECONDS)
    )
    auth_login_timeout_seconds: float = field(
        default_factory=partial(env_seconds, "STACK_AUTH_LOGIN_TIMEOUT_SECONDS", DEFAULT_AUTH_LOGIN_TIMEOUT_SECONDS)
    )
    auth_confirm_attempts: int = field(
        default_factory=partial(env_int, "STACK_AUTH_CONFIRM_ATTEMPTS", DEFAULT_AUTH_CONFIRM_ATTEMPTS)
    )
    auth_confirm_delay_seconds: float = field(
        default_factory=partial(env_seconds, "STACK_AUTH_CONFIRM_DELAY_SECONDS", DEFAULT_AUTH_CONFIRM_DELAY_SECONDS)
    )
    terminal_command: Tuple[str, ...] = field(default_factory=partial(_env_command, "STACK_TERMINAL_COMMAND"))

    def __post_init__(self) -> None:
        self.app_root = Path(self.app_root)
        self.log_dir = Path(self.log_dir)
        if not 1 <= self.database_port <= 65535:
            raise ConfigurationError.invalid_value("database_port", self.database_port, "Expected 1..65535")
        for name in (
            "readiness_timeout_seconds",
            "poll_interval_seconds",
            "connect_timeout_seconds",
            "initialize_timeout_seconds",
            "auth_check_timeout_seconds",
            "auth_login_timeout_seconds",
            "auth_confirm_delay_seconds",
        ):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError.invalid_value(name, value, "Expected a positive number of seconds")
        if self.auth_confirm_attempts < 1:
            raise ConfigurationError.invalid_value("auth_confirm_attempts", self.auth_confirm_attempts, "Expected at least 1")
        if self.auth_check_command and not self.auth_login_command:
            raise ConfigurationError.missing_value("auth_login_command", "required when an auth check command is configured")

    @property
    def auth_enabled(self) -> bool:
        return bool(self.auth_check_command)


@dataclass(frozen=True)
class StackPaths:
    """Installation layout of the managed services."""

    app_root: Path
    database_base: Path
    database_bin: Path
    database_executable: Path
    database_data: Path
    database_defaults_file: Path
    system_db_marker: Path
    api_executable: Path
    log_file: Path

    @classmethod
    def from_config(cls, config: LauncherConfig, platform: Optional[str] = None) -> "StackPaths":
        platform = platform or sys.platform
        suffix = ".exe" if platform.startswith("win") else ""
        root = config.app_root
        base = root / "mysql"
        data = base / "data"
        return cls(
            app_root=root,
            database_base=base,
            database_bin=base / "bin",
            database_executable=base / "bin" / f"mysqld{suffix}",
            database_data=data,
            database_defaults_file=base / "my.ini",
            system_db_marker=data / "mysql",
            api_executable=root / f"api{suffix}",
            log_file=config.log_dir / "app.log",
        )


__all__ = ["LauncherConfig", "StackPaths"]
