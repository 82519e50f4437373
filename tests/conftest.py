"""Root pytest configuration and shared fixtures."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from stack_launcher import config as config_module
from stack_launcher.config import runtime
from stack_launcher.launcher_config import LauncherConfig, StackPaths


@pytest.fixture(autouse=True)
def isolated_config_defaults(monkeypatch):
    """Keep developer .env files out of the tests."""
    monkeypatch.setattr(runtime, "_DOTENV_CANDIDATES", ())
    monkeypatch.setattr(runtime, "_JSON_ENV_CANDIDATES", ())
    config_module.reset_default_values()
    for name in (
        "STACK_APP_ROOT",
        "STACK_LOG_DIR",
        "STACK_DATABASE_HOST",
        "STACK_DATABASE_PORT",
        "STACK_AUTH_CHECK_COMMAND",
        "STACK_AUTH_LOGIN_COMMAND",
        "STACK_TERMINAL_COMMAND",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
    config_module.reset_default_values()


@pytest.fixture
def restore_root_logging():
    """Undo setup_logging's changes to the root logger."""
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    yield root
    for handler in list(root.handlers):
        if handler not in saved_handlers:
            handler.close()
    root.handlers = saved_handlers
    root.setLevel(saved_level)


@pytest.fixture
def launcher_config(tmp_path: Path) -> LauncherConfig:
    return LauncherConfig(
        app_root=tmp_path / "app",
        log_dir=tmp_path / "logs",
        database_host="127.0.0.1",
        database_port=3306,
        readiness_timeout_seconds=0.3,
        poll_interval_seconds=0.05,
        connect_timeout_seconds=0.1,
        initialize_timeout_seconds=5.0,
        auth_check_command=(),
        auth_login_command=(),
        terminal_command=(),
    )


@pytest.fixture
def stack_paths(launcher_config: LauncherConfig) -> StackPaths:
    return StackPaths.from_config(launcher_config, platform="linux")
