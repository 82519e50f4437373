"""Build the command that runs a login flow in a user-visible terminal."""

from __future__ import annotations

import shlex
import subprocess
from typing import Sequence, Tuple

LOGIN_WINDOW_TITLE = "Sign in"


def build_terminal_command(
    login_command: Sequence[str],
    platform: str,
    prefix: Sequence[str] = (),
) -> Tuple[str, ...]:
    """
    Wrap ``login_command`` so it runs in a separate visible terminal.

    The returned command blocks until that terminal session ends.

    Args:
        login_command: The external tool's login invocation
        platform: ``sys.platform`` value
        prefix: Explicit terminal launcher (e.g. ``gnome-terminal --wait --``);
            overrides the platform default

    Returns:
        Command to execute. On macOS without a prefix this is ``login_command``
        itself, run inline in the launcher's own console.
    """
    if not login_command:
        raise ValueError("login_command must not be empty")

    if prefix:
        return (*prefix, *login_command)
    if platform.startswith("win"):
        # start "<title>" /wait keeps the new console window attached to our wait
        return ("cmd.exe", "/c", "start", LOGIN_WINDOW_TITLE, "/wait", "cmd.exe", "/c", subprocess.list2cmdline(list(login_command)))
    if platform == "darwin":
        return tuple(login_command)
    return ("x-terminal-emulator", "-e", shlex.join(login_command))
