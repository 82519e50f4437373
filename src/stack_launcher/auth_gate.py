"""
Authentication gate backed by an external command-line tool.

The credential state lives in the external tool; the gate only observes it.
check_logged_in runs the tool's non-interactive status command. When that
fails, interactive_login opens the tool's login flow in a visible terminal,
waits for the user to close it, then re-checks: the terminal's own exit code
says nothing reliable about whether login completed.
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
import sys
from typing import Optional, Sequence

from .auth_gate_helpers import build_terminal_command
from .launcher_config import LauncherConfig

logger = logging.getLogger(__name__)


async def _kill_and_wait(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        return
    await proc.wait()


class AuthenticationGate:
    """Detects, and interactively restores, the external tool's logged-in state."""

    def __init__(
        self,
        check_command: Sequence[str],
        login_command: Sequence[str],
        *,
        check_timeout_seconds: float = 15.0,
        login_timeout_seconds: float = 600.0,
        confirm_attempts: int = 3,
        confirm_delay_seconds: float = 2.0,
        terminal_prefix: Sequence[str] = (),
        platform: Optional[str] = None,
    ) -> None:
        if not check_command or not login_command:
            raise ValueError("check_command and login_command are required")
        self.check_command = tuple(check_command)
        self.login_command = tuple(login_command)
        self.check_timeout_seconds = check_timeout_seconds
        self.login_timeout_seconds = login_timeout_seconds
        self.confirm_attempts = max(1, confirm_attempts)
        self.confirm_delay_seconds = confirm_delay_seconds
        self.terminal_prefix = tuple(terminal_prefix)
        self.platform = platform or sys.platform

    @classmethod
    def from_config(cls, config: LauncherConfig) -> Optional["AuthenticationGate"]:
        """Build the gate, or return None when no check command is configured."""
        if not config.auth_enabled:
            return None
        return cls(
            config.auth_check_command,
            config.auth_login_command,
            check_timeout_seconds=config.auth_check_timeout_seconds,
            login_timeout_seconds=config.auth_login_timeout_seconds,
            confirm_attempts=config.auth_confirm_attempts,
            confirm_delay_seconds=config.auth_confirm_delay_seconds,
            terminal_prefix=config.terminal_command,
        )

    async def check_logged_in(self) -> bool:
        """
        Run the status command once.

        A non-zero exit, a timeout, or a missing tool all mean "not logged in";
        this method never raises for those.
        """
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.check_command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            logger.warning("Auth check command could not be started (%s): %s", self.check_command[0], exc)
            return False

        try:
            returncode = await asyncio.wait_for(proc.wait(), timeout=self.check_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Auth check timed out after %ss", self.check_timeout_seconds)
            await _kill_and_wait(proc)
            return False

        logged_in = returncode == 0
        logger.info("Auth check: %s", "logged in" if logged_in else f"not logged in (exit {returncode})")
        return logged_in

    async def _run_login_session(self) -> None:
        command = build_terminal_command(self.login_command, self.platform, self.terminal_prefix)
        logger.info("Opening login session: %s", " ".join(command))
        try:
            proc = await asyncio.create_subprocess_exec(*command)
        except OSError as exc:
            logger.error("Could not open login session: %s", exc)
            return

        try:
            returncode = await asyncio.wait_for(proc.wait(), timeout=self.login_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Login session still open after %ss; closing it", self.login_timeout_seconds)
            await _kill_and_wait(proc)
            return
        # Informational only, confirmation comes from the status command
        logger.info("Login session closed (exit %s)", returncode)

    async def _confirm(self) -> bool:
        for attempt in range(1, self.confirm_attempts + 1):
            await asyncio.sleep(self.confirm_delay_seconds)
            if await self.check_logged_in():
                return True
            logger.info("Login not confirmed (check %d/%d)", attempt, self.confirm_attempts)
        return False

    async def interactive_login(self) -> bool:
        """
        Run the login flow in a visible terminal and confirm the outcome.

        Returns:
            Whether a follow-up status check reported logged in
        """
        await self._run_login_session()
        return await self._confirm()


__all__ = ["AuthenticationGate"]
