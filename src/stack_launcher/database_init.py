"""First-run initialization of the database's persistent storage."""

from __future__ import annotations

import asyncio
import logging
import subprocess
from typing import Tuple

from .exceptions import InitializationError
from .launcher_config import StackPaths

logger = logging.getLogger(__name__)


def build_initialize_command(paths: StackPaths) -> Tuple[str, ...]:
    return (
        str(paths.database_executable),
        "--initialize-insecure",
        f"--basedir={paths.database_base}",
        f"--datadir={paths.database_data}",
    )


async def ensure_database_initialized(paths: StackPaths, *, timeout_seconds: float) -> bool:
    """
    Initialize the data directory unless the system database already exists.

    Args:
        paths: Installation layout
        timeout_seconds: Deadline for the initialization command

    Returns:
        True if initialization ran, False if it was skipped

    Raises:
        InitializationError: If the command cannot start, fails, or times out
    """
    if paths.system_db_marker.exists():
        logger.info("Database already initialized")
        return False

    logger.info("Database not initialized, initializing")
    command = build_initialize_command(paths)
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            cwd=str(paths.database_bin),
            stdin=subprocess.DEVNULL,
        )
    except OSError as exc:
        raise InitializationError(f"Could not run database initialization: {exc}") from exc

    try:
        returncode = await asyncio.wait_for(proc.wait(), timeout=timeout_seconds)
    except asyncio.TimeoutError as exc:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()
        raise InitializationError(f"Database initialization did not finish within {timeout_seconds:g}s") from exc

    if returncode != 0:
        raise InitializationError(f"Database initialization failed (exit {returncode})", returncode=returncode)

    logger.info("Database initialization complete")
    return True


__all__ = ["build_initialize_command", "ensure_database_initialized"]
