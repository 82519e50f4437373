"""
Process handles for the managed background services.

spawn_process launches an executable with stdio discarded (and no console
window on Windows) and returns a ManagedProcess. terminate_process force-kills
the process together with every child it spawned; it is idempotent and never
raises, failures are logged as TerminationError.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

import psutil

from .exceptions import SpawnError, TerminationError

logger = logging.getLogger(__name__)

# Seconds to wait for killed processes to disappear
FORCE_KILL_TIMEOUT_SECONDS = 5


class ServiceName(str, Enum):
    """Services managed by the launcher."""

    DATABASE = "database"
    API = "api"


@dataclass
class ManagedProcess:
    """One externally spawned executable."""

    name: ServiceName
    executable: Path
    args: Tuple[str, ...] = ()
    cwd: Optional[Path] = None
    pid: Optional[int] = None
    alive: bool = False
    popen: Optional[Any] = field(default=None, repr=False, compare=False)


def _creation_flags() -> int:
    if sys.platform.startswith("win"):
        return getattr(subprocess, "CREATE_NO_WINDOW", 0)
    return 0


def spawn_process(
    name: ServiceName,
    executable: Path,
    args: Sequence[str] = (),
    cwd: Optional[Path] = None,
) -> ManagedProcess:
    """
    Launch a background process with stdio discarded.

    Args:
        name: Service the process belongs to
        executable: Path to the executable
        args: Command-line arguments
        cwd: Working directory (defaults to the launcher's)

    Returns:
        ManagedProcess carrying the OS-assigned PID

    Raises:
        SpawnError: If the executable is missing or the OS refuses to start it
    """
    executable = Path(executable)
    handle = ManagedProcess(name=name, executable=executable, args=tuple(args), cwd=cwd)
    if not executable.is_file():
        raise SpawnError(f"{name.value} executable not found: {executable}", service=name.value)

    try:
        popen = subprocess.Popen(
            [str(executable), *handle.args],
            cwd=str(cwd) if cwd is not None else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            shell=False,
            creationflags=_creation_flags(),
        )
    except (OSError, ValueError) as exc:
        raise SpawnError(f"Failed to start {name.value} ({executable}): {exc}", service=name.value) from exc

    handle.popen = popen
    handle.pid = popen.pid
    handle.alive = True
    logger.info("%s started (PID: %s)", name.value, popen.pid)
    return handle


def _collect_tree(pid: int) -> List[psutil.Process]:
    """Return the process and its descendants, children first."""
    root = psutil.Process(pid)
    try:
        children = root.children(recursive=True)
    except psutil.NoSuchProcess:
        children = []
    return [*reversed(children), root]


def _kill_tree(pid: int) -> List[psutil.Process]:
    """Kill every process in the tree and return the ones still alive after the wait."""
    tree = _collect_tree(pid)
    for proc in tree:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            continue
    _, alive = psutil.wait_procs(tree, timeout=FORCE_KILL_TIMEOUT_SECONDS)
    return alive


def _reap(handle: ManagedProcess) -> None:
    if handle.popen is None:
        return
    try:
        handle.popen.wait(timeout=FORCE_KILL_TIMEOUT_SECONDS)
    except (subprocess.TimeoutExpired, OSError) as exc:
        logger.debug("Could not reap %s (PID %s): %s", handle.name.value, handle.pid, exc)


def terminate_process(handle: Optional[ManagedProcess]) -> bool:
    """
    Force-kill a managed process and its children.

    Calling it on ``None``, an unspawned handle, or an already terminated
    handle is a no-op.

    Returns:
        True if a termination attempt was made
    """
    if handle is None or not handle.alive or handle.pid is None:
        return False

    logger.info("Killing %s (PID: %s)", handle.name.value, handle.pid)
    try:
        survivors = _kill_tree(handle.pid)
    except psutil.NoSuchProcess:
        logger.info("%s (PID: %s) already exited", handle.name.value, handle.pid)
    except (psutil.Error, OSError) as exc:
        error = TerminationError(f"Failed to kill {handle.name.value} (PID {handle.pid}): {exc}", service=handle.name.value)
        logger.warning("%s", error)
    else:
        if survivors:
            pids = ", ".join(str(proc.pid) for proc in survivors)
            logger.warning("%s", TerminationError(f"{handle.name.value} processes still alive after kill: {pids}"))
    finally:
        _reap(handle)
        handle.alive = False
    return True


__all__ = ["FORCE_KILL_TIMEOUT_SECONDS", "ManagedProcess", "ServiceName", "spawn_process", "terminate_process"]
