"""
Stale process sweep.

A launcher that was killed outright cannot tear down its children, so the
next session finds them still running and holding the database port.
kill_processes_by_executable force-kills every process whose executable
path matches the managed binary. It runs before the database is spawned and
again as the last teardown step. It never raises.

Usage:
    from stack_launcher.process_killer import kill_processes_by_executable

    kill_processes_by_executable(paths.database_executable)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional

import psutil

logger = logging.getLogger(__name__)

FORCE_KILL_TIMEOUT_SECONDS = 5


def _normalize(path: str | Path) -> str:
    return os.path.normcase(os.path.realpath(str(path)))


def _process_executable(proc: psutil.Process) -> Optional[str]:
    try:
        exe = proc.info.get("exe") if hasattr(proc, "info") else proc.exe()
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
        return None
    return exe or None


def find_processes_by_executable(executable: Path) -> List[psutil.Process]:
    """
    Return running processes whose executable is ``executable``.

    The current process is never included.
    """
    target = _normalize(executable)
    current_pid = os.getpid()
    matching: List[psutil.Process] = []
    for proc in psutil.process_iter(["pid", "exe"]):
        if proc.pid == current_pid:
            continue
        exe = _process_executable(proc)
        if exe and _normalize(exe) == target:
            matching.append(proc)
    return matching


def kill_processes_by_executable(executable: Path) -> List[int]:
    """
    Force-kill all processes running ``executable``.

    Returns:
        PIDs that were killed
    """
    try:
        matching = find_processes_by_executable(executable)
    except (psutil.Error, OSError) as exc:
        logger.warning("Could not scan processes for %s: %s", executable, exc)
        return []

    if not matching:
        logger.debug("No %s processes found", Path(executable).name)
        return []

    killed: List[int] = []
    for proc in matching:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            logger.debug("Process %s exited before it could be killed", proc.pid)
            continue
        except psutil.AccessDenied:
            logger.warning("Could not kill %s process %s: access denied", Path(executable).name, proc.pid)
            continue
        killed.append(proc.pid)

    if killed:
        _, alive = psutil.wait_procs([proc for proc in matching if proc.pid in killed], timeout=FORCE_KILL_TIMEOUT_SECONDS)
        for proc in alive:
            logger.warning("%s process %s still alive after kill", Path(executable).name, proc.pid)
        logger.info("Killed stale %s processes: %s", Path(executable).name, ", ".join(map(str, killed)))
    return killed


__all__ = ["find_processes_by_executable", "kill_processes_by_executable"]
