from __future__ import annotations

"""Entry point: run one launcher session with consistent shutdown handling."""

import argparse
import asyncio
import logging
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Sequence, Tuple

from .auth_gate import AuthenticationGate
from .config import ConfigurationError
from .launcher_config import LauncherConfig, StackPaths
from .logging_config import setup_logging
from .orchestrator import StartupOrchestrator
from .session_state import SessionState
from .shutdown import ShutdownTriggers
from .ui import ConsoleInterface, UserInterface

try:
    import fcntl
except ImportError:  # pragma: no cover - fcntl unavailable on non-POSIX platforms
    fcntl = None

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1


class SingleInstanceError(RuntimeError):
    """Raised when another launcher session is already running."""


class ServiceInstanceLock:
    """File-lock based guard to enforce a single launcher session per host."""

    def __init__(self, runtime_dir: Path, name: str = "stack_launcher") -> None:
        self.runtime_dir = Path(runtime_dir)
        self.runtime_dir.mkdir(parents=True, exist_ok=True)
        self.lock_path = self.runtime_dir / f"{name}.lock"
        self._fd: Optional[int] = None
        self._released = False

    def acquire(self) -> None:
        """Attempt to acquire the lock; raises if already held."""

        if fcntl is None:  # pragma: no cover - non-POSIX platforms
            logger.debug("fcntl unavailable; single instance lock not enforced")
            return

        fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, 0o664)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as exc:
            existing_pid = None
            try:
                with os.fdopen(fd, "r") as fh:
                    existing_pid = fh.read().strip() or None
            except (OSError, ValueError):
                existing_pid = None
            suffix = f" (PID {existing_pid})." if existing_pid else "."
            raise SingleInstanceError("Another launcher session appears to be running" + suffix) from exc

        os.ftruncate(fd, 0)
        os.write(fd, str(os.getpid()).encode("utf-8"))
        os.fsync(fd)
        self._fd = fd

    def release(self) -> None:
        """Release the lock and clean up the lock file."""

        if self._released:
            return

        if self._fd is not None:
            try:
                if fcntl is not None:
                    fcntl.flock(self._fd, fcntl.LOCK_UN)
            finally:
                try:
                    os.close(self._fd)
                except OSError:
                    logger.debug("Lock descriptor already closed")
                self._fd = None
            try:
                self.lock_path.unlink(missing_ok=True)
            except OSError:
                logger.debug("Could not remove %s", self.lock_path)

        self._released = True


@contextmanager
def single_instance_guard(runtime_dir: Path):
    """Context manager enforcing one running launcher per host."""

    lock = ServiceInstanceLock(runtime_dir)
    lock.acquire()
    try:
        yield
    finally:
        lock.release()


def _build_session(
    config: LauncherConfig,
    orchestrator: Optional[StartupOrchestrator],
    interface: Optional[UserInterface],
) -> Tuple[StartupOrchestrator, UserInterface]:
    interface = interface or ConsoleInterface()
    if orchestrator is None:
        orchestrator = StartupOrchestrator(
            config,
            auth_gate=AuthenticationGate.from_config(config),
            on_ready=interface.show,
        )
    return orchestrator, interface


async def _run_session(
    config: LauncherConfig,
    *,
    orchestrator: Optional[StartupOrchestrator] = None,
    interface: Optional[UserInterface] = None,
) -> SessionState:
    orchestrator, interface = _build_session(config, orchestrator, interface)

    triggers = ShutdownTriggers(orchestrator.shutdown, request_quit=interface.close)
    triggers.install(asyncio.get_running_loop())
    startup = asyncio.ensure_future(orchestrator.run())
    closed = asyncio.ensure_future(interface.wait_closed())
    try:
        # A quit request while still starting abandons the remaining steps
        await asyncio.wait({startup, closed}, return_when=asyncio.FIRST_COMPLETED)
        if not startup.done():
            logger.info("Quit requested during %s", orchestrator.state.value)
            startup.cancel()
            await asyncio.wait({startup})
            return orchestrator.state

        state = startup.result()
        if state is SessionState.READY:
            await closed
        return state
    finally:
        for task in (startup, closed):
            if not task.done():
                task.cancel()
        orchestrator.shutdown.teardown(reason="quit")
        triggers.uninstall()


def run_launcher(
    config: LauncherConfig,
    *,
    orchestrator: Optional[StartupOrchestrator] = None,
    interface: Optional[UserInterface] = None,
    configure_logging: bool = True,
) -> int:
    """
    Run one launcher session and return the process exit status.

    Args:
        config: Session configuration
        orchestrator: Pre-built orchestrator (tests); built from ``config`` otherwise
        interface: User interface shown once the stack is ready
        configure_logging: Whether to install the session log handlers
    """

    try:
        with single_instance_guard(config.log_dir):
            if configure_logging:
                setup_logging(StackPaths.from_config(config).log_file)
            orchestrator, interface = _build_session(config, orchestrator, interface)
            try:
                state = asyncio.run(_run_session(config, orchestrator=orchestrator, interface=interface))
            except KeyboardInterrupt:
                logger.info("Launcher interrupted by user")
                orchestrator.shutdown.teardown(reason="interrupted")
                state = SessionState.READY if SessionState.READY in orchestrator.session.history else SessionState.FAILED
    except SingleInstanceError as exc:
        sys.stderr.write(f"{exc}\n")
        return EXIT_FAILED

    return EXIT_OK if state is SessionState.READY else EXIT_FAILED


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stack-launcher", description="Start the local database and API, then wait until quit.")
    parser.add_argument("--app-root", type=Path, help="Installation directory (default: $STACK_APP_ROOT or cwd)")
    parser.add_argument("--log-dir", type=Path, help="Directory for app.log (default: $STACK_LOG_DIR or ~/.stack_launcher)")
    parser.add_argument("--no-auth", action="store_true", help="Skip the authentication gate")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        config = LauncherConfig()
    except ConfigurationError as exc:
        sys.stderr.write(f"Configuration error: {exc}\n")
        return EXIT_FAILED

    if args.app_root is not None:
        config.app_root = args.app_root
    if args.log_dir is not None:
        config.log_dir = args.log_dir
    if args.no_auth:
        config.auth_check_command = ()
    return run_launcher(config)


__all__ = ["ServiceInstanceLock", "SingleInstanceError", "main", "run_launcher", "single_instance_guard"]
