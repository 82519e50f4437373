"""
Startup orchestrator.

Drives the ordered startup sequence of one launcher session:

    auth gate -> initialize-if-needed -> start database -> await its port
    -> start api -> ready

Each step is awaited in turn. The first fatal error aborts the remaining
steps, is logged once, and triggers a full teardown through the
ShutdownCoordinator. Collaborators are injectable so the sequence can be
exercised without real executables.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Awaitable, Callable, Dict, Optional, Sequence

from .auth_gate import AuthenticationGate
from .database_init import ensure_database_initialized
from .exceptions import FATAL_STARTUP_ERRORS, AuthenticationFailure, SpawnError
from .host_bridge import HostInfo, build_host_info
from .launcher_config import LauncherConfig, StackPaths
from .process_handle import ManagedProcess, ServiceName, spawn_process, terminate_process
from .process_killer import kill_processes_by_executable
from .readiness import await_ready
from .session_state import OrchestrationSession, SessionState
from .shutdown import ShutdownCoordinator, Terminator

logger = logging.getLogger(__name__)

Spawner = Callable[..., ManagedProcess]
Prober = Callable[..., Awaitable[object]]
Initializer = Callable[..., Awaitable[bool]]
StaleSweep = Callable[[], object]
ReadyCallback = Callable[[HostInfo], None]


class StartupOrchestrator:
    """Owns the managed process handles and sequences the startup steps."""

    def __init__(
        self,
        config: LauncherConfig,
        paths: Optional[StackPaths] = None,
        *,
        auth_gate: Optional[AuthenticationGate] = None,
        spawner: Spawner = spawn_process,
        prober: Prober = await_ready,
        initializer: Initializer = ensure_database_initialized,
        stale_sweep: Optional[StaleSweep] = None,
        terminator: Terminator = terminate_process,
        on_ready: Optional[ReadyCallback] = None,
    ) -> None:
        self.config = config
        self.paths = paths or StackPaths.from_config(config)
        self.auth_gate = auth_gate
        self._spawner = spawner
        self._prober = prober
        self._initializer = initializer
        if stale_sweep is None:
            stale_sweep = partial(kill_processes_by_executable, self.paths.database_executable)
        self._stale_sweep = stale_sweep
        self._on_ready = on_ready

        self.session = OrchestrationSession()
        self.processes: Dict[ServiceName, ManagedProcess] = {}
        self.shutdown = ShutdownCoordinator(self.processes, terminator=terminator, sweep=stale_sweep)

    @property
    def state(self) -> SessionState:
        return self.session.state

    def _advance(self, state: SessionState) -> None:
        logger.debug("Session state: %s -> %s", self.session.state.value, state.value)
        self.session.advance(state)

    def _launch(self, name: ServiceName, executable, args: Sequence[str] = (), cwd=None) -> ManagedProcess:
        existing = self.processes.get(name)
        if existing is not None and existing.alive:
            raise SpawnError(f"{name.value} is already running (PID {existing.pid})", service=name.value)
        if self.shutdown.completed:
            raise SpawnError(f"Not starting {name.value}: shutdown in progress", service=name.value)

        handle = self._spawner(name, executable, args, cwd)
        self.processes[name] = handle
        return handle

    async def _authenticate(self) -> None:
        self._advance(SessionState.AUTH_CHECK)
        if self.auth_gate is None:
            logger.info("Authentication gate disabled")
            self._advance(SessionState.DEPENDENCY_INIT)
            return

        if await self.auth_gate.check_logged_in():
            self._advance(SessionState.DEPENDENCY_INIT)
            return

        logger.info("Not logged in, starting interactive login")
        self._advance(SessionState.AUTH_INTERACTIVE)
        if not await self.auth_gate.interactive_login():
            raise AuthenticationFailure("Login could not be confirmed after the login session closed")
        logger.info("Login confirmed")
        self._advance(SessionState.DEPENDENCY_INIT)

    async def _start_database(self) -> None:
        await self._initializer(self.paths, timeout_seconds=self.config.initialize_timeout_seconds)
        self._advance(SessionState.DEPENDENCY_STARTING)

        self._stale_sweep()
        logger.info("Starting database (background)")
        self._launch(
            ServiceName.DATABASE,
            self.paths.database_executable,
            (f"--defaults-file={self.paths.database_defaults_file}",),
            self.paths.database_bin,
        )
        await self._prober(
            self.config.database_host,
            self.config.database_port,
            timeout_seconds=self.config.readiness_timeout_seconds,
            poll_interval_seconds=self.config.poll_interval_seconds,
            connect_timeout_seconds=self.config.connect_timeout_seconds,
        )
        logger.info("Database is ready")
        self._advance(SessionState.DEPENDENCY_READY)

    def _start_api(self) -> None:
        self._advance(SessionState.SERVICE_STARTING)
        logger.info("Starting API: %s", self.paths.api_executable)
        self._launch(ServiceName.API, self.paths.api_executable, (), self.paths.app_root)

    async def run(self) -> SessionState:
        """
        Run the startup sequence to completion.

        Returns:
            SessionState.READY, or SessionState.FAILED after teardown
        """
        if self.session.state is not SessionState.INIT:
            raise RuntimeError("An orchestration session runs only once")

        logger.info("Application starting")
        try:
            await self._authenticate()
            await self._start_database()
            self._start_api()
        except FATAL_STARTUP_ERRORS + (OSError,) as exc:
            self._fail(exc)
            return self.session.state
        except asyncio.CancelledError as exc:
            logger.info("Startup cancelled during %s", self.session.state.value)
            self.session.fail(exc)
            raise
        except Exception as exc:
            self._fail(exc)
            raise

        self._advance(SessionState.READY)
        if self._on_ready is not None:
            self._on_ready(build_host_info())
        return self.session.state

    def _fail(self, exc: BaseException) -> None:
        logger.error("Startup failed: %s", exc)
        self.session.fail(exc)
        self.shutdown.teardown(reason="startup failed")


__all__ = ["StartupOrchestrator"]
