"""
Shutdown coordinator.

A single teardown routine stops the managed services in reverse start order
(api, then database) and finally sweeps stray database processes. Every
termination trigger converges on it:

- explicit quit (UI closed, SIGINT/SIGTERM)
- uncaught exceptions (``sys.excepthook`` and ``threading.excepthook``)
- unobserved asyncio task failures (loop exception handler)
- interpreter exit (``atexit``)

teardown runs at most once per session and never raises.
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import signal
import sys
import threading
from typing import Any, Callable, Dict, List, MutableMapping, Optional, Tuple

from .process_handle import ManagedProcess, ServiceName, terminate_process

logger = logging.getLogger(__name__)

TEARDOWN_ORDER: Tuple[ServiceName, ...] = (ServiceName.API, ServiceName.DATABASE)

Terminator = Callable[[Optional[ManagedProcess]], object]
Sweep = Callable[[], object]


class ShutdownCoordinator:
    """Idempotent, error-swallowing teardown of the tracked processes."""

    def __init__(
        self,
        processes: MutableMapping[ServiceName, ManagedProcess],
        *,
        terminator: Terminator = terminate_process,
        sweep: Optional[Sweep] = None,
    ) -> None:
        self._processes = processes
        self._terminator = terminator
        self._sweep = sweep
        # Reentrant so a signal delivered mid-check on the same thread cannot deadlock
        self._lock = threading.RLock()
        self._started = False
        self.reason: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self._started

    def teardown(self, reason: str = "quit") -> bool:
        """
        Stop all tracked processes.

        Returns:
            True if this call performed the teardown, False if it had already run
        """
        with self._lock:
            if self._started:
                return False
            self._started = True
            self.reason = reason

        logger.info("Application shutting down (%s)", reason)
        for name in TEARDOWN_ORDER:
            handle = self._processes.pop(name, None)
            if handle is None:
                continue
            try:
                self._terminator(handle)
            except Exception as exc:
                logger.warning("Kill %s skipped: %s", name.value, exc)

        if self._sweep is not None:
            try:
                self._sweep()
            except Exception as exc:
                logger.warning("Stale process sweep skipped: %s", exc)
        return True


class ShutdownTriggers:
    """Registers a coordinator with every termination trigger source."""

    def __init__(
        self,
        coordinator: ShutdownCoordinator,
        *,
        request_quit: Optional[Callable[[], None]] = None,
    ) -> None:
        self.coordinator = coordinator
        self.request_quit = request_quit
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._previous_excepthook: Optional[Callable[..., Any]] = None
        self._previous_threading_hook: Optional[Callable[..., Any]] = None
        self._previous_loop_handler: Optional[Callable[..., Any]] = None
        self._signals: List[int] = []
        self._installed = False

    def _quit(self) -> None:
        if self.request_quit is not None:
            self.request_quit()

    def _on_signal(self, signum: int) -> None:
        logger.info("Received %s, quitting", signal.Signals(signum).name)
        self.coordinator.teardown(reason=f"signal {signal.Signals(signum).name}")
        self._quit()

    def _excepthook(self, exc_type, exc_value, exc_traceback) -> None:
        logger.error("Uncaught exception: %s", exc_value)
        self.coordinator.teardown(reason="uncaught exception")
        hook = self._previous_excepthook or sys.__excepthook__
        hook(exc_type, exc_value, exc_traceback)

    def _threading_excepthook(self, args: threading.ExceptHookArgs) -> None:
        if args.exc_type is SystemExit:
            return
        logger.error("Uncaught exception in thread %s: %s", getattr(args.thread, "name", "?"), args.exc_value)
        self.coordinator.teardown(reason="uncaught exception")
        if self._previous_threading_hook is not None:
            self._previous_threading_hook(args)

    def _loop_exception_handler(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exc = context.get("exception")
        if exc is None:
            logger.warning("Event loop error: %s", context.get("message"))
            return
        logger.error("Unhandled rejection: %s", exc)
        self.coordinator.teardown(reason="unhandled rejection")
        self._quit()

    def install(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Register with every trigger source available on this platform."""
        if self._installed:
            return
        self._installed = True

        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._excepthook
        self._previous_threading_hook = threading.excepthook
        threading.excepthook = self._threading_excepthook
        atexit.register(self.coordinator.teardown, "exit")

        if loop is None:
            return
        self._loop = loop
        self._previous_loop_handler = loop.get_exception_handler()
        loop.set_exception_handler(self._loop_exception_handler)
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self._on_signal, signum)
            except (NotImplementedError, RuntimeError, ValueError):
                # Windows event loops and non-main threads have no signal handlers
                logger.debug("Signal handler for %s not available", signum)
                continue
            self._signals.append(signum)

    def uninstall(self) -> None:
        """Restore the hooks that were in place before install."""
        if not self._installed:
            return
        self._installed = False

        sys.excepthook = self._previous_excepthook or sys.__excepthook__
        threading.excepthook = self._previous_threading_hook or threading.__excepthook__
        atexit.unregister(self.coordinator.teardown)

        if self._loop is not None and not self._loop.is_closed():
            self._loop.set_exception_handler(self._previous_loop_handler)
            for signum in self._signals:
                self._loop.remove_signal_handler(signum)
        self._signals.clear()
        self._loop = None


__all__ = ["ShutdownCoordinator", "ShutdownTriggers", "TEARDOWN_ORDER"]
