"""State machine for one orchestration session."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional


class SessionState(str, Enum):
    """Startup sequence states."""

    INIT = "init"
    AUTH_CHECK = "auth_check"
    AUTH_INTERACTIVE = "auth_interactive"
    DEPENDENCY_INIT = "dependency_init"
    DEPENDENCY_STARTING = "dependency_starting"
    DEPENDENCY_READY = "dependency_ready"
    SERVICE_STARTING = "service_starting"
    READY = "ready"
    FAILED = "failed"


TERMINAL_STATES: FrozenSet[SessionState] = frozenset({SessionState.READY, SessionState.FAILED})

# FAILED is additionally reachable from every non-terminal state
_TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.INIT: frozenset({SessionState.AUTH_CHECK}),
    SessionState.AUTH_CHECK: frozenset({SessionState.DEPENDENCY_INIT, SessionState.AUTH_INTERACTIVE}),
    SessionState.AUTH_INTERACTIVE: frozenset({SessionState.DEPENDENCY_INIT}),
    SessionState.DEPENDENCY_INIT: frozenset({SessionState.DEPENDENCY_STARTING}),
    SessionState.DEPENDENCY_STARTING: frozenset({SessionState.DEPENDENCY_READY}),
    SessionState.DEPENDENCY_READY: frozenset({SessionState.SERVICE_STARTING}),
    SessionState.SERVICE_STARTING: frozenset({SessionState.READY}),
    SessionState.READY: frozenset(),
    SessionState.FAILED: frozenset(),
}


def is_allowed(current: SessionState, target: SessionState) -> bool:
    if current in TERMINAL_STATES:
        return False
    return target is SessionState.FAILED or target in _TRANSITIONS[current]


@dataclass
class OrchestrationSession:
    """Current state, the path taken so far, and the fatal error if any."""

    state: SessionState = SessionState.INIT
    history: List[SessionState] = field(default_factory=lambda: [SessionState.INIT])
    error: Optional[BaseException] = None

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, target: SessionState) -> None:
        """Move to ``target``; raises RuntimeError for transitions the sequence never makes."""
        if not is_allowed(self.state, target):
            raise RuntimeError(f"Illegal session transition {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)

    def fail(self, error: BaseException) -> None:
        self.error = error
        self.advance(SessionState.FAILED)


__all__ = ["OrchestrationSession", "SessionState", "TERMINAL_STATES", "is_allowed"]
