"""Connection-only readiness probing for locally spawned servers."""

from __future__ import annotations

import asyncio
import logging
import time

from .exceptions import ReadinessTimeout

logger = logging.getLogger(__name__)

# Floor for the per-attempt timeout once the deadline is close
MIN_ATTEMPT_TIMEOUT_SECONDS = 0.05


async def attempt_connection(host: str, port: int, timeout_seconds: float) -> bool:
    """Open and immediately close a TCP connection; True if it was accepted."""
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout_seconds)
    except (OSError, asyncio.TimeoutError):
        return False

    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True


async def await_ready(
    host: str,
    port: int,
    *,
    timeout_seconds: float,
    poll_interval_seconds: float,
    connect_timeout_seconds: float = 1.0,
) -> int:
    """
    Poll ``host:port`` until it accepts a connection.

    A refused or timed-out attempt is retried after ``poll_interval_seconds``.
    Each attempt is bounded by ``connect_timeout_seconds`` and by the time left
    before the deadline, so the overall wait never exceeds the deadline by more
    than one poll interval. No data is exchanged with the server.

    Args:
        host: Host to probe
        port: TCP port to probe
        timeout_seconds: Overall deadline measured from the first attempt
        poll_interval_seconds: Pause between failed attempts
        connect_timeout_seconds: Timeout of a single connection attempt

    Returns:
        Number of connection attempts made

    Raises:
        ReadinessTimeout: If the port did not open before the deadline
    """
    started = time.monotonic()
    deadline = started + timeout_seconds
    attempts = 0

    while True:
        attempts += 1
        remaining = deadline - time.monotonic()
        attempt_timeout = min(connect_timeout_seconds, max(remaining, MIN_ATTEMPT_TIMEOUT_SECONDS))
        if await attempt_connection(host, port, attempt_timeout):
            logger.debug("%s:%s accepted a connection after %d attempt(s)", host, port, attempts)
            return attempts

        elapsed = time.monotonic() - started
        if elapsed >= timeout_seconds:
            raise ReadinessTimeout(
                f"Startup timeout: {host}:{port} not accepting connections after {timeout_seconds:g}s",
                host=host,
                port=port,
                timeout_seconds=timeout_seconds,
                attempts=attempts,
            )
        await asyncio.sleep(min(poll_interval_seconds, timeout_seconds - elapsed))


__all__ = ["MIN_ATTEMPT_TIMEOUT_SECONDS", "attempt_connection", "await_ready"]
