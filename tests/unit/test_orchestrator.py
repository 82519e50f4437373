import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from stack_launcher.exceptions import InitializationError, ReadinessTimeout, SpawnError
from stack_launcher.logging_config import ERROR_PREFIX, setup_logging
from stack_launcher.orchestrator import StartupOrchestrator
from stack_launcher.process_handle import ServiceName
from stack_launcher.readiness import await_ready
from stack_launcher.session_state import SessionState
from tests.helpers.launcher_fakes import RecordingSpawner, RecordingTerminator, free_port


def _gate(logged_in: bool, login_result: bool = False):
    gate = MagicMock()
    gate.check_logged_in = AsyncMock(return_value=logged_in)
    gate.interactive_login = AsyncMock(return_value=login_result)
    return gate


def _orchestrator(config, paths, **kwargs):
    kwargs.setdefault("spawner", RecordingSpawner())
    kwargs.setdefault("prober", AsyncMock(return_value=1))
    kwargs.setdefault("initializer", AsyncMock(return_value=False))
    kwargs.setdefault("stale_sweep", MagicMock())
    kwargs.setdefault("terminator", RecordingTerminator())
    return StartupOrchestrator(config, paths, **kwargs)


@pytest.mark.asyncio
async def test_scenario_a_reaches_ready_after_port_opens(launcher_config, stack_paths):
    """Marker absent, port opens late, already logged in."""
    launcher_config.database_port = free_port()
    launcher_config.readiness_timeout_seconds = 5.0
    init_command = AsyncMock()

    async def initializer(paths, *, timeout_seconds):
        assert not paths.system_db_marker.exists()
        await init_command()
        return True

    async def open_later():
        await asyncio.sleep(0.4)
        return await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", launcher_config.database_port)

    spawner = RecordingSpawner()
    gate = _gate(logged_in=True)
    on_ready = MagicMock()
    orchestrator = StartupOrchestrator(
        launcher_config,
        stack_paths,
        auth_gate=gate,
        spawner=spawner,
        initializer=initializer,
        stale_sweep=MagicMock(),
        terminator=RecordingTerminator(),
        on_ready=on_ready,
    )

    opener = asyncio.ensure_future(open_later())
    try:
        state = await orchestrator.run()
    finally:
        server = await opener
        server.close()
        await server.wait_closed()

    assert state is SessionState.READY
    assert init_command.await_count == 1
    assert spawner.names() == [ServiceName.DATABASE, ServiceName.API]
    gate.interactive_login.assert_not_awaited()
    on_ready.assert_called_once()
    assert orchestrator.session.history == [
        SessionState.INIT,
        SessionState.AUTH_CHECK,
        SessionState.DEPENDENCY_INIT,
        SessionState.DEPENDENCY_STARTING,
        SessionState.DEPENDENCY_READY,
        SessionState.SERVICE_STARTING,
        SessionState.READY,
    ]


@pytest.mark.asyncio
async def test_scenario_b_readiness_timeout_fails_and_tears_down(launcher_config, stack_paths, restore_root_logging):
    """Port never opens: FAILED, one ERROR line, database torn down."""
    launcher_config.database_port = free_port()
    setup_logging(stack_paths.log_file, console=False)
    spawner = RecordingSpawner()
    terminator = RecordingTerminator()
    orchestrator = _orchestrator(launcher_config, stack_paths, spawner=spawner, terminator=terminator, prober=await_ready)

    state = await orchestrator.run()
    for handler in restore_root_logging.handlers:
        handler.flush()

    assert state is SessionState.FAILED
    assert isinstance(orchestrator.session.error, ReadinessTimeout)
    assert spawner.names() == [ServiceName.DATABASE]
    assert terminator.terminated == [ServiceName.DATABASE]
    assert orchestrator.shutdown.completed
    assert orchestrator.processes == {}

    error_lines = [line for line in stack_paths.log_file.read_text().splitlines() if ERROR_PREFIX in line]
    assert len(error_lines) == 1
    assert "timeout" in error_lines[0].lower()


@pytest.mark.asyncio
async def test_logged_in_never_invokes_interactive_login(launcher_config, stack_paths):
    gate = _gate(logged_in=True)
    orchestrator = _orchestrator(launcher_config, stack_paths, auth_gate=gate)

    assert await orchestrator.run() is SessionState.READY
    gate.check_logged_in.assert_awaited_once()
    gate.interactive_login.assert_not_awaited()


@pytest.mark.asyncio
async def test_confirmed_interactive_login_continues(launcher_config, stack_paths):
    gate = _gate(logged_in=False, login_result=True)
    orchestrator = _orchestrator(launcher_config, stack_paths, auth_gate=gate)

    assert await orchestrator.run() is SessionState.READY
    assert SessionState.AUTH_INTERACTIVE in orchestrator.session.history


@pytest.mark.asyncio
async def test_unconfirmed_login_fails_before_database(launcher_config, stack_paths, caplog):
    gate = _gate(logged_in=False, login_result=False)
    spawner = RecordingSpawner()
    initializer = AsyncMock()
    orchestrator = _orchestrator(launcher_config, stack_paths, auth_gate=gate, spawner=spawner, initializer=initializer)

    with caplog.at_level(logging.INFO):
        state = await orchestrator.run()

    assert state is SessionState.FAILED
    assert orchestrator.session.history[-2] is SessionState.AUTH_INTERACTIVE
    assert spawner.calls == []
    initializer.assert_not_awaited()
    assert orchestrator.shutdown.completed
    assert [r for r in caplog.records if r.levelno >= logging.ERROR][0].message.startswith("Startup failed")


@pytest.mark.asyncio
async def test_no_gate_goes_straight_to_initialization(launcher_config, stack_paths):
    orchestrator = _orchestrator(launcher_config, stack_paths, auth_gate=None)

    assert await orchestrator.run() is SessionState.READY
    assert orchestrator.session.history[1:3] == [SessionState.AUTH_CHECK, SessionState.DEPENDENCY_INIT]


@pytest.mark.asyncio
async def test_initialization_failure_aborts_before_spawn(launcher_config, stack_paths):
    spawner = RecordingSpawner()
    initializer = AsyncMock(side_effect=InitializationError("exit 1"))
    orchestrator = _orchestrator(launcher_config, stack_paths, spawner=spawner, initializer=initializer)

    assert await orchestrator.run() is SessionState.FAILED
    assert orchestrator.session.history[-2] is SessionState.DEPENDENCY_INIT
    assert spawner.calls == []


@pytest.mark.asyncio
async def test_database_spawn_failure_fails(launcher_config, stack_paths):
    spawner = RecordingSpawner(fail_for=ServiceName.DATABASE, error=SpawnError("mysqld missing"))
    prober = AsyncMock()
    orchestrator = _orchestrator(launcher_config, stack_paths, spawner=spawner, prober=prober)

    assert await orchestrator.run() is SessionState.FAILED
    assert orchestrator.session.history[-2] is SessionState.DEPENDENCY_STARTING
    prober.assert_not_awaited()


@pytest.mark.asyncio
async def test_api_spawn_failure_tears_down_database(launcher_config, stack_paths):
    spawner = RecordingSpawner(fail_for=ServiceName.API, error=SpawnError("api missing"))
    terminator = RecordingTerminator()
    orchestrator = _orchestrator(launcher_config, stack_paths, spawner=spawner, terminator=terminator)

    assert await orchestrator.run() is SessionState.FAILED
    assert terminator.terminated == [ServiceName.DATABASE]


@pytest.mark.asyncio
async def test_database_spawned_with_defaults_file_from_bin_dir(launcher_config, stack_paths):
    spawner = RecordingSpawner()
    sweep = MagicMock()
    orchestrator = _orchestrator(launcher_config, stack_paths, spawner=spawner, stale_sweep=sweep)

    await orchestrator.run()

    name, executable, args, cwd = spawner.calls[0]
    assert executable == stack_paths.database_executable
    assert args == (f"--defaults-file={stack_paths.database_defaults_file}",)
    assert cwd == stack_paths.database_bin
    sweep.assert_called_once_with()


@pytest.mark.asyncio
async def test_no_spawn_once_shutdown_has_run(launcher_config, stack_paths):
    spawner = RecordingSpawner()
    orchestrator = _orchestrator(launcher_config, stack_paths, spawner=spawner)
    orchestrator.shutdown.teardown()

    assert await orchestrator.run() is SessionState.FAILED
    assert spawner.calls == []


@pytest.mark.asyncio
async def test_session_runs_only_once(launcher_config, stack_paths):
    orchestrator = _orchestrator(launcher_config, stack_paths)
    await orchestrator.run()

    with pytest.raises(RuntimeError):
        await orchestrator.run()


@pytest.mark.asyncio
async def test_unexpected_error_fails_tears_down_and_propagates(launcher_config, stack_paths, caplog):
    terminator = RecordingTerminator()
    orchestrator = _orchestrator(
        launcher_config, stack_paths, prober=AsyncMock(side_effect=ValueError("bad probe")), terminator=terminator
    )

    with caplog.at_level(logging.ERROR), pytest.raises(ValueError):
        await orchestrator.run()

    assert orchestrator.state is SessionState.FAILED
    assert orchestrator.shutdown.reason == "startup failed"
    assert terminator.terminated == [ServiceName.DATABASE]
    assert any("Startup failed: bad probe" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_cancelled_startup_records_failed(launcher_config, stack_paths):
    probing = asyncio.Event()

    async def hanging_prober(*_args, **_kwargs):
        probing.set()
        await asyncio.Event().wait()

    orchestrator = _orchestrator(launcher_config, stack_paths, prober=hanging_prober)
    task = asyncio.ensure_future(orchestrator.run())
    await probing.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert orchestrator.state is SessionState.FAILED
    assert orchestrator.session.history[-2] is SessionState.DEPENDENCY_STARTING
