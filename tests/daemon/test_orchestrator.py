"""Tests for the startup handoff and shutdown state machine."""

from __future__ import annotations

import asyncio

import pytest

from nmcd.daemon.orchestrator import OrchestratorState, ServiceOrchestrator
from nmcd.daemon.service import ProcessServiceManager
from nmcd.utils.exceptions import EngineRuntimeError, EngineStartError, ServiceError
from tests.daemon.fakes import FakeEngine, FakeManager, make_backend, make_config

pytestmark = [pytest.mark.unit, pytest.mark.daemon]


@pytest.fixture
def config(defaults):
    return make_config(defaults)


async def wait_for_event(events: list[str], name: str) -> None:
    while name not in events:
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_premature_exit_skips_privileges_and_started(config):
    """Engine failing before it is ready propagates without notifying the manager."""
    events: list[str] = []
    backend, _ = make_backend(events, create_error=RuntimeError("bad listener"))
    manager = FakeManager(events)
    orchestrator = ServiceOrchestrator(config, manager, backend)

    with pytest.raises(EngineStartError):
        await orchestrator.run()

    assert "manager.drop_privileges" not in events
    assert "manager.set_started" not in events
    assert orchestrator.state is OrchestratorState.STOPPED


@pytest.mark.asyncio
async def test_manager_stop(config):
    """A manager stop request stops the engine and returns its outcome."""
    events: list[str] = []
    engine = FakeEngine(events)
    backend, store = make_backend(events, engine)
    manager = FakeManager(events)
    orchestrator = ServiceOrchestrator(config, manager, backend)

    run_task = asyncio.create_task(orchestrator.run())
    await wait_for_event(events, "manager.set_started")
    assert orchestrator.state is OrchestratorState.RUNNING

    manager.stop_event.set()
    await run_task

    assert engine.stop_calls == 1
    assert store.closed
    assert orchestrator.state is OrchestratorState.STOPPED
    assert events.index("manager.drop_privileges") < events.index("manager.set_started")
    assert events.index("manager.set_started") < events.index("engine.stop")


@pytest.mark.asyncio
async def test_manager_stop_returns_engine_error(config):
    events: list[str] = []
    engine = FakeEngine(events)
    engine.shutdown_error = RuntimeError("flush failed")
    backend, _ = make_backend(events, engine)
    manager = FakeManager(events)

    run_task = asyncio.create_task(ServiceOrchestrator(config, manager, backend).run())
    await wait_for_event(events, "manager.set_started")
    manager.stop_event.set()

    with pytest.raises(EngineRuntimeError, match="flush failed"):
        await run_task
    assert engine.stop_calls == 1


@pytest.mark.asyncio
async def test_spontaneous_exit_does_not_stop_engine(config):
    """The engine ending on its own is returned without a stop call."""
    events: list[str] = []
    engine = FakeEngine(events)
    backend, store = make_backend(events, engine)
    manager = FakeManager(events)
    orchestrator = ServiceOrchestrator(config, manager, backend)

    run_task = asyncio.create_task(orchestrator.run())
    await wait_for_event(events, "manager.set_started")
    engine.finish()
    await run_task

    assert engine.stop_calls == 0
    assert store.closed
    assert orchestrator.state is OrchestratorState.STOPPED


@pytest.mark.asyncio
async def test_spontaneous_exit_with_error(config):
    events: list[str] = []
    engine = FakeEngine(events)
    backend, _ = make_backend(events, engine)
    manager = FakeManager(events)

    run_task = asyncio.create_task(ServiceOrchestrator(config, manager, backend).run())
    await wait_for_event(events, "manager.set_started")
    engine.finish(RuntimeError("peer loop crashed"))

    with pytest.raises(EngineRuntimeError, match="peer loop crashed"):
        await run_task
    assert engine.stop_calls == 0


@pytest.mark.asyncio
async def test_engine_completion_wins_over_stop(config):
    """When both sources are ready the engine outcome is used and stop is not issued."""
    events: list[str] = []
    engine = FakeEngine(events)
    backend, _ = make_backend(events, engine)
    manager = FakeManager(events)

    run_task = asyncio.create_task(ServiceOrchestrator(config, manager, backend).run())
    await wait_for_event(events, "manager.set_started")
    engine.finish()
    await wait_for_event(events, "store.rollback_close")
    manager.stop_event.set()
    await run_task

    assert engine.stop_calls == 0


@pytest.mark.asyncio
async def test_privilege_drop_failure_stops_engine(config):
    events: list[str] = []
    engine = FakeEngine(events)
    backend, store = make_backend(events, engine)
    manager = FakeManager(events, drop_error=ServiceError("must be root"))
    orchestrator = ServiceOrchestrator(config, manager, backend)

    with pytest.raises(ServiceError, match="must be root"):
        await orchestrator.run()

    assert engine.stop_calls == 1
    assert store.closed
    assert "manager.set_started" not in events
    assert orchestrator.state is OrchestratorState.STOPPED


@pytest.mark.asyncio
async def test_set_started_failure_stops_engine(config):
    events: list[str] = []
    engine = FakeEngine(events)
    backend, store = make_backend(events, engine)
    manager = FakeManager(events, started_error=ServiceError("failed to write PID file"))
    orchestrator = ServiceOrchestrator(config, manager, backend)

    with pytest.raises(ServiceError, match="PID file"):
        await orchestrator.run()

    # Teardown is complete by the time run() raises
    assert engine.stop_calls == 1
    assert store.closed
    assert events[-3:] == ["engine.stop", "engine.shutdown", "store.rollback_close"]
    assert orchestrator.state is OrchestratorState.STOPPED


@pytest.mark.asyncio
async def test_unwritable_pid_file_stops_engine(config, tmp_path):
    events: list[str] = []
    engine = FakeEngine(events)
    backend, store = make_backend(events, engine)
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    manager = ProcessServiceManager(blocker / "nmcd.pid")
    orchestrator = ServiceOrchestrator(config, manager, backend)

    with pytest.raises(ServiceError, match="failed to write PID file"):
        await orchestrator.run()

    assert engine.stop_calls == 1
    assert store.closed
    assert not manager.started
