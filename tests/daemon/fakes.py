"""Fake engines, block stores and service managers for daemon tests."""

from __future__ import annotations

import asyncio

from nmcd.config.config import ConfigResolver
from nmcd.daemon.engine import EngineBackend


class FakeStore:
    """Block store recording whether it was closed."""

    def __init__(self, events: list[str]):
        self.events = events
        self.closed = False

    def rollback_close(self) -> None:
        self.closed = True
        self.events.append("store.rollback_close")


class FakeEngine:
    """Engine that runs until stop() is called or finish() ends it."""

    def __init__(self, events: list[str], start_error: Exception | None = None):
        self.events = events
        self.start_error = start_error
        self.stop_calls = 0
        self.shutdown_error: Exception | None = None
        self._done = asyncio.Event()

    def start(self) -> None:
        self.events.append("engine.start")
        if self.start_error is not None:
            raise self.start_error

    def stop(self) -> None:
        self.stop_calls += 1
        self.events.append("engine.stop")
        self._done.set()

    def finish(self, error: Exception | None = None) -> None:
        """End the engine on its own, optionally with an error."""
        self.shutdown_error = error
        self._done.set()

    async def wait_for_shutdown(self) -> None:
        await self._done.wait()
        self.events.append("engine.shutdown")
        if self.shutdown_error is not None:
            raise self.shutdown_error


class FakeManager:
    """Service manager recording the calls it receives."""

    def __init__(
        self,
        events: list[str],
        drop_error: Exception | None = None,
        started_error: Exception | None = None,
    ):
        self.events = events
        self.drop_error = drop_error
        self.started_error = started_error
        self.stop_event = asyncio.Event()

    def drop_privileges(self) -> None:
        self.events.append("manager.drop_privileges")
        if self.drop_error is not None:
            raise self.drop_error

    def set_started(self) -> None:
        self.events.append("manager.set_started")
        if self.started_error is not None:
            raise self.started_error

    async def wait_for_stop(self) -> None:
        await self.stop_event.wait()


def make_backend(
    events: list[str],
    engine: FakeEngine | None = None,
    store_error: Exception | None = None,
    create_error: Exception | None = None,
) -> tuple[EngineBackend, FakeStore]:
    store = FakeStore(events)

    def open_block_store(_config):
        events.append("store.open")
        if store_error is not None:
            raise store_error
        return store

    def create_engine(_config, _store):
        events.append("engine.create")
        if create_error is not None:
            raise create_error
        return engine

    return EngineBackend(open_block_store, create_engine), store


def make_config(defaults, argv=()):
    config, _ = ConfigResolver(defaults, lookup_host=lambda _h: ["127.0.0.1"]).resolve(
        list(argv)
    )
    return config
