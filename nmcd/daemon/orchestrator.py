"""Startup handoff and graceful shutdown between the engine and the service manager."""

from __future__ import annotations

import asyncio
from enum import Enum

from nmcd.daemon.engine import Engine, EngineBackend, run_engine
from nmcd.daemon.service import ServiceManager
from nmcd.models import EffectiveConfig
from nmcd.utils.exceptions import ServiceError
from nmcd.utils.logging_config import get_logger

logger = get_logger(__name__)


class OrchestratorState(str, Enum):
    """Lifecycle states of the orchestrator."""

    STARTING = "starting"
    RUNNING = "running"
    STOPPING_BY_MANAGER = "stopping_by_manager"
    STOPPING_SPONTANEOUSLY = "stopping_spontaneously"
    STOPPED = "stopped"


class ServiceOrchestrator:
    """Bridge the engine lifecycle to a service manager.

    The engine runs in its own task.  Once it reports ready, privileges are
    dropped and the manager is told the service started; afterwards either
    a stop request from the manager or the engine finishing on its own ends
    the run.  The engine's outcome is the outcome of ``run()``.
    """

    def __init__(
        self,
        config: EffectiveConfig,
        manager: ServiceManager,
        backend: EngineBackend,
    ):
        """Initialize orchestrator.

        Args:
            config: Effective daemon configuration
            manager: Service manager receiving lifecycle notifications
            backend: Block store and engine factories

        """
        self.config = config
        self.manager = manager
        self.backend = backend
        self.state = OrchestratorState.STARTING

    async def run(self) -> None:
        """Run the engine until it stops.

        Raises:
            EngineError: The engine failed to start or failed while running
            ServiceError: Privileges could not be dropped or startup could
                not be reported to the service manager

        """
        loop = asyncio.get_running_loop()
        ready: asyncio.Future[Engine] = loop.create_future()
        engine_task = asyncio.create_task(
            run_engine(self.config, self.backend, ready), name="nmcd-engine"
        )

        try:
            await asyncio.wait({ready, engine_task}, return_when=asyncio.FIRST_COMPLETED)
            if not ready.done():
                logger.debug("Engine exited before it was ready")
                self.state = OrchestratorState.STOPPED
                engine_task.result()
                return

            engine = ready.result()
            self.state = OrchestratorState.RUNNING

            try:
                self.manager.drop_privileges()
            except ServiceError:
                logger.exception("Failed to drop privileges, stopping engine")
                await self._abort(engine, engine_task)
                raise

            try:
                self.manager.set_started()
            except ServiceError:
                logger.exception("Failed to report startup, stopping engine")
                await self._abort(engine, engine_task)
                raise

            await self._wait_for_stop(engine, engine_task)
        finally:
            self.state = OrchestratorState.STOPPED
            if not engine_task.done():
                engine_task.cancel()
                await asyncio.gather(engine_task, return_exceptions=True)

    async def _abort(self, engine: Engine, engine_task: asyncio.Task[None]) -> None:
        self.state = OrchestratorState.STOPPING_BY_MANAGER
        engine.stop()
        await asyncio.gather(engine_task, return_exceptions=True)

    async def _wait_for_stop(self, engine: Engine, engine_task: asyncio.Task[None]) -> None:
        stop_waiter = asyncio.create_task(
            self.manager.wait_for_stop(), name="nmcd-stop-waiter"
        )
        try:
            await asyncio.wait(
                {stop_waiter, engine_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if not stop_waiter.done():
                stop_waiter.cancel()
            await asyncio.gather(stop_waiter, return_exceptions=True)

        # Engine completion wins when both are ready
        if engine_task.done():
            self.state = OrchestratorState.STOPPING_SPONTANEOUSLY
            logger.info("Engine stopped on its own")
        else:
            self.state = OrchestratorState.STOPPING_BY_MANAGER
            if not stop_waiter.cancelled() and stop_waiter.exception() is not None:
                logger.warning(
                    "Service manager stop wait failed: %s", stop_waiter.exception()
                )
            logger.info("Stop requested, shutting down engine")
            engine.stop()

        await engine_task
