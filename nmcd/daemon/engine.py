"""Node engine boundary and the engine run-to-completion task.

The p2p engine and the block store are opaque to nmcd.  A backend module
named with ``--engine`` supplies them through two factories::

    def open_block_store(config: EffectiveConfig) -> BlockStore: ...
    def create_engine(config: EffectiveConfig, store: BlockStore) -> Engine: ...
"""

from __future__ import annotations

import asyncio
import importlib
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from nmcd.models import EffectiveConfig
from nmcd.utils.exceptions import (
    EngineError,
    EngineRuntimeError,
    EngineStartError,
    NmcdError,
)
from nmcd.utils.logging_config import get_logger

logger = get_logger(__name__)


class BlockStore(Protocol):
    """Block database handle."""

    def rollback_close(self) -> None:
        """Discard uncommitted state and close the store."""


class Engine(Protocol):
    """Running node engine."""

    def start(self) -> None:
        """Begin serving peers and RPC clients."""

    def stop(self) -> None:
        """Ask the engine to shut down; returns immediately."""

    async def wait_for_shutdown(self) -> None:
        """Block until the engine has fully stopped."""


OpenBlockStore = Callable[[EffectiveConfig], BlockStore]
CreateEngine = Callable[[EffectiveConfig, BlockStore], Engine]


@dataclass(frozen=True)
class EngineBackend:
    """Factories for the block store and the engine."""

    open_block_store: OpenBlockStore
    create_engine: CreateEngine


def load_engine_backend(module_path: str) -> EngineBackend:
    """Import an engine backend module.

    Args:
        module_path: Dotted import path of the backend module

    Returns:
        The backend factories

    Raises:
        EngineStartError: If no module is configured, it cannot be imported
            or it lacks one of the factories

    """
    if not module_path:
        msg = "no engine configured -- use --engine to name a backend module"
        raise EngineStartError(msg)

    try:
        module = importlib.import_module(module_path)
    except ImportError as e:
        msg = f"Failed to load engine backend '{module_path}': {e}"
        raise EngineStartError(msg, {"module": module_path}) from e

    missing = [
        name
        for name in ("open_block_store", "create_engine")
        if not callable(getattr(module, name, None))
    ]
    if missing:
        msg = f"Engine backend '{module_path}' does not provide {', '.join(missing)}"
        raise EngineStartError(msg, {"module": module_path})

    logger.debug("Loaded engine backend %s", module_path)
    return EngineBackend(
        open_block_store=module.open_block_store,
        create_engine=module.create_engine,
    )


async def run_engine(
    config: EffectiveConfig,
    backend: EngineBackend,
    ready: asyncio.Future[Engine],
) -> None:
    """Run the engine from database open to database close.

    The started engine is handed over through ``ready``; the coroutine then
    waits for the engine to shut down and finally rolls back and closes
    the block store.

    Raises:
        EngineStartError: If the store or the engine could not be started
        EngineRuntimeError: If the engine failed while running

    """
    try:
        store = backend.open_block_store(config)
    except NmcdError:
        raise
    except Exception as e:
        logger.error("%s", e)
        msg = f"unable to open block database: {e}"
        raise EngineStartError(msg, {"db_type": config.db_type}) from e

    try:
        try:
            engine = backend.create_engine(config, store)
            engine.start()
        except EngineError:
            raise
        except Exception as e:
            logger.error("Unable to start server on %s: %s", list(config.listeners), e)
            msg = f"unable to start engine: {e}"
            raise EngineStartError(msg) from e

        if not ready.done():
            ready.set_result(engine)

        try:
            await engine.wait_for_shutdown()
        except EngineError:
            raise
        except Exception as e:
            msg = f"engine stopped with an error: {e}"
            raise EngineRuntimeError(msg) from e
        logger.info("Server shutdown complete")
    finally:
        logger.info("Gracefully shutting down the database...")
        store.rollback_close()
        logger.info("Shutdown complete")
