"""nmcd command line entry point."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Sequence

from rich.console import Console
from rich.markup import escape

from nmcd.config.config import ConfigResolver
from nmcd.config.defaults import APP_NAME, ConfigDefaults
from nmcd.daemon.engine import load_engine_backend
from nmcd.daemon.limits import set_limits
from nmcd.daemon.orchestrator import ServiceOrchestrator
from nmcd.daemon.service import ProcessServiceManager, run_service_command
from nmcd.models import EffectiveConfig
from nmcd.utils.exceptions import ConfigError, EarlyExit, NmcdError
from nmcd.utils.logging_config import get_logger, setup_logging

logger = get_logger(__name__)

console = Console(stderr=True)


async def serve(config: EffectiveConfig) -> None:
    """Run the daemon under a process service manager until it stops."""
    backend = load_engine_backend(config.engine)
    manager = ProcessServiceManager(config.pid_file or None, config.uid, config.gid)
    manager.install_signal_handlers()
    try:
        await ServiceOrchestrator(config, manager, backend).run()
    finally:
        manager.remove_signal_handlers()
        if manager.started:
            manager.remove_pid()


def main(argv: Sequence[str] | None = None, defaults: ConfigDefaults | None = None) -> int:
    """Resolve configuration and run the daemon.

    Returns:
        Process exit code

    """
    if argv is None:
        argv = sys.argv[1:]

    resolver = ConfigResolver(defaults, service_command_runner=run_service_command)
    try:
        config, _args = resolver.resolve(argv)
    except EarlyExit as e:
        return e.code
    except ConfigError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        console.print(resolver.usage_message)
        return 1
    except NmcdError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1

    try:
        setup_logging(config.debug_level.value, config.log_dir)
    except OSError as e:
        console.print(f"[red]Error: unable to set up logging: {escape(str(e))}[/red]")
        return 1

    logger.info("Starting %s on %s", APP_NAME, config.net.name)
    try:
        set_limits()
        asyncio.run(serve(config))
    except NmcdError:
        logger.exception("%s exited with an error", APP_NAME)
        return 1
    except KeyboardInterrupt:
        return 0
    return 0


def run() -> None:
    """Console script entry point."""
    sys.exit(main())
