"""Audio monitor entry point.

Runs one supervisor under the signal manager and prints every event as a JSON
line on stdout until the device process exits or the host is asked to stop.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from typing import TextIO

from .config import Config, get_config
from .events import MonitorEvent
from .runtime.supervisor import ProcessSupervisor, SupervisorOptions
from .signal_manager import SignalManager

__all__ = ["run_monitor", "main"]

logger = logging.getLogger(__name__)


async def run_monitor(
    config: Config | None = None,
    output: TextIO | None = None,
    options: SupervisorOptions | None = None,
) -> int:
    """Supervise the device executable until it exits or a signal arrives.

    Args:
        config: Configuration (default: environment)
        output: Where event lines are written (default: stdout)
        options: Launch options overriding those derived from config

    Returns:
        Exit status for the hosting program
    """
    config = config or get_config()
    output = output or sys.stdout
    logger.info(f"Starting audio monitor: {config}")

    supervisor = ProcessSupervisor(options or SupervisorOptions.from_config(config))

    def print_event(event: MonitorEvent) -> None:
        output.write(event.model_dump_json() + "\n")
        output.flush()

    supervisor.events.subscribe_all(print_event)

    signal_manager = SignalManager(
        [supervisor],
        double_tap_window=config.signal_double_tap_window,
    )
    waiters: list[asyncio.Task] = []

    try:
        await signal_manager.start()

        if not await supervisor.start():
            return 1

        waiters = [
            asyncio.create_task(signal_manager.wait_for_shutdown(), name="shutdown-watcher"),
            asyncio.create_task(supervisor.wait_terminated(), name="exit-watcher"),
        ]
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

    finally:
        for task in waiters:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        await supervisor.shutdown()
        await signal_manager.stop()
        logger.info("run_monitor: cleanup completed")

    if signal_manager.is_force_exit:
        logger.warning("Force exit requested, terminating with exit code 130")
        return 130

    exit_event = supervisor.last_exit
    if exit_event is None or signal_manager.is_shutdown_requested:
        return 0
    return exit_event.code if exit_event.code is not None else 1


def main() -> None:
    """Console entry point."""
    config = get_config()

    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        # stdout carries the event stream, so logs go to stderr
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("audio_monitor").setLevel(log_level)

    sys.exit(asyncio.run(run_monitor(config)))


if __name__ == "__main__":
    main()
