"""Host signal handling.

Turns the hosting program's SIGINT/SIGTERM into the supervisors' own shutdown
path:
- First signal: graceful shutdown of every registered supervisor, then the
  shutdown event is set so the host can exit
- Second signal within the double-tap window: hard kill of every supervisor

Supervisors are registered explicitly; they never install handlers
themselves, so several of them can live in one program.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
from collections.abc import Iterable
from typing import Optional

from .config import get_config
from .runtime.supervisor import ProcessSupervisor, SupervisorState

__all__ = ["SignalManager"]

logger = logging.getLogger(__name__)


class SignalManager:
    """Delegates host termination signals to registered supervisors.

    Example:
        ```python
        manager = SignalManager([supervisor])

        async def main():
            await manager.start()
            try:
                await manager.wait_for_shutdown()
            finally:
                await manager.stop()

        asyncio.run(main())
        ```

    Attributes:
        double_tap_window: Seconds in which a second signal forces a kill
    """

    def __init__(
        self,
        supervisors: Iterable[ProcessSupervisor] = (),
        double_tap_window: Optional[float] = None,
    ) -> None:
        self._supervisors: list[ProcessSupervisor] = list(supervisors)

        config = get_config()
        self.double_tap_window = (
            double_tap_window if double_tap_window is not None else config.signal_double_tap_window
        )

        self._last_signal_time: float = 0.0
        self._shutdown_requested: bool = False
        self._force_exit: bool = False
        self._shutdown_event: Optional[asyncio.Event] = None
        self._shutdown_task: Optional[asyncio.Task[None]] = None
        self._original_sigint_handler: Optional[signal.Handlers] = None
        self._running: bool = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def supervisors(self) -> list[ProcessSupervisor]:
        return list(self._supervisors)

    @property
    def is_shutdown_requested(self) -> bool:
        return self._shutdown_requested

    @property
    def is_force_exit(self) -> bool:
        """Whether a second signal forced an immediate kill."""
        return self._force_exit

    def register(self, supervisor: ProcessSupervisor) -> None:
        if supervisor not in self._supervisors:
            self._supervisors.append(supervisor)

    def unregister(self, supervisor: ProcessSupervisor) -> bool:
        if supervisor in self._supervisors:
            self._supervisors.remove(supervisor)
            return True
        return False

    async def start(self) -> None:
        """Install SIGINT and SIGTERM handlers on the running loop."""
        if self._running:
            logger.warning("SignalManager already running")
            return

        self._loop = asyncio.get_running_loop()
        self._shutdown_event = asyncio.Event()
        self._running = True

        if sys.platform != "win32":
            self._loop.add_signal_handler(signal.SIGINT, self._handle_signal, signal.SIGINT)
            self._loop.add_signal_handler(signal.SIGTERM, self._handle_signal, signal.SIGTERM)
            logger.debug(
                f"Signal handlers installed (double_tap_window={self.double_tap_window}s)"
            )
        else:
            self._original_sigint_handler = signal.signal(
                signal.SIGINT,
                lambda sig, frame: self._loop.call_soon_threadsafe(self._handle_signal, signal.SIGINT),
            )
            logger.debug("SIGINT handler installed on Windows")

    async def stop(self) -> None:
        """Restore the original handlers."""
        if not self._running:
            return

        self._running = False

        if sys.platform != "win32" and self._loop:
            try:
                self._loop.remove_signal_handler(signal.SIGINT)
                self._loop.remove_signal_handler(signal.SIGTERM)
            except Exception as e:
                logger.debug(f"Error removing signal handlers: {e}")
        elif sys.platform == "win32" and self._original_sigint_handler is not None:
            try:
                signal.signal(signal.SIGINT, self._original_sigint_handler)
            except Exception as e:
                logger.debug(f"Error restoring SIGINT handler: {e}")

        logger.debug("Signal handlers removed")

    async def wait_for_shutdown(self) -> None:
        """Return once every supervisor has been shut down after a signal."""
        if self._shutdown_event:
            await self._shutdown_event.wait()

    def _handle_signal(self, signum: int = signal.SIGTERM) -> None:
        current_time = time.time()
        time_since_last = current_time - self._last_signal_time
        self._last_signal_time = current_time
        name = signal.Signals(signum).name

        if self._shutdown_requested:
            if time_since_last < self.double_tap_window:
                logger.warning(f"Second {name} received, forcing shutdown")
                self._force_shutdown()
            else:
                logger.info(f"{name} received, shutdown already in progress")
            return

        logger.info(f"{name} received, initiating graceful shutdown")
        self.request_graceful_shutdown()

    def request_graceful_shutdown(self) -> None:
        """Shut down every supervisor, then set the shutdown event."""
        if self._shutdown_requested:
            return
        self._shutdown_requested = True
        loop = self._loop or asyncio.get_running_loop()
        self._shutdown_task = loop.create_task(self._shutdown_all(), name="audio-monitor-shutdown")

    async def _shutdown_all(self) -> None:
        results = await asyncio.gather(
            *(supervisor.shutdown() for supervisor in self._supervisors),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                logger.warning(f"Error during supervisor shutdown: {result}")
        logger.info(f"Shut down {len(results)} supervisor(s)")
        if self._shutdown_event:
            self._shutdown_event.set()

    def _force_shutdown(self) -> None:
        self._force_exit = True
        killed = 0
        for supervisor in self._supervisors:
            if supervisor.state not in (SupervisorState.RUNNING, SupervisorState.STOPPING):
                continue
            if supervisor.kill():
                killed += 1
        logger.warning(f"Force shutdown: killed {killed} process(es)")
