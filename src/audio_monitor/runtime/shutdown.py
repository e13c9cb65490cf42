"""Escalating termination for the device process.

Termination strategy:
1. Send SIGTERM to the process group (CTRL_BREAK_EVENT on Windows)
2. Arm one deferred action for ``grace_period`` seconds
3. If the exit is observed first, the timer is cancelled
4. Otherwise send SIGKILL (``kill()`` on Windows) and report the forced exit

Nothing here waits for the process; exit is observed by the supervisor, which
calls ``cancel()``.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from collections.abc import Callable

__all__ = [
    "ShutdownCoordinator",
    "DEFAULT_GRACE_PERIOD",
    "IS_WINDOWS",
]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"

DEFAULT_GRACE_PERIOD = 3.0  # seconds between graceful signal and hard kill

FORCE_EXIT_MESSAGE = "Process forcibly terminated."


class ShutdownCoordinator:
    """Graceful-then-forced termination of one process.

    Example:
        coordinator = ShutdownCoordinator(grace_period=3.0)
        coordinator.begin(process, on_force=lambda msg: print(msg))
        ...
        # when process exit is observed:
        coordinator.cancel()

    Attributes:
        grace_period: Seconds to wait after the graceful signal
    """

    def __init__(self, grace_period: float = DEFAULT_GRACE_PERIOD) -> None:
        self.grace_period = grace_period
        self._timer: asyncio.TimerHandle | None = None
        self._process: asyncio.subprocess.Process | None = None
        self._on_force: Callable[[str], None] | None = None
        self._escalated = False

    @property
    def pending(self) -> bool:
        """Whether the kill deadline is armed."""
        return self._timer is not None

    @property
    def escalated(self) -> bool:
        return self._escalated

    def begin(
        self,
        process: asyncio.subprocess.Process,
        on_force: Callable[[str], None] | None = None,
    ) -> None:
        """Send the graceful signal and arm the kill deadline.

        Must be called from the event loop thread.

        Args:
            process: The running child
            on_force: Called with a message once the hard kill is sent
        """
        if self._process is not None:
            raise RuntimeError("Shutdown already in progress")

        self._process = process
        self._on_force = on_force
        self._escalated = False

        logger.debug(f"Terminating subprocess pid={process.pid}")
        try:
            self._send_graceful(process)
        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={process.pid}")

        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.grace_period, self.escalate)

    def cancel(self) -> None:
        """Disarm the deadline; the process exited on its own."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            logger.debug("Shutdown timer cancelled")
        self._process = None
        self._on_force = None

    def escalate(self) -> None:
        """Send the hard kill now. Runs at most once per shutdown."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        process = self._process
        if process is None or self._escalated:
            return
        self._escalated = True

        if process.returncode is not None:
            logger.debug(f"Subprocess exited before kill pid={process.pid}")
            return

        logger.warning(
            f"Subprocess did not exit within {self.grace_period}s, "
            f"force killing pid={process.pid}"
        )
        try:
            self._send_kill(process)
        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={process.pid}")
            return

        if self._on_force:
            try:
                self._on_force(FORCE_EXIT_MESSAGE)
            except Exception as e:
                logger.warning(f"Error in force-exit callback: {e}")

    def _send_graceful(self, process: asyncio.subprocess.Process) -> None:
        if IS_WINDOWS:
            # Reaches the child because it owns a new process group
            self._deliver(
                process,
                "CTRL_BREAK_EVENT",
                lambda: os.kill(process.pid, signal.CTRL_BREAK_EVENT),
                process.terminate,
            )
        else:
            self._deliver(
                process,
                "SIGTERM",
                lambda: self._signal_group(process, signal.SIGTERM),
                process.terminate,
            )

    def _send_kill(self, process: asyncio.subprocess.Process) -> None:
        if IS_WINDOWS:
            process.kill()
            logger.debug(f"Called kill() on pid={process.pid}")
        else:
            self._deliver(
                process,
                "SIGKILL",
                lambda: self._signal_group(process, signal.SIGKILL),
                process.kill,
            )

    @staticmethod
    def _signal_group(process: asyncio.subprocess.Process, sig: signal.Signals) -> None:
        # pgid equals pid because the child was started in a new session
        os.killpg(os.getpgid(process.pid), sig)

    @staticmethod
    def _deliver(
        process: asyncio.subprocess.Process,
        label: str,
        send: Callable[[], None],
        fallback: Callable[[], None],
    ) -> None:
        """Run ``send``; on any OS error but a vanished process, use ``fallback``.

        Raises:
            ProcessLookupError: The process is already gone
        """
        try:
            send()
        except ProcessLookupError:
            raise
        except OSError as e:
            logger.debug(f"{label} to pid={process.pid} failed, falling back: {e}")
            fallback()
        else:
            logger.debug(f"Sent {label} to pid={process.pid}")
