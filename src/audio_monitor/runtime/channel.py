"""Command channel to the child's stdin.

Writes are fire-and-forget: each command becomes a single ``write()`` of one
complete line, so lines never interleave, and the caller is never blocked
waiting for a reply. Flushing happens in the background; a failing flush is
reported through ``on_error``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from ..errors import ChannelUnavailable
from ..protocol.commands import Command

__all__ = ["CommandChannel"]

logger = logging.getLogger(__name__)


class CommandChannel:
    """Validated commands in, protocol lines out.

    The supervisor attaches the child's stdin on spawn and detaches it on exit.

    Attributes:
        on_error: Called with a message when a background flush fails
    """

    def __init__(self, on_error: Callable[[str], None] | None = None) -> None:
        self.on_error = on_error
        self._writer: asyncio.StreamWriter | None = None
        self._drain_task: asyncio.Task[None] | None = None

    @property
    def available(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    def attach(self, writer: asyncio.StreamWriter | None) -> None:
        self._writer = writer

    def detach(self) -> None:
        self._writer = None
        if self._drain_task and not self._drain_task.done():
            self._drain_task.cancel()
        self._drain_task = None

    def send(self, command: Command) -> None:
        """Write one command line.

        Raises:
            ChannelUnavailable: No live process or its stdin is closing;
                nothing is written.
        """
        writer = self._writer
        if writer is None:
            raise ChannelUnavailable("Process not started or stdin not available")
        if writer.is_closing():
            raise ChannelUnavailable("Process stdin is closed")

        line = command.to_line()
        writer.write(line.encode("utf-8"))
        logger.debug(f"Sent command: {line.rstrip()}")
        self._schedule_drain(writer)

    def _schedule_drain(self, writer: asyncio.StreamWriter) -> None:
        if self._drain_task and not self._drain_task.done():
            return
        self._drain_task = asyncio.get_running_loop().create_task(self._drain(writer))

    async def _drain(self, writer: asyncio.StreamWriter) -> None:
        try:
            await writer.drain()
        except Exception as e:
            logger.warning(f"Writing to process stdin failed: {e}")
            if self.on_error:
                self.on_error(f"Failed to write command to process: {e}")
