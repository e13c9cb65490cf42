"""Runtime module for supervising the device process.

Provides stdout framing, the stdin command channel, escalating termination and
the supervisor that ties them together.
"""

from __future__ import annotations

from .channel import CommandChannel
from .framing import FrameReader, iter_records
from .shutdown import ShutdownCoordinator
from .supervisor import ProcessSupervisor, SupervisorOptions, SupervisorState

__all__ = [
    "CommandChannel",
    "FrameReader",
    "iter_records",
    "ShutdownCoordinator",
    "ProcessSupervisor",
    "SupervisorOptions",
    "SupervisorState",
]
