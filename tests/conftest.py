"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from audio_monitor.events import EventBus, MonitorEvent  # noqa: E402
from audio_monitor.protocol.base import ProtocolVariant  # noqa: E402
from audio_monitor.runtime.supervisor import SupervisorOptions  # noqa: E402

FAKE_DEVICE = Path(__file__).parent / "fixtures" / "fake_device.py"


class EventRecorder:
    """Collects every event emitted on a bus."""

    def __init__(self, bus: EventBus) -> None:
        self.events: list[MonitorEvent] = []
        bus.subscribe_all(self.events.append)

    @property
    def kinds(self) -> list[str]:
        return [event.kind for event in self.events]

    def of(self, kind: str) -> list:
        return [event for event in self.events if event.kind == kind]

    async def wait_for(self, kind: str, count: int = 1, timeout: float = 10.0) -> list:
        """Wait until at least ``count`` events of ``kind`` were recorded."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while len(self.of(kind)) < count:
            if loop.time() > deadline:
                raise AssertionError(
                    f"Timed out waiting for {count} {kind} event(s), got {self.kinds}"
                )
            await asyncio.sleep(0.01)
        return self.of(kind)


@pytest.fixture
def fake_device_path() -> Path:
    """Path of the fake device script."""
    return FAKE_DEVICE


@pytest.fixture
def make_options() -> Callable[..., SupervisorOptions]:
    """Build SupervisorOptions that launch the fake device.

    Positional arguments are passed as fake device flags.
    """

    def factory(*flags: str, **overrides) -> SupervisorOptions:
        overrides.setdefault("shutdown_timeout", 2.0)
        if "--variant" in flags:
            variant = flags[flags.index("--variant") + 1]
            overrides.setdefault("protocol", ProtocolVariant.from_string(variant))
        overrides.setdefault("exec_path", sys.executable)
        overrides.setdefault("exec_args", [str(FAKE_DEVICE), *flags])
        return SupervisorOptions(**overrides)

    return factory


@pytest.fixture
def recorder() -> Callable[[EventBus], EventRecorder]:
    """Factory attaching an EventRecorder to a bus."""
    return EventRecorder
