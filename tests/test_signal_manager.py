"""SignalManager tests.

Supervisors are mocked except for the end-to-end test, which sends a real
SIGTERM to the test process and lets the installed handler stop a fake device.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import signal
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

from audio_monitor.events import EventBus
from audio_monitor.runtime.supervisor import ProcessSupervisor, SupervisorState
from audio_monitor.signal_manager import SignalManager


def make_supervisor(state: SupervisorState = SupervisorState.RUNNING) -> MagicMock:
    supervisor = MagicMock(spec=ProcessSupervisor)
    supervisor.state = state
    supervisor.shutdown = AsyncMock()
    supervisor.kill.return_value = True
    return supervisor


class TestRegistration:
    def test_register_is_idempotent(self):
        manager = SignalManager(double_tap_window=1.0)
        supervisor = make_supervisor()

        manager.register(supervisor)
        manager.register(supervisor)

        assert manager.supervisors == [supervisor]

    def test_unregister(self):
        supervisor = make_supervisor()
        manager = SignalManager([supervisor], double_tap_window=1.0)

        assert manager.unregister(supervisor) is True
        assert manager.unregister(supervisor) is False
        assert manager.supervisors == []


class TestSignalHandling:
    @pytest.mark.asyncio
    async def test_first_signal_shuts_down_all(self):
        supervisors = [make_supervisor(), make_supervisor()]
        manager = SignalManager(supervisors, double_tap_window=1.0)
        await manager.start()
        try:
            manager._handle_signal(signal.SIGINT)
            await asyncio.wait_for(manager.wait_for_shutdown(), timeout=1.0)

            assert manager.is_shutdown_requested is True
            assert manager.is_force_exit is False
            for supervisor in supervisors:
                supervisor.shutdown.assert_awaited_once()
                supervisor.kill.assert_not_called()
        finally:
            await manager.stop()

    @pytest.mark.asyncio
    async def test_second_signal_within_window_kills(self):
        running = make_supervisor()
        idle = make_supervisor(SupervisorState.IDLE)

        async def slow_shutdown() -> None:
            await asyncio.sleep(5)

        running.shutdown = AsyncMock(side_effect=slow_shutdown)
        manager = SignalManager([running, idle], double_tap_window=5.0)
        await manager.start()
        try:
            manager._handle_signal(signal.SIGTERM)
            manager._handle_signal(signal.SIGTERM)

            assert manager.is_force_exit is True
            running.kill.assert_called_once()
            idle.kill.assert_not_called()
        finally:
            await manager.stop()
            manager._shutdown_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await manager._shutdown_task

    @pytest.mark.asyncio
    async def test_second_signal_outside_window_is_ignored(self):
        supervisor = make_supervisor()
        manager = SignalManager([supervisor], double_tap_window=0.1)
        await manager.start()
        try:
            manager._handle_signal(signal.SIGTERM)
            await asyncio.sleep(0.2)
            manager._handle_signal(signal.SIGTERM)

            assert manager.is_force_exit is False
            supervisor.kill.assert_not_called()
            supervisor.shutdown.assert_awaited_once()
        finally:
            await manager.stop()

    @pytest.mark.asyncio
    async def test_failing_supervisor_does_not_block_shutdown(self):
        broken = make_supervisor()
        broken.shutdown = AsyncMock(side_effect=RuntimeError("stuck"))
        healthy = make_supervisor()
        manager = SignalManager([broken, healthy], double_tap_window=1.0)
        await manager.start()
        try:
            manager.request_graceful_shutdown()
            await asyncio.wait_for(manager.wait_for_shutdown(), timeout=1.0)

            healthy.shutdown.assert_awaited_once()
        finally:
            await manager.stop()

    @pytest.mark.asyncio
    async def test_start_twice_is_harmless(self):
        manager = SignalManager(double_tap_window=1.0)
        await manager.start()
        await manager.start()
        await manager.stop()
        await manager.stop()


@pytest.mark.integration
@pytest.mark.timeout(30)
@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
class TestRealSignal:
    @pytest.mark.asyncio
    async def test_sigterm_stops_supervised_device(self, make_options, recorder):
        bus = EventBus()
        events = recorder(bus)
        supervisor = ProcessSupervisor(make_options(), bus)
        manager = SignalManager([supervisor], double_tap_window=1.0)
        await manager.start()
        try:
            await supervisor.start()
            await events.wait_for("change")

            os.kill(os.getpid(), signal.SIGTERM)
            await asyncio.wait_for(manager.wait_for_shutdown(), timeout=10.0)

            assert supervisor.state is SupervisorState.TERMINATED
            assert len(events.of("exit")) == 1
            assert events.of("force_exit") == []
        finally:
            await manager.stop()
            await supervisor.shutdown()
