"""Command builder and command channel tests.

Test coverage:
- Every builder produces the exact protocol line
- Range and type validation rejects bad arguments before anything is written
- CommandChannel writes one complete line per command
- Missing or closing stdin raises ChannelUnavailable
- A failing flush is reported through on_error
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from audio_monitor.errors import ChannelUnavailable, ValidationError
from audio_monitor.protocol import commands
from audio_monitor.runtime.channel import CommandChannel


class TestBuilders:
    """Exact wire lines."""

    @pytest.mark.parametrize(
        "command, line",
        [
            (commands.up_volume(), "upVolume\n"),
            (commands.up_volume(10), "upVolume 10\n"),
            (commands.down_volume(), "downVolume\n"),
            (commands.down_volume(3), "downVolume 3\n"),
            (commands.set_volume(40), "setvolume 40\n"),
            (commands.set_volume_by_id("dev-1", 0), "setvolumeid dev-1 0\n"),
            (commands.up_volume_by_id("dev-1"), "upvolumeid dev-1\n"),
            (commands.down_volume_by_id("dev-1"), "downvolumeid dev-1\n"),
            (commands.set_mute(), "setmute\n"),
            (commands.set_unmute(), "setunmute\n"),
            (commands.toggle_mute(), "togglemute\n"),
            (commands.set_mute_by_id("x"), "setmuteid x\n"),
            (commands.set_unmute_by_id("x"), "setunmuteid x\n"),
            (commands.toggle_mute_by_id("x"), "togglemuteid x\n"),
            (commands.set_delay(500), "setDelay 500\n"),
            (commands.set_step_volume(10), "setStepVolume 10\n"),
        ],
    )
    def test_line(self, command: commands.Command, line: str):
        assert command.to_line() == line
        assert command.encode() == line.encode("utf-8")

    def test_integral_float_is_accepted(self):
        assert commands.set_volume(50.0).to_line() == "setvolume 50\n"

    @pytest.mark.parametrize("volume", [0, 100])
    def test_volume_bounds_inclusive(self, volume: int):
        assert commands.set_volume(volume).args == (volume,)


class TestValidation:
    """Bad arguments raise ValidationError."""

    @pytest.mark.parametrize("volume", [-1, 101, 50.5, "50", None, True])
    def test_set_volume_rejects(self, volume):
        with pytest.raises(ValidationError):
            commands.set_volume(volume)

    def test_set_volume_by_id_checks_volume(self):
        with pytest.raises(ValidationError):
            commands.set_volume_by_id("dev-1", 150)

    @pytest.mark.parametrize("step", [0, 101, -5, 2.5])
    def test_step_rejects(self, step):
        with pytest.raises(ValidationError):
            commands.up_volume(step)
        with pytest.raises(ValidationError):
            commands.set_step_volume(step)

    @pytest.mark.parametrize("delay", [0, 99, -250])
    def test_delay_minimum(self, delay: int):
        with pytest.raises(ValidationError):
            commands.set_delay(delay)

    def test_delay_at_minimum(self):
        assert commands.set_delay(commands.MIN_DELAY_MS).args == (100,)

    @pytest.mark.parametrize("device_id", ["", "   ", None, 5, "a\nsetmute", "a\rb"])
    def test_device_id_rejects(self, device_id):
        with pytest.raises(ValidationError):
            commands.set_mute_by_id(device_id)


def make_writer(closing: bool = False) -> MagicMock:
    writer = MagicMock()
    writer.is_closing.return_value = closing
    writer.drain = AsyncMock()
    return writer


class TestCommandChannel:
    """Writes to the child's stdin."""

    def test_send_without_writer(self):
        channel = CommandChannel()

        assert channel.available is False
        with pytest.raises(ChannelUnavailable):
            channel.send(commands.set_mute())

    @pytest.mark.asyncio
    async def test_send_to_closing_writer(self):
        channel = CommandChannel()
        writer = make_writer(closing=True)
        channel.attach(writer)

        with pytest.raises(ChannelUnavailable):
            channel.send(commands.set_mute())
        writer.write.assert_not_called()

    @pytest.mark.asyncio
    async def test_one_write_per_command(self):
        channel = CommandChannel()
        writer = make_writer()
        channel.attach(writer)

        channel.send(commands.set_volume_by_id("dev-1", 20))
        channel.send(commands.toggle_mute())
        await asyncio.sleep(0)

        assert [c.args[0] for c in writer.write.call_args_list] == [
            b"setvolumeid dev-1 20\n",
            b"togglemute\n",
        ]
        writer.drain.assert_awaited()

    @pytest.mark.asyncio
    async def test_validation_error_writes_nothing(self):
        channel = CommandChannel()
        writer = make_writer()
        channel.attach(writer)

        with pytest.raises(ValidationError):
            channel.send(commands.set_volume(101))
        writer.write.assert_not_called()

    @pytest.mark.asyncio
    async def test_detach_makes_channel_unavailable(self):
        channel = CommandChannel()
        channel.attach(make_writer())
        assert channel.available is True

        channel.detach()

        assert channel.available is False
        with pytest.raises(ChannelUnavailable):
            channel.send(commands.set_mute())

    @pytest.mark.asyncio
    async def test_broken_pipe_reported(self):
        errors: list[str] = []
        channel = CommandChannel(on_error=errors.append)
        writer = make_writer()
        writer.drain.side_effect = BrokenPipeError("pipe closed")
        channel.attach(writer)

        channel.send(commands.set_mute())
        for _ in range(3):
            await asyncio.sleep(0)

        assert len(errors) == 1
        assert errors[0].startswith("Failed to write command to process")

    @pytest.mark.asyncio
    async def test_unexpected_flush_error_reported(self):
        errors: list[str] = []
        channel = CommandChannel(on_error=errors.append)
        writer = make_writer()
        writer.drain.side_effect = RuntimeError("transport gone")
        channel.attach(writer)

        channel.send(commands.set_unmute())
        for _ in range(3):
            await asyncio.sleep(0)

        assert errors == ["Failed to write command to process: transport gone"]
