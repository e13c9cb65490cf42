"""Process supervisor for the device executable.

Owns the child process and everything attached to it:
- stdout: framed, decoded, diffed against the last snapshot, emitted as
  ``change`` events
- stderr: surfaced verbatim as ``error`` events
- stdin: the command channel
- exit: ``exit`` event, plus ``force_exit`` when the shutdown deadline passed

State machine:

    IDLE -> RUNNING           start()
    RUNNING -> STOPPING       stop()
    RUNNING -> TERMINATED     child exits on its own
    STOPPING -> TERMINATED    child exits, or is killed after the deadline
    TERMINATED -> RUNNING     start() again (fresh process and baseline)

All notifications are handled on the event loop thread. Decoding, diffing,
emitting and moving the baseline happen in one synchronous step per record,
so no listener ever sees a stale baseline.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import signal
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..errors import (
    AbnormalExit,
    ChannelUnavailable,
    DecodeError,
    ForcedTermination,
    FrameTooLarge,
    SpawnError,
)
from ..events import (
    ChangeEvent,
    ErrorEvent,
    ErrorType,
    EventBus,
    ExitEvent,
    ForceExitEvent,
    RemoveEvent,
)
from ..protocol import commands
from ..protocol.base import ProtocolVariant
from ..protocol.commands import Command
from ..protocol.decoder import decode_record
from ..protocol.diff import advance, advance_devices
from ..protocol.models import DeviceEnvelope, DeviceSnapshot
from .channel import CommandChannel
from .framing import DEFAULT_MAX_FRAME_SIZE, READ_CHUNK_SIZE, FrameReader, iter_records
from .shutdown import DEFAULT_GRACE_PERIOD, IS_WINDOWS, ShutdownCoordinator

if TYPE_CHECKING:
    from ..config import Config

__all__ = [
    "ProcessSupervisor",
    "SupervisorOptions",
    "SupervisorState",
]

logger = logging.getLogger(__name__)

# Extra time allowed for the OS to reap the child after a hard kill
KILL_TIMEOUT = 1.0


class SupervisorState(str, Enum):
    """Lifecycle of the supervised process."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class SupervisorOptions:
    """How to launch and supervise the device executable.

    Attributes:
        exec_path: Device executable
        exec_args: Arguments placed before the protocol arguments, for
            launchers or wrappers
        protocol: Wire protocol variant
        delay_ms: Polling interval (variant A spawn argument)
        volume_step: Default volume step (variant A spawn argument)
        shutdown_timeout: Seconds between graceful signal and hard kill
        max_frame_size: Largest unterminated stdout record in bytes
        cwd: Working directory (None = inherit)
        env: Environment (None = inherit)
    """

    exec_path: Path | str
    exec_args: Sequence[str] = ()
    protocol: ProtocolVariant = ProtocolVariant.A
    delay_ms: int = 250
    volume_step: int = 5
    shutdown_timeout: float = DEFAULT_GRACE_PERIOD
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE
    cwd: Path | None = None
    env: Mapping[str, str] | None = field(default=None, repr=False)

    @classmethod
    def from_config(cls, config: Config, **overrides: Any) -> "SupervisorOptions":
        options = cls(
            exec_path=config.exec_path,
            protocol=config.protocol,
            delay_ms=config.delay_ms,
            volume_step=config.volume_step,
            shutdown_timeout=config.shutdown_timeout,
            max_frame_size=config.max_frame_size,
        )
        return replace(options, **overrides) if overrides else options

    def build_argv(self) -> list[str]:
        argv = [str(self.exec_path), *self.exec_args]
        if self.protocol is ProtocolVariant.A:
            argv += [str(self.delay_ms), str(self.volume_step)]
        return argv


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"signal {signum}"


class ProcessSupervisor:
    """Runs the device executable and turns its output into events.

    Example:
        supervisor = ProcessSupervisor(SupervisorOptions(exec_path="af-win-audio.exe"))
        supervisor.events.on_change(lambda ev: print(ev.snapshot, ev.changes))
        supervisor.events.on_error(lambda ev: print("error:", ev.message))

        async with supervisor:
            supervisor.set_volume(40)
            await asyncio.sleep(10)

    Asynchronous failures are only reported as events. Command methods raise
    ``ValidationError`` for bad arguments and report a missing process as an
    ``error`` event, returning False.
    """

    def __init__(
        self,
        options: SupervisorOptions,
        events: EventBus | None = None,
    ) -> None:
        self.options = options
        self.events = events if events is not None else EventBus()

        self._state = SupervisorState.IDLE
        self._starting = False
        self._stop_requested = False
        self._process: asyncio.subprocess.Process | None = None
        self._watcher: asyncio.Task[None] | None = None
        self._terminated: asyncio.Event | None = None
        self._last_exit: ExitEvent | None = None

        self._frame_reader: FrameReader | None = None
        self._baseline: DeviceSnapshot | None = None
        self._device_baseline: dict[str, DeviceSnapshot] = {}

        self._channel = CommandChannel(on_error=self._on_channel_error)
        self._shutdown = ShutdownCoordinator(options.shutdown_timeout)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def is_running(self) -> bool:
        return self._state is SupervisorState.RUNNING

    @property
    def snapshot(self) -> DeviceSnapshot | None:
        """Last variant A snapshot, the current diff baseline."""
        return self._baseline

    @property
    def devices(self) -> dict[str, DeviceSnapshot]:
        """Last variant B device list keyed by id."""
        return dict(self._device_baseline)

    @property
    def last_exit(self) -> ExitEvent | None:
        return self._last_exit

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """Spawn the device executable.

        Returns:
            True if the process was started. Failures are reported as
            ``error`` events and leave the state unchanged.
        """
        if self._starting or self._state in (SupervisorState.RUNNING, SupervisorState.STOPPING):
            self._emit_error("Process already running", "state")
            return False

        argv = self.options.build_argv()
        self._starting = True
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.options.cwd,
                **self._build_subprocess_kwargs(),
            )
        except (OSError, ValueError) as e:
            error = SpawnError(f"Failed to start process {argv[0]}: {e}")
            logger.warning(str(error))
            self._emit_error(str(error), "spawn")
            return False
        finally:
            self._starting = False

        self._process = process
        self._state = SupervisorState.RUNNING
        self._stop_requested = False
        self._last_exit = None
        self._baseline = None
        self._device_baseline = {}
        self._frame_reader = FrameReader(self.options.max_frame_size)
        self._terminated = asyncio.Event()
        self._channel.attach(process.stdin)

        logger.info(f"Started process pid={process.pid} argv={argv}")

        self._watcher = asyncio.create_task(
            self._supervise(process),
            name=f"audio-monitor-supervisor-{process.pid}",
        )
        return True

    def stop(self) -> bool:
        """Ask the process to exit, killing it if it ignores the request.

        Returns immediately; completion is reported by ``exit`` (and
        ``force_exit`` if the deadline passed).

        Returns:
            True if a stop sequence was started
        """
        if self._state is SupervisorState.IDLE:
            self._emit_error("No process to stop", "state")
            return False
        if self._state is SupervisorState.TERMINATED:
            self._emit_error("Process already terminated", "state")
            return False
        if self._state is SupervisorState.STOPPING:
            self._emit_error("Process is already stopping", "state")
            return False

        process = self._process
        if process is None:
            self._emit_error("No process to stop", "state")
            return False

        self._state = SupervisorState.STOPPING
        self._stop_requested = True
        logger.info(
            f"Stopping process pid={process.pid} "
            f"(grace period {self._shutdown.grace_period}s)"
        )
        self._shutdown.begin(process, on_force=self._on_force_exit)
        return True

    def kill(self) -> bool:
        """Skip the grace period and hard-kill the process now."""
        if self._state is SupervisorState.RUNNING:
            self.stop()
        if self._state is not SupervisorState.STOPPING:
            self._emit_error("No process to kill", "state")
            return False
        self._shutdown.escalate()
        return True

    async def wait_terminated(self, timeout: float | None = None) -> int | None:
        """Wait until the current process is gone.

        Returns:
            The exit code, or None if there was no process or it was ended
            by a signal

        Raises:
            asyncio.TimeoutError: If timeout elapses first
        """
        if self._terminated is not None and not self._terminated.is_set():
            await asyncio.wait_for(self._terminated.wait(), timeout=timeout)
        return self._last_exit.code if self._last_exit else None

    async def shutdown(self) -> None:
        """Host termination hook: stop the process and wait for it.

        Intended to be called from the hosting program's own signal handling
        (see ``SignalManager``); this class never installs signal handlers.
        """
        if self._state is SupervisorState.RUNNING:
            self.stop()
        if self._state is not SupervisorState.STOPPING:
            return

        try:
            await self.wait_terminated(timeout=self._shutdown.grace_period + KILL_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(f"Process did not exit after kill pid={self.pid}")

    async def __aenter__(self) -> "ProcessSupervisor":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    def _build_subprocess_kwargs(self) -> dict[str, Any]:
        """Platform-specific isolation so host signals don't reach the child."""
        kwargs: dict[str, Any] = {}

        if self.options.env is not None:
            kwargs["env"] = dict(self.options.env)

        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            kwargs["start_new_session"] = True

        return kwargs

    # ------------------------------------------------------------------
    # Output handling
    # ------------------------------------------------------------------

    async def _supervise(self, process: asyncio.subprocess.Process) -> None:
        stdout_task = asyncio.create_task(self._pump_stdout(process.stdout))
        stderr_task = asyncio.create_task(self._pump_stderr(process.stderr))
        try:
            # Exit is reported after both streams are drained
            await asyncio.gather(stdout_task, stderr_task)
            returncode = await process.wait()
        except asyncio.CancelledError:
            for task in (stdout_task, stderr_task):
                task.cancel()
            if process.returncode is None:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
            self._reset_process()
            if self._terminated is not None:
                self._terminated.set()
            raise
        self._handle_exit(returncode)

    async def _pump_stdout(self, stream: asyncio.StreamReader | None) -> None:
        if stream is None:
            return
        reader = self._frame_reader or FrameReader(self.options.max_frame_size)
        try:
            async for record in iter_records(stream, reader):
                self._handle_record(record)
        except FrameTooLarge as e:
            logger.warning(f"Stdout framing failed: {e}")
            self._emit_error(str(e), "frame")
            # Keep reading so the child never blocks on a full pipe
            while await stream.read(READ_CHUNK_SIZE):
                pass

    async def _pump_stderr(self, stream: asyncio.StreamReader | None) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            text = decoder.decode(chunk, final=not chunk)
            if text:
                logger.warning(f"Process stderr: {text.rstrip()}")
                self._emit_error(text, "stderr")
            if not chunk:
                break

    def _handle_record(self, record: str) -> None:
        if not record.strip():
            return

        decoded = decode_record(record, self.options.protocol)
        if isinstance(decoded, DecodeError):
            logger.warning(str(decoded))
            self._emit_error(str(decoded), "decode")
            return

        if isinstance(decoded, DeviceEnvelope):
            self._handle_envelope(decoded)
            return

        mask, baseline = advance(self._baseline, decoded)
        self.events.emit(ChangeEvent(snapshot=decoded, changes=mask))
        self._baseline = baseline

    def _handle_envelope(self, envelope: DeviceEnvelope) -> None:
        changed, removed, baseline = advance_devices(self._device_baseline, envelope.devices)
        for snapshot, mask in changed:
            self.events.emit(ChangeEvent(snapshot=snapshot, changes=mask, action=envelope.action))
        for snapshot in removed:
            self.events.emit(RemoveEvent(device_id=snapshot.id, snapshot=snapshot))
        self._device_baseline = baseline

    def _handle_exit(self, returncode: int | None) -> None:
        stop_requested = self._stop_requested
        pid = self.pid
        self._reset_process()

        code: int | None = returncode
        sig: str | None = None
        if returncode is not None and returncode < 0:
            sig = _signal_name(-returncode)
            code = None

        logger.info(f"Process exited pid={pid} returncode={returncode}")

        if returncode != 0 and not stop_requested:
            self._emit_error(str(AbnormalExit(code, sig)), "abnormal_exit")

        event = ExitEvent(code=code, signal=sig)
        self._last_exit = event
        if self._terminated is not None:
            self._terminated.set()
        self.events.emit(event)

    def _reset_process(self) -> None:
        self._shutdown.cancel()
        self._channel.detach()
        self._process = None
        self._frame_reader = None
        self._state = SupervisorState.TERMINATED

    def _on_force_exit(self, message: str) -> None:
        logger.warning(str(ForcedTermination(message)))
        self.events.emit(ForceExitEvent(message=message))

    def _on_channel_error(self, message: str) -> None:
        self._emit_error(message, "process")

    def _emit_error(self, message: str, error_type: ErrorType) -> None:
        self.events.emit(ErrorEvent(message=message, error_type=error_type))

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def send(self, command: Command) -> bool:
        """Write an already validated command.

        Returns:
            False (after an ``error`` event) when there is no live process
        """
        try:
            self._channel.send(command)
        except ChannelUnavailable as e:
            logger.warning(f"Dropped command {command.verb}: {e}")
            self._emit_error(str(e), "channel")
            return False
        return True

    def up_volume(self, step: int | None = None) -> bool:
        return self.send(commands.up_volume(step))

    def down_volume(self, step: int | None = None) -> bool:
        return self.send(commands.down_volume(step))

    def set_volume(self, volume: int) -> bool:
        return self.send(commands.set_volume(volume))

    def set_volume_by_id(self, device_id: str, volume: int) -> bool:
        return self.send(commands.set_volume_by_id(device_id, volume))

    def up_volume_by_id(self, device_id: str) -> bool:
        return self.send(commands.up_volume_by_id(device_id))

    def down_volume_by_id(self, device_id: str) -> bool:
        return self.send(commands.down_volume_by_id(device_id))

    def set_mute(self) -> bool:
        return self.send(commands.set_mute())

    def set_unmute(self) -> bool:
        return self.send(commands.set_unmute())

    def toggle_mute(self) -> bool:
        return self.send(commands.toggle_mute())

    def set_mute_by_id(self, device_id: str) -> bool:
        return self.send(commands.set_mute_by_id(device_id))

    def set_unmute_by_id(self, device_id: str) -> bool:
        return self.send(commands.set_unmute_by_id(device_id))

    def toggle_mute_by_id(self, device_id: str) -> bool:
        return self.send(commands.toggle_mute_by_id(device_id))

    def set_delay(self, delay_ms: int) -> bool:
        return self.send(commands.set_delay(delay_ms))

    def set_step_volume(self, step: int) -> bool:
        return self.send(commands.set_step_volume(step))

    def update_settings(
        self,
        delay_ms: int | None = None,
        volume_step: int | None = None,
    ) -> bool:
        """Change polling delay and/or default step.

        The values are kept for future spawns and, while running, sent to
        the process. Both values are validated before anything is changed.
        """
        changes: dict[str, int] = {}
        pending: list[Command] = []
        if delay_ms is not None:
            pending.append(commands.set_delay(delay_ms))
            changes["delay_ms"] = commands.validate_delay(delay_ms)
        if volume_step is not None:
            pending.append(commands.set_step_volume(volume_step))
            changes["volume_step"] = commands.validate_step(volume_step)
        if not changes:
            return True

        self.options = replace(self.options, **changes)
        logger.info(f"Updated settings: {changes}")

        if self._state is not SupervisorState.RUNNING:
            return True
        return all([self.send(command) for command in pending])
