"""Audio Monitor - supervised device telemetry as typed change events.

Environment variables:
    AUDIO_MONITOR_EXEC_PATH: Device executable
    AUDIO_MONITOR_PROTOCOL: Wire protocol variant (a/b)
    AUDIO_MONITOR_DELAY_MS: Polling interval (default 250)
    AUDIO_MONITOR_VOLUME_STEP: Default volume step (default 5)
    AUDIO_MONITOR_SHUTDOWN_TIMEOUT_MS: Grace period before a hard kill

Usage:
    audio-monitor
"""

__version__ = "0.1.0"

from .errors import (
    AbnormalExit,
    AudioMonitorError,
    ChannelUnavailable,
    DecodeError,
    ForcedTermination,
    FrameTooLarge,
    SpawnError,
    ValidationError,
)
from .events import (
    ChangeEvent,
    ErrorEvent,
    EventBus,
    ExitEvent,
    ForceExitEvent,
    MonitorEvent,
    RemoveEvent,
)
from .protocol import ChangeMask, DeviceEnvelope, DeviceSnapshot, ProtocolVariant
from .runtime import ProcessSupervisor, SupervisorOptions, SupervisorState

__all__ = [
    "__version__",
    "AbnormalExit",
    "AudioMonitorError",
    "ChannelUnavailable",
    "DecodeError",
    "ForcedTermination",
    "FrameTooLarge",
    "SpawnError",
    "ValidationError",
    "ChangeEvent",
    "ErrorEvent",
    "EventBus",
    "ExitEvent",
    "ForceExitEvent",
    "MonitorEvent",
    "RemoveEvent",
    "ChangeMask",
    "DeviceEnvelope",
    "DeviceSnapshot",
    "ProtocolVariant",
    "ProcessSupervisor",
    "SupervisorOptions",
    "SupervisorState",
]
