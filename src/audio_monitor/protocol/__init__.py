"""Device wire protocol: models, decoding, change masks and commands."""

from __future__ import annotations

from .base import VERSION, ActionType, ProtocolVariant
from .commands import Command
from .decoder import DecodedRecord, decode_record
from .diff import ChangeMask, advance, advance_devices, diff
from .models import ActionDevice, DeviceAction, DeviceEnvelope, DeviceSnapshot

__all__ = [
    "VERSION",
    "ActionType",
    "ProtocolVariant",
    "Command",
    "DecodedRecord",
    "decode_record",
    "ChangeMask",
    "diff",
    "advance",
    "advance_devices",
    "ActionDevice",
    "DeviceAction",
    "DeviceEnvelope",
    "DeviceSnapshot",
]
