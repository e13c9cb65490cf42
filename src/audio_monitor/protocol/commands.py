"""Outbound command line protocol.

Each builder validates its arguments and returns an immutable ``Command``;
nothing here touches a process. Invalid arguments raise ``ValidationError``.

Verbs understood by the device executable:

    upVolume [n]          downVolume [n]
    setvolume <n>         setvolumeid <id> <n>
    upvolumeid <id>       downvolumeid <id>
    setmute               setunmute               togglemute
    setmuteid <id>        setunmuteid <id>        togglemuteid <id>
    setDelay <n>          setStepVolume <n>
"""

from __future__ import annotations

from dataclasses import dataclass
from numbers import Real
from typing import Any

from ..errors import ValidationError

__all__ = [
    "Command",
    "MIN_DELAY_MS",
    "validate_volume",
    "validate_step",
    "validate_delay",
    "validate_device_id",
    "up_volume",
    "down_volume",
    "set_volume",
    "set_volume_by_id",
    "up_volume_by_id",
    "down_volume_by_id",
    "set_mute",
    "set_unmute",
    "toggle_mute",
    "set_mute_by_id",
    "set_unmute_by_id",
    "toggle_mute_by_id",
    "set_delay",
    "set_step_volume",
]

MIN_DELAY_MS = 100


@dataclass(frozen=True)
class Command:
    """One validated instruction for the device executable.

    Attributes:
        verb: Protocol verb
        args: Already validated arguments
    """

    verb: str
    args: tuple[str | int, ...] = ()

    def to_line(self) -> str:
        return " ".join([self.verb, *(str(a) for a in self.args)]) + "\n"

    def encode(self) -> bytes:
        return self.to_line().encode("utf-8")


def _as_int(value: Any, what: str) -> int:
    """Accept ints and integral reals; bools and strings are rejected."""
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValidationError(f"{what} must be a number, got {value!r}")
    if isinstance(value, int):
        return value
    as_float = float(value)
    if not as_float.is_integer():
        raise ValidationError(f"{what} must be a whole number, got {value!r}")
    return int(as_float)


def validate_volume(volume: Any) -> int:
    value = _as_int(volume, "Volume")
    if not 0 <= value <= 100:
        raise ValidationError(f"Volume must be in range 0-100, got {value}")
    return value


def validate_step(step: Any) -> int:
    value = _as_int(step, "Volume step")
    if not 1 <= value <= 100:
        raise ValidationError(f"Volume step must be in range 1-100, got {value}")
    return value


def validate_delay(delay_ms: Any) -> int:
    value = _as_int(delay_ms, "Polling delay")
    if value < MIN_DELAY_MS:
        raise ValidationError(f"Polling delay must be at least {MIN_DELAY_MS} ms, got {value}")
    return value


def validate_device_id(device_id: Any) -> str:
    if not isinstance(device_id, str) or not device_id.strip():
        raise ValidationError("Device id must be a non-empty string")
    # A line break would end the command early and inject a second one
    if "\n" in device_id or "\r" in device_id:
        raise ValidationError("Device id must not contain line breaks")
    return device_id


def up_volume(step: Any = None) -> Command:
    if step is None:
        return Command("upVolume")
    return Command("upVolume", (validate_step(step),))


def down_volume(step: Any = None) -> Command:
    if step is None:
        return Command("downVolume")
    return Command("downVolume", (validate_step(step),))


def set_volume(volume: Any) -> Command:
    return Command("setvolume", (validate_volume(volume),))


def set_volume_by_id(device_id: Any, volume: Any) -> Command:
    return Command("setvolumeid", (validate_device_id(device_id), validate_volume(volume)))


def up_volume_by_id(device_id: Any) -> Command:
    return Command("upvolumeid", (validate_device_id(device_id),))


def down_volume_by_id(device_id: Any) -> Command:
    return Command("downvolumeid", (validate_device_id(device_id),))


def set_mute() -> Command:
    return Command("setmute")


def set_unmute() -> Command:
    return Command("setunmute")


def toggle_mute() -> Command:
    return Command("togglemute")


def set_mute_by_id(device_id: Any) -> Command:
    return Command("setmuteid", (validate_device_id(device_id),))


def set_unmute_by_id(device_id: Any) -> Command:
    return Command("setunmuteid", (validate_device_id(device_id),))


def toggle_mute_by_id(device_id: Any) -> Command:
    return Command("togglemuteid", (validate_device_id(device_id),))


def set_delay(delay_ms: Any) -> Command:
    return Command("setDelay", (validate_delay(delay_ms),))


def set_step_volume(step: Any) -> Command:
    return Command("setStepVolume", (validate_step(step),))
