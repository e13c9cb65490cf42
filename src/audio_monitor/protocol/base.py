"""Base enums for the device wire protocol.

audio-monitor protocol v0.1.0

Defines:
- Protocol variants spoken by the device executable
- Action tags carried by variant B envelopes
"""

from __future__ import annotations

from enum import Enum
from typing import Final

__all__ = [
    "ProtocolVariant",
    "ActionType",
    "VERSION",
]

VERSION: Final[str] = "0.1.0"


class ProtocolVariant(str, Enum):
    """Wire protocol spoken by the device executable.

    - A: spawned with ``<delay-ms> <volume-step>``, prints one flat device
      snapshot per line.
    - B: spawned without arguments, prints ``{action, devices}`` envelopes.
    """

    A = "a"
    B = "b"

    @classmethod
    def from_string(cls, value: str) -> "ProtocolVariant":
        """Parse a variant name, falling back to A for unknown values."""
        value = value.lower().strip()
        for variant in cls:
            if variant.value == value:
                return variant
        return cls.A


class ActionType(str, Enum):
    """What triggered a variant B envelope."""

    INITIAL = "initial"
    ADD = "add"
    REMOVE = "remove"
    DEFAULT = "default"
    VOLUME = "volume"
