"""Device snapshot models.

audio-monitor protocol v0.1.0

Wire payloads printed by the device executable, one JSON object per line.
Design rules:
1. Unknown fields are kept (extra='allow') and travel with the snapshot
2. Both camelCase wire names and snake_case names are accepted
3. Inbound volume is not range-checked; the producer clamps it
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .base import ActionType

__all__ = [
    "DeviceSnapshot",
    "ActionDevice",
    "DeviceAction",
    "DeviceEnvelope",
    "KNOWN_FIELDS",
]


class DeviceSnapshot(BaseModel):
    """State of one device at one observed instant.

    Attributes:
        id: Device identifier
        name: Display name
        volume: Volume level, nominally 0-100
        muted: Mute flag (wire name ``muted`` or ``isMuted``)
        data_flow: Render/capture direction (extended)
        is_default: Whether this is the default device (extended)
        channels: Channel count (extended)
        bit_depth: Bits per sample (extended)
        sample_rate: Sample rate in Hz (extended)
    """

    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        frozen=True,
    )

    id: str
    name: str
    volume: int
    muted: bool = Field(validation_alias=AliasChoices("muted", "isMuted"))
    data_flow: str | None = Field(default=None, validation_alias=AliasChoices("data_flow", "dataFlow"))
    is_default: bool | None = Field(default=None, validation_alias=AliasChoices("is_default", "isDefault"))
    channels: int | None = None
    bit_depth: int | None = Field(default=None, validation_alias=AliasChoices("bit_depth", "bitDepth"))
    sample_rate: int | None = Field(default=None, validation_alias=AliasChoices("sample_rate", "sampleRate"))

    def present_fields(self) -> set[str]:
        """Known fields that were actually supplied for this snapshot."""
        return self.model_fields_set & KNOWN_FIELDS

    @property
    def extra_fields(self) -> dict[str, Any]:
        """Fields outside the known schema, kept as received."""
        return dict(self.model_extra or {})


# Field names that participate in change masks
KNOWN_FIELDS: frozenset[str] = frozenset(DeviceSnapshot.model_fields)


class ActionDevice(BaseModel):
    """Partial device description attached to a variant B action."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    name: str | None = None
    volume: int | None = None
    muted: bool | None = Field(default=None, validation_alias=AliasChoices("muted", "isMuted"))
    data_flow: str | None = Field(default=None, validation_alias=AliasChoices("data_flow", "dataFlow"))
    is_default: bool | None = Field(default=None, validation_alias=AliasChoices("is_default", "isDefault"))
    channels: int | None = None
    bit_depth: int | None = Field(default=None, validation_alias=AliasChoices("bit_depth", "bitDepth"))
    sample_rate: int | None = Field(default=None, validation_alias=AliasChoices("sample_rate", "sampleRate"))


class DeviceAction(BaseModel):
    """Action tag of a variant B envelope."""

    model_config = ConfigDict(extra="ignore")

    type: ActionType
    device: ActionDevice | None = None


class DeviceEnvelope(BaseModel):
    """Variant B record: the triggering action plus the full device list."""

    model_config = ConfigDict(extra="ignore")

    action: DeviceAction
    devices: list[DeviceSnapshot] = Field(default_factory=list)
