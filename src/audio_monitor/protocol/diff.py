"""Change detection between successive snapshots.

Everything here is a pure function: the previous snapshot is passed in and the
new baseline is handed back, so the caller decides when the baseline moves.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from pydantic import BaseModel, ConfigDict

from .models import DeviceSnapshot

__all__ = [
    "ChangeMask",
    "diff",
    "advance",
    "advance_devices",
]


class ChangeMask(BaseModel):
    """Per-field flags telling which snapshot fields changed.

    A fresh mask has every flag False.
    """

    model_config = ConfigDict(extra="forbid")

    id: bool = False
    name: bool = False
    volume: bool = False
    muted: bool = False
    data_flow: bool = False
    is_default: bool = False
    channels: bool = False
    bit_depth: bool = False
    sample_rate: bool = False

    @property
    def changed_fields(self) -> list[str]:
        return [name for name in type(self).model_fields if getattr(self, name)]

    @property
    def any_changed(self) -> bool:
        return bool(self.changed_fields)


def diff(previous: DeviceSnapshot | None, current: DeviceSnapshot) -> ChangeMask:
    """Compare two snapshots field by field.

    Only known fields present in ``current`` are considered. Every such field
    is marked when there is no previous snapshot.
    """
    flags: dict[str, bool] = {}
    for name in current.present_fields():
        if previous is None:
            flags[name] = True
        else:
            flags[name] = getattr(previous, name) != getattr(current, name)
    return ChangeMask(**flags)


def advance(
    previous: DeviceSnapshot | None,
    current: DeviceSnapshot,
) -> tuple[ChangeMask, DeviceSnapshot]:
    """Diff and return the mask together with the next baseline."""
    return diff(previous, current), current


def advance_devices(
    baseline: Mapping[str, DeviceSnapshot],
    devices: Iterable[DeviceSnapshot],
) -> tuple[list[tuple[DeviceSnapshot, ChangeMask]], list[DeviceSnapshot], dict[str, DeviceSnapshot]]:
    """Diff a full device list against a baseline keyed by device id.

    Returns:
        Tuple of (changed devices with their masks, devices that disappeared,
        new baseline). Devices whose mask is all False are not reported.
    """
    changed: list[tuple[DeviceSnapshot, ChangeMask]] = []
    new_baseline: dict[str, DeviceSnapshot] = {}

    for device in devices:
        mask = diff(baseline.get(device.id), device)
        if mask.any_changed:
            changed.append((device, mask))
        new_baseline[device.id] = device

    removed = [snap for dev_id, snap in baseline.items() if dev_id not in new_baseline]
    return changed, removed, new_baseline
