"""Caller-facing events.

Every notification is one of a closed set of event models, tagged by ``kind``.
Listeners subscribe per kind, so each callback receives exactly one payload
shape:

    bus = EventBus()
    bus.on_change(lambda ev: print(ev.snapshot.volume, ev.changes.volume))
    bus.on_exit(lambda ev: print("exited", ev.code))
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from .protocol.diff import ChangeMask
from .protocol.models import DeviceAction, DeviceSnapshot

__all__ = [
    "ErrorType",
    "MonitorEventBase",
    "ChangeEvent",
    "RemoveEvent",
    "ErrorEvent",
    "ExitEvent",
    "ForceExitEvent",
    "MonitorEvent",
    "EventBus",
]

logger = logging.getLogger(__name__)

ErrorType = Literal[
    "spawn",
    "decode",
    "frame",
    "stderr",
    "process",
    "abnormal_exit",
    "channel",
    "state",
]


class MonitorEventBase(BaseModel):
    """Base of all monitor events.

    Attributes:
        timestamp: Unix time (seconds) the event was created
    """

    model_config = ConfigDict(frozen=True)

    timestamp: float = Field(default_factory=time.time)


class ChangeEvent(MonitorEventBase):
    """A snapshot together with the fields that changed since the last one.

    ``action`` is only set for variant B records.
    """

    kind: Literal["change"] = "change"
    snapshot: DeviceSnapshot
    changes: ChangeMask
    action: DeviceAction | None = None


class RemoveEvent(MonitorEventBase):
    """A device listed in the previous variant B record is gone."""

    kind: Literal["remove"] = "remove"
    device_id: str
    snapshot: DeviceSnapshot


class ErrorEvent(MonitorEventBase):
    """Any failure; the supervisor keeps running unless an exit follows."""

    kind: Literal["error"] = "error"
    message: str
    error_type: ErrorType = "process"


class ExitEvent(MonitorEventBase):
    """The child process is gone.

    Attributes:
        code: Exit code, None when the process was ended by a signal
        signal: Signal name when the process was ended by a signal
    """

    kind: Literal["exit"] = "exit"
    code: int | None = None
    signal: str | None = None


class ForceExitEvent(MonitorEventBase):
    """The graceful shutdown deadline passed and a hard kill was sent."""

    kind: Literal["force_exit"] = "force_exit"
    message: str


MonitorEvent = ChangeEvent | RemoveEvent | ErrorEvent | ExitEvent | ForceExitEvent

E = TypeVar("E", bound=MonitorEventBase)


class EventBus:
    """Typed publish/subscribe for monitor events.

    Listeners run synchronously in emission order. A failing listener is
    logged and does not prevent the others from running.
    """

    def __init__(self) -> None:
        self._listeners: dict[type[MonitorEventBase], list[Callable[[Any], None]]] = {}
        self._catch_all: list[Callable[[MonitorEvent], None]] = []

    def _add(self, event_type: type[E], callback: Callable[[E], None]) -> Callable[[], None]:
        bucket = self._listeners.setdefault(event_type, [])
        bucket.append(callback)

        def unsubscribe() -> None:
            if callback in bucket:
                bucket.remove(callback)

        return unsubscribe

    def on_change(self, callback: Callable[[ChangeEvent], None]) -> Callable[[], None]:
        return self._add(ChangeEvent, callback)

    def on_remove(self, callback: Callable[[RemoveEvent], None]) -> Callable[[], None]:
        return self._add(RemoveEvent, callback)

    def on_error(self, callback: Callable[[ErrorEvent], None]) -> Callable[[], None]:
        return self._add(ErrorEvent, callback)

    def on_exit(self, callback: Callable[[ExitEvent], None]) -> Callable[[], None]:
        return self._add(ExitEvent, callback)

    def on_force_exit(self, callback: Callable[[ForceExitEvent], None]) -> Callable[[], None]:
        return self._add(ForceExitEvent, callback)

    def subscribe_all(self, callback: Callable[[MonitorEvent], None]) -> Callable[[], None]:
        """Receive every event regardless of kind."""
        self._catch_all.append(callback)

        def unsubscribe() -> None:
            if callback in self._catch_all:
                self._catch_all.remove(callback)

        return unsubscribe

    def listener_count(self, event_type: type[MonitorEventBase] | None = None) -> int:
        if event_type is None:
            return sum(len(b) for b in self._listeners.values()) + len(self._catch_all)
        return len(self._listeners.get(event_type, []))

    def emit(self, event: MonitorEvent) -> None:
        # Copy so listeners may unsubscribe while being called
        callbacks = [
            *self._listeners.get(type(event), []),
            *self._catch_all,
        ]
        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Error in {event.kind} listener {callback!r}: {e}")
