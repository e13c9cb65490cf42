"""Record decoder.

Turns one framed stdout record into a snapshot (variant A) or an envelope
(variant B). Bad input is reported as a returned ``DecodeError`` so that one
malformed line never stops the monitor.
"""

from __future__ import annotations

import logging

import pydantic

from ..errors import DecodeError
from .base import ProtocolVariant
from .models import DeviceEnvelope, DeviceSnapshot

__all__ = ["decode_record", "DecodedRecord"]

logger = logging.getLogger(__name__)

DecodedRecord = DeviceSnapshot | DeviceEnvelope

# Keeps error messages readable when the child prints something huge
_MAX_RAW_IN_REASON = 200


def _describe(exc: pydantic.ValidationError) -> str:
    """Condense pydantic errors into one line."""
    parts = []
    for error in exc.errors(include_url=False):
        loc = ".".join(str(p) for p in error.get("loc", ())) or "<record>"
        parts.append(f"{loc}: {error.get('msg', 'invalid')}")
    return "; ".join(parts)


def decode_record(
    record: str,
    variant: ProtocolVariant = ProtocolVariant.A,
) -> DecodedRecord | DecodeError:
    """Decode one record.

    Args:
        record: One complete line without its terminator
        variant: Protocol variant the child speaks

    Returns:
        DeviceSnapshot for variant A, DeviceEnvelope for variant B, or a
        DecodeError carrying the raw record and the failure reason.
    """
    text = record.strip()
    if not text:
        return DecodeError(record, "empty record")

    model: type[DeviceSnapshot] | type[DeviceEnvelope] = (
        DeviceEnvelope if variant is ProtocolVariant.B else DeviceSnapshot
    )
    try:
        return model.model_validate_json(text)
    except pydantic.ValidationError as e:
        reason = _describe(e)
        logger.debug(f"Undecodable record ({reason}): {text[:_MAX_RAW_IN_REASON]}")
        return DecodeError(record, reason)
