"""Exception taxonomy for the device monitor.

Synchronous failures (bad command arguments, writes without a live process)
are raised to the caller. Everything that happens asynchronously is turned into
an ``error`` event by the supervisor and never crosses the pipeline boundary.
"""

from __future__ import annotations

__all__ = [
    "AudioMonitorError",
    "SpawnError",
    "DecodeError",
    "ValidationError",
    "ChannelUnavailable",
    "AbnormalExit",
    "ForcedTermination",
    "FrameTooLarge",
]


class AudioMonitorError(Exception):
    """Base exception for the monitor."""
    pass


class SpawnError(AudioMonitorError):
    """The executable is missing or the OS refused to create the process."""
    pass


class DecodeError(AudioMonitorError):
    """A stdout record could not be decoded.

    Returned by the decoder rather than raised.

    Attributes:
        raw: The offending record
        reason: Why decoding failed
    """

    def __init__(self, raw: str, reason: str) -> None:
        self.raw = raw
        self.reason = reason
        super().__init__(f"Failed to parse data: {reason}")


class ValidationError(AudioMonitorError):
    """Invalid command argument; the command is never written."""
    pass


class ChannelUnavailable(AudioMonitorError):
    """No live process or stdin to write a command to."""
    pass


class AbnormalExit(AudioMonitorError):
    """The child ended with a nonzero code or by a signal nobody asked for.

    Attributes:
        code: Process exit code, None when ended by a signal
        signal: Signal name when ended by a signal
    """

    def __init__(self, code: int | None, signal: str | None = None) -> None:
        self.code = code
        self.signal = signal
        if signal is not None:
            super().__init__(f"Process terminated by {signal}")
        else:
            super().__init__(f"Process exited with code {code}")


class ForcedTermination(AudioMonitorError):
    """The graceful shutdown deadline passed and the child was killed."""
    pass


class FrameTooLarge(AudioMonitorError):
    """Unterminated stdout data grew beyond the configured limit.

    Attributes:
        size: Buffered fragment size in bytes
        limit: Configured maximum
    """

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"Unterminated record of {size} bytes exceeds limit of {limit} bytes")
