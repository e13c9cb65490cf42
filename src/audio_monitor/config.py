"""Environment configuration.

Environment variables:
    AUDIO_MONITOR_EXEC_PATH: Path to the device executable
        - Default: ``bin/af-win-audio.exe`` next to this package

    AUDIO_MONITOR_PROTOCOL: Wire protocol variant
        - a = spawn with ``<delay> <step>``, flat snapshots (default)
        - b = spawn without arguments, ``{action, devices}`` envelopes

    AUDIO_MONITOR_DELAY_MS: Polling interval passed to the executable
        - Default 250, values below 100 are raised to 100

    AUDIO_MONITOR_VOLUME_STEP: Default volume step
        - Default 5, clamped to 1-100

    AUDIO_MONITOR_SHUTDOWN_TIMEOUT_MS: Grace period before a hard kill
        - Default 3000

    AUDIO_MONITOR_MAX_FRAME_SIZE: Largest unterminated stdout record in bytes
        - Default 1048576

    AUDIO_MONITOR_LOG_DEBUG: Debug logging
        - true/1/yes = log at DEBUG level to a temp file
        - false/0/no = log at INFO level to stderr (default)

    AUDIO_MONITOR_SIGNAL_DOUBLE_TAP_WINDOW: Seconds in which a second
        SIGINT/SIGTERM escalates to an immediate kill
        - Default 1.0
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .protocol.base import ProtocolVariant
from .protocol.commands import MIN_DELAY_MS
from .runtime.framing import DEFAULT_MAX_FRAME_SIZE

__all__ = [
    "Config",
    "load_config",
    "get_config",
    "reload_config",
    "DEFAULT_EXEC_PATH",
]

ENV_PREFIX = "AUDIO_MONITOR_"

DEFAULT_EXEC_PATH = Path(__file__).parent / "bin" / "af-win-audio.exe"
DEFAULT_DELAY_MS = 250
DEFAULT_VOLUME_STEP = 5
DEFAULT_SHUTDOWN_TIMEOUT_MS = 3000


def _env(name: str) -> str | None:
    return os.environ.get(ENV_PREFIX + name)


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment value."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_int(value: str | None, default: int, minimum: int, maximum: int | None = None) -> int:
    """Parse an integer, clamping it to the given range."""
    if not value or not value.strip():
        return default
    try:
        number = int(value.strip())
    except ValueError:
        return default
    number = max(minimum, number)
    if maximum is not None:
        number = min(number, maximum)
    return number


def _parse_double_tap_window(value: str | None) -> float:
    if not value:
        return 1.0
    try:
        window = float(value)
        return max(0.1, min(window, 10.0))
    except ValueError:
        return 1.0


@dataclass
class Config:
    """Monitor configuration.

    Attributes:
        exec_path: Device executable
        protocol: Wire protocol variant
        delay_ms: Polling interval for the executable
        volume_step: Default volume step
        shutdown_timeout_ms: Grace period before a hard kill
        max_frame_size: Largest unterminated stdout record
        log_debug: Debug logging to a temp file
        log_file: Log file path (set when log_debug is on)
        signal_double_tap_window: Second-signal escalation window (seconds)
    """

    exec_path: Path = DEFAULT_EXEC_PATH
    protocol: ProtocolVariant = ProtocolVariant.A
    delay_ms: int = DEFAULT_DELAY_MS
    volume_step: int = DEFAULT_VOLUME_STEP
    shutdown_timeout_ms: int = DEFAULT_SHUTDOWN_TIMEOUT_MS
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE
    log_debug: bool = False
    log_file: str | None = None
    signal_double_tap_window: float = 1.0

    @property
    def shutdown_timeout(self) -> float:
        """Grace period in seconds."""
        return self.shutdown_timeout_ms / 1000.0

    def __repr__(self) -> str:
        return (
            f"Config(exec_path={self.exec_path}, "
            f"protocol={self.protocol.value}, "
            f"delay_ms={self.delay_ms}, "
            f"volume_step={self.volume_step}, "
            f"shutdown_timeout_ms={self.shutdown_timeout_ms}, "
            f"max_frame_size={self.max_frame_size}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"signal_double_tap_window={self.signal_double_tap_window})"
        )


def _generate_log_file_path() -> str:
    """Build a timestamped log file path under the system temp directory."""
    log_dir = Path(tempfile.gettempdir()) / "audio-monitor"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"audio_monitor_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """Load configuration from environment variables."""
    log_debug = _parse_bool(_env("LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    exec_path = _env("EXEC_PATH")
    protocol = _env("PROTOCOL")

    return Config(
        exec_path=Path(exec_path) if exec_path else DEFAULT_EXEC_PATH,
        protocol=ProtocolVariant.from_string(protocol) if protocol else ProtocolVariant.A,
        delay_ms=_parse_int(_env("DELAY_MS"), DEFAULT_DELAY_MS, MIN_DELAY_MS),
        volume_step=_parse_int(_env("VOLUME_STEP"), DEFAULT_VOLUME_STEP, 1, 100),
        shutdown_timeout_ms=_parse_int(
            _env("SHUTDOWN_TIMEOUT_MS"), DEFAULT_SHUTDOWN_TIMEOUT_MS, 0
        ),
        max_frame_size=_parse_int(_env("MAX_FRAME_SIZE"), DEFAULT_MAX_FRAME_SIZE, 1),
        log_debug=log_debug,
        log_file=log_file,
        signal_double_tap_window=_parse_double_tap_window(_env("SIGNAL_DOUBLE_TAP_WINDOW")),
    )


_config: Config | None = None


def get_config() -> Config:
    """Return the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload configuration (used by tests)."""
    global _config
    _config = load_config()
    return _config
