"""Exception hierarchy for backlight-manager.

Every error carries a one-line message naming the failing operation and,
where there is one, the underlying OS error text. The CLI prints that line
and exits non-zero.
"""

from __future__ import annotations

from pathlib import Path


class BacklightError(Exception):
    """Base class for all expected failures."""


class ConfigError(BacklightError):
    """Configuration file holds a value that cannot be used."""


class SysfsError(BacklightError):
    """A sysfs value could not be read or written."""

    def __init__(self, operation: str, path: Path | str, reason: str):
        self.operation = operation
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{operation} {self.path}: {reason}")


class SensorNotFoundError(BacklightError):
    """No device directory exposes the configured sensor file."""


class ChannelError(BacklightError):
    """The command FIFO could not be created, opened or written."""


class DaemonError(BacklightError):
    """Daemonization or daemon control failed."""
