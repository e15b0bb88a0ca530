"""Single-value sysfs file access.

Backlight class devices expose plain decimal text files:

    <backlight_dir>/max_brightness     read once at startup
    <backlight_dir>/actual_brightness  current hardware level
    <backlight_dir>/brightness         write target level

Sensor devices expose their reading the same way. Every call opens, reads or
writes, and closes the file; nothing is cached.
"""

import math
from pathlib import Path

import structlog

from backlight_manager.errors import SysfsError

log = structlog.get_logger()

MAX_BRIGHTNESS = "max_brightness"
ACTUAL_BRIGHTNESS = "actual_brightness"
BRIGHTNESS = "brightness"


def _read_token(path: Path) -> str:
    try:
        text = path.read_text()
    except OSError as e:
        raise SysfsError("read", path, e.strerror or str(e)) from e

    parts = text.split()
    if not parts:
        raise SysfsError("read", path, "file is empty")
    return parts[0]


def read_value(directory: Path | str, filename: str) -> int:
    """Read the integer held in ``<directory>/<filename>``.

    Raises:
        SysfsError: If the file cannot be read or does not start with an integer.
    """
    path = Path(directory) / filename
    token = _read_token(path)
    try:
        return int(token)
    except ValueError as e:
        raise SysfsError("parse", path, f"not an integer: {token!r}") from e


def read_float(directory: Path | str, filename: str) -> float:
    """Read a numeric value (integer or decimal) from ``<directory>/<filename>``.

    Raises:
        SysfsError: If the file cannot be read or does not hold a finite number.
    """
    path = Path(directory) / filename
    token = _read_token(path)
    try:
        value = float(token)
    except ValueError as e:
        raise SysfsError("parse", path, f"not a number: {token!r}") from e
    if not math.isfinite(value):
        raise SysfsError("parse", path, f"not a finite number: {token!r}")
    return value


def clamp_brightness(value: int, max_brightness: int) -> int:
    """Clamp a brightness level to [1, max_brightness].

    The lower bound is 1, not 0: many panels switch the backlight off at 0.
    """
    return max(1, min(value, max_brightness))


def set_backlight_brightness(directory: Path | str, value: int, max_brightness: int) -> int:
    """Write a clamped brightness level to ``<directory>/brightness``.

    Args:
        directory: Backlight class device directory
        value: Requested level, any integer
        max_brightness: Upper bound read from max_brightness

    Returns:
        The level actually written.

    Raises:
        SysfsError: If the brightness file cannot be written.
    """
    level = clamp_brightness(int(value), max_brightness)
    path = Path(directory) / BRIGHTNESS
    try:
        with open(path, "w") as f:
            f.write(str(level))
    except OSError as e:
        raise SysfsError("write", path, e.strerror or str(e)) from e

    log.debug("brightness_written", path=str(path), requested=value, level=level)
    return level
