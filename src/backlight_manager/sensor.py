"""Ambient light sensor discovery.

IIO sensors appear under a device root such as ``/sys/bus/iio/devices`` as
``iio:device0``, ``iio:device1`` and so on, with numbering that is not stable
across boots. The sensor is identified by the value file it exposes rather
than by its directory name.
"""

import os
from pathlib import Path

import structlog

from backlight_manager.errors import SensorNotFoundError

log = structlog.get_logger()


def find_sensor_dir(devices_path: Path | str, filename: str) -> Path:
    """Return the first device directory under devices_path holding a readable filename.

    Subdirectories are checked in name order so the result is deterministic
    when several devices expose the same file.

    Raises:
        SensorNotFoundError: If devices_path cannot be listed or no device matches.
    """
    root = Path(devices_path)
    if not filename:
        raise SensorNotFoundError("Sensor lookup failed: no sensor_file configured")

    try:
        entries = sorted(root.iterdir(), key=lambda p: p.name)
    except OSError as e:
        raise SensorNotFoundError(
            f"Error opening sensor devices directory {root}: {e.strerror or e}"
        ) from e

    for entry in entries:
        candidate = entry / filename
        if candidate.is_file() and os.access(candidate, os.R_OK):
            log.debug("sensor_found", path=str(entry), file=filename)
            return entry

    raise SensorNotFoundError(f"Sensor file not found: no device in {root} provides {filename}")
