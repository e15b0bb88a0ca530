"""Tests for sensor discovery."""

from pathlib import Path

import pytest

from backlight_manager.errors import SensorNotFoundError
from backlight_manager.sensor import find_sensor_dir


def test_finds_device_with_file(sensor_root: Path):
    """The device exposing the file is returned, not the first device."""
    found = find_sensor_dir(sensor_root, "in_illuminance_raw")

    assert found == sensor_root / "iio:device1"


def test_first_match_in_name_order(sensor_root: Path):
    """With several matches, the lowest-named device wins."""
    (sensor_root / "iio:device0" / "in_illuminance_raw").write_text("1\n")

    assert find_sensor_dir(sensor_root, "in_illuminance_raw") == sensor_root / "iio:device0"


def test_directory_named_like_file_is_skipped(sensor_root: Path):
    """A subdirectory with the right name is not a readable value file."""
    (sensor_root / "iio:device0" / "in_illuminance_raw").mkdir()

    assert find_sensor_dir(sensor_root, "in_illuminance_raw") == sensor_root / "iio:device1"


def test_no_matching_device(sensor_root: Path):
    """No device with the file raises SensorNotFoundError."""
    with pytest.raises(SensorNotFoundError, match="in_proximity_raw"):
        find_sensor_dir(sensor_root, "in_proximity_raw")


def test_missing_root(tmp_path: Path):
    """A missing device root raises SensorNotFoundError."""
    with pytest.raises(SensorNotFoundError, match="Error opening"):
        find_sensor_dir(tmp_path / "nope", "in_illuminance_raw")


def test_empty_filename(sensor_root: Path):
    """An unset sensor_file never matches a directory."""
    with pytest.raises(SensorNotFoundError):
        find_sensor_dir(sensor_root, "")
