"""Shared test fixtures for backlight-manager."""

import logging
from pathlib import Path

import psutil
import pytest
import structlog

from backlight_manager import daemon
from backlight_manager.config import Config


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers installed by configure() so tests don't share streams."""
    yield
    logging.getLogger().handlers.clear()
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def own_process_is_daemon(monkeypatch):
    """Count this process as a daemon.

    Tests register their own PID in the marker, and forked test daemons keep
    the test runner's command line, which does not name the program.
    """
    own_cmdline = " ".join(psutil.Process().cmdline()).lower()
    monkeypatch.setattr(daemon, "DAEMON_NAMES", (*daemon.DAEMON_NAMES, own_cmdline))


def make_backlight_dir(base: Path, max_brightness: int = 100, brightness: int = 50) -> Path:
    """Create a fake backlight class device.

    actual_brightness is a symlink to brightness so writes show up in reads,
    as they do on real hardware.
    """
    bl = base / "intel_backlight"
    bl.mkdir(parents=True)
    (bl / "max_brightness").write_text(f"{max_brightness}\n")
    (bl / "brightness").write_text(f"{brightness}\n")
    (bl / "actual_brightness").symlink_to("brightness")
    return bl


def make_sensor_root(base: Path, reading: float = 3, filename: str = "in_illuminance_raw") -> Path:
    """Create a fake IIO device tree with the sensor on the second device."""
    root = base / "iio_devices"
    (root / "iio:device0").mkdir(parents=True)
    (root / "iio:device0" / "in_accel_x_raw").write_text("0\n")
    (root / "iio:device1").mkdir()
    (root / "iio:device1" / filename).write_text(f"{reading}\n")
    return root


def set_sensor(config: Config, reading: float) -> None:
    """Change the fake sensor reading."""
    assert config.resolved_sensor_path is not None
    (config.resolved_sensor_path / config.sensor_file).write_text(f"{reading}\n")


def read_brightness(config: Config) -> int:
    """Read back the level last written to the fake backlight."""
    return int((Path(config.screen_backlight_path) / "brightness").read_text())


@pytest.fixture
def backlight_dir(tmp_path: Path) -> Path:
    return make_backlight_dir(tmp_path / "backlight")


@pytest.fixture
def sensor_root(tmp_path: Path) -> Path:
    return make_sensor_root(tmp_path)


@pytest.fixture
def config(tmp_path: Path, backlight_dir: Path, sensor_root: Path) -> Config:
    """Config pointing at the fake device tree, with runtime files under tmp_path.

    update_rate=1, brightness_factor=2.0, min_brightness=10, max_brightness=100.
    """
    cfg = Config(
        sensor_path=str(sensor_root),
        sensor_file="in_illuminance_raw",
        keyboard_backlight_path=str(tmp_path / "kbd_backlight"),
        screen_backlight_path=str(backlight_dir),
        brightness_factor=2.0,
        update_rate=1,
        min_brightness=10,
        runtime_dir=tmp_path / "run",
        state_dir=tmp_path / "state",
    )
    cfg.resolve_sensor()
    return cfg
