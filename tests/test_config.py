"""Tests for configuration system."""

from pathlib import Path

import pytest

from backlight_manager.config import Config, config_file_path, parse_lines
from backlight_manager.errors import ConfigError, SensorNotFoundError

SAMPLE = """\
sensor_path=/sys/bus/iio/devices
sensor_file=in_illuminance_raw
keyboard_backlight_path=/sys/class/leds/tpacpi::kbd_backlight
screen_backlight_path=/sys/class/backlight/intel_backlight
brightness_factor=0.5
update_rate=3
min_brightness=15
"""


def test_config_defaults():
    """Config has usable defaults."""
    config = Config()
    assert config.brightness_factor == 1.0
    assert config.update_rate == 1
    assert config.min_brightness == 0
    assert config.resolved_sensor_path is None


def test_config_paths(tmp_path: Path):
    """Runtime paths derive from runtime_dir and state_dir."""
    config = Config(runtime_dir=tmp_path / "run", state_dir=tmp_path / "state")
    assert config.pid_path == tmp_path / "run" / "daemon.pid"
    assert config.fifo_path == tmp_path / "run" / "daemon.fifo"
    assert config.log_path == tmp_path / "state" / "daemon.log"


def test_default_runtime_dir():
    """Default runtime files live in /tmp so they don't survive a reboot."""
    assert Config().pid_path == Path("/tmp/backlight-manager/daemon.pid")


def test_config_file_path_uses_xdg(monkeypatch, tmp_path: Path):
    """XDG_CONFIG_HOME decides the config location."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    assert config_file_path() == tmp_path / "backlight_manager" / "backlight_manager.conf"


def test_config_file_path_fallback(monkeypatch):
    """Without XDG_CONFIG_HOME the path is relative to the working directory."""
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    assert config_file_path() == Path(".config/backlight_manager/backlight_manager.conf")


def test_parse_lines_value_stops_at_whitespace():
    """Values are matched up to the first whitespace."""
    data = parse_lines("sensor_file=in_illuminance_raw  # comment\n")
    assert data == {"sensor_file": "in_illuminance_raw"}


def test_parse_lines_skips_junk():
    """Lines without '=' or with an empty key/value are ignored."""
    data = parse_lines("just text\n=orphan\nupdate_rate=\nupdate_rate=2\n")
    assert data == {"update_rate": "2"}


def test_config_load_reads_values(tmp_path: Path):
    """Config.load() reads every key."""
    path = tmp_path / "backlight_manager.conf"
    path.write_text(SAMPLE)

    config = Config.load(path)

    assert config.sensor_path == "/sys/bus/iio/devices"
    assert config.sensor_file == "in_illuminance_raw"
    assert config.keyboard_backlight_path == "/sys/class/leds/tpacpi::kbd_backlight"
    assert config.screen_backlight_path == "/sys/class/backlight/intel_backlight"
    assert config.brightness_factor == 0.5
    assert config.update_rate == 3
    assert config.min_brightness == 15


def test_config_load_partial_uses_defaults(tmp_path: Path):
    """Missing keys keep their defaults; unknown keys are ignored."""
    path = tmp_path / "backlight_manager.conf"
    path.write_text("update_rate=5\nfancy_mode=on\n")

    config = Config.load(path)

    assert config.update_rate == 5
    assert config.brightness_factor == Config().brightness_factor


def test_config_load_missing_file_returns_defaults(tmp_path: Path):
    """A missing config file is not fatal."""
    config = Config.load(tmp_path / "missing.conf")
    assert config.update_rate == Config().update_rate


def test_config_load_keeps_overrides(tmp_path: Path):
    """Keyword overrides such as runtime_dir survive loading a file."""
    path = tmp_path / "backlight_manager.conf"
    path.write_text(SAMPLE)

    config = Config.load(path, runtime_dir=tmp_path / "run")

    assert config.runtime_dir == tmp_path / "run"
    assert config.update_rate == 3


@pytest.mark.parametrize(
    "line,message",
    [
        ("update_rate=fast", "update_rate"),
        ("brightness_factor=lots", "brightness_factor"),
        ("brightness_factor=nan", "finite"),
        ("min_brightness=150", "min_brightness"),
        ("update_rate=0", "update_rate"),
    ],
)
def test_config_load_invalid_values(tmp_path: Path, line: str, message: str):
    """Unusable values raise ConfigError."""
    path = tmp_path / "backlight_manager.conf"
    path.write_text(line + "\n")

    with pytest.raises(ConfigError, match=message):
        Config.load(path)


def test_min_brightness_absolute():
    """Percent floor converts to device units, rounding down."""
    config = Config(min_brightness=10)
    assert config.min_brightness_absolute(100) == 10
    assert config.min_brightness_absolute(937) == 93
    assert Config(min_brightness=0).min_brightness_absolute(937) == 0


def test_resolve_sensor(config: Config, sensor_root: Path):
    """resolve_sensor() stores the device directory."""
    assert config.resolved_sensor_path == sensor_root / "iio:device1"


def test_resolve_sensor_failure(tmp_path: Path):
    """Sensor resolution failure propagates."""
    config = Config(sensor_path=str(tmp_path))

    with pytest.raises(SensorNotFoundError):
        config.resolve_sensor()


def test_summary_lists_resolved_path(config: Config):
    """summary() includes the resolved sensor directory."""
    rows = dict(config.summary())
    assert rows["Sensor File Path"] == str(config.resolved_sensor_path)
    assert rows["Update Rate"] == "1"
    assert rows["Brightness Factor"] == "2.000000"
