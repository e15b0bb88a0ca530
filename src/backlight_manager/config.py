"""Configuration system for backlight-manager.

The config file is line-oriented ``key=value`` text, one setting per line:

    sensor_path=/sys/bus/iio/devices
    sensor_file=in_illuminance_raw
    keyboard_backlight_path=/sys/class/leds/tpacpi::kbd_backlight
    screen_backlight_path=/sys/class/backlight/intel_backlight
    brightness_factor=0.5
    update_rate=2
    min_brightness=5

Values run up to the first whitespace and are not quoted. Unknown keys and
lines without ``=`` are ignored.
"""

import math
import os
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from backlight_manager.errors import ConfigError
from backlight_manager.sensor import find_sensor_dir

log = structlog.get_logger()

APP_DIR = "backlight_manager"
CONFIG_FILE = "backlight_manager.conf"


def config_file_path() -> Path:
    """Return the config file location.

    Uses $XDG_CONFIG_HOME when set, otherwise a path relative to the working
    directory (``.config/...``), which resolves correctly when run from $HOME.
    """
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config_home:
        return Path(xdg_config_home) / APP_DIR / CONFIG_FILE
    return Path(".config") / APP_DIR / CONFIG_FILE


def _default_state_dir() -> Path:
    xdg_state_home = os.environ.get("XDG_STATE_HOME")
    base = Path(xdg_state_home) if xdg_state_home else Path.home() / ".local" / "state"
    return base / "backlight-manager"


def parse_lines(text: str) -> dict[str, str]:
    """Split config text into a key -> raw value mapping.

    The key is everything before the first ``=``; the value is the next
    whitespace-delimited token. Lines with an empty key or value are skipped.
    Later lines override earlier ones.
    """
    values: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, rest = line.partition("=")
        if not sep or not key:
            continue
        tokens = rest.split()
        if not tokens:
            continue
        values[key] = tokens[0]
    return values


def _to_int(key: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"Invalid {key}: {raw!r} is not an integer") from e


def _to_float(key: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"Invalid {key}: {raw!r} is not a number") from e
    if not math.isfinite(value):
        raise ConfigError(f"Invalid {key}: {raw!r} is not finite")
    return value


@dataclass
class Config:
    """Resolved configuration record.

    Runtime paths (PID marker, command FIFO, log file) are fields rather than
    constants so tests and alternative setups can point them elsewhere.
    """

    sensor_path: str = "/sys/bus/iio/devices"
    sensor_file: str = "in_illuminance_raw"
    keyboard_backlight_path: str = ""
    screen_backlight_path: str = "/sys/class/backlight/intel_backlight"
    brightness_factor: float = 1.0
    update_rate: int = 1  # Seconds between control loop iterations
    min_brightness: int = 0  # Percent of max_brightness, floor for ambient mode

    resolved_sensor_path: Path | None = None
    runtime_dir: Path = field(default_factory=lambda: Path("/tmp/backlight-manager"))
    state_dir: Path = field(default_factory=_default_state_dir)

    @property
    def pid_path(self) -> Path:
        """PID marker file path."""
        return self.runtime_dir / "daemon.pid"

    @property
    def fifo_path(self) -> Path:
        """Named pipe used to send commands to the daemon."""
        return self.runtime_dir / "daemon.fifo"

    @property
    def log_path(self) -> Path:
        """Daemon log path (JSON Lines)."""
        return self.state_dir / "daemon.log"

    def min_brightness_absolute(self, max_brightness: int) -> int:
        """Convert min_brightness percent into a level for this device."""
        return int(max_brightness * self.min_brightness / 100)

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ConfigError: If a value is outside its valid range.
        """
        if not 0 <= self.min_brightness <= 100:
            raise ConfigError(f"min_brightness must be 0-100, got {self.min_brightness}")
        if self.update_rate < 1:
            raise ConfigError(f"update_rate must be >= 1, got {self.update_rate}")

    def resolve_sensor(self) -> Path:
        """Locate the sensor device directory and store it on the config.

        Raises:
            SensorNotFoundError: If no device exposes sensor_file.
        """
        self.resolved_sensor_path = find_sensor_dir(self.sensor_path, self.sensor_file)
        return self.resolved_sensor_path

    def summary(self) -> list[tuple[str, str]]:
        """Label/value rows describing the resolved config."""
        return [
            ("Sensor Path", self.sensor_path),
            ("Sensor File", self.sensor_file),
            ("Sensor File Path", str(self.resolved_sensor_path or "")),
            ("Keyboard Backlight Path", self.keyboard_backlight_path),
            ("Screen Backlight Path", self.screen_backlight_path),
            ("Update Rate", str(self.update_rate)),
            ("Brightness Factor", f"{self.brightness_factor:f}"),
            ("Min Brightness", f"{self.min_brightness}%"),
        ]

    @classmethod
    def load(cls, path: Path | None = None, **overrides: object) -> "Config":
        """Load config from file, returning defaults for missing values.

        A missing file is not an error: defaults are returned and a warning
        is logged. Keyword overrides (e.g. runtime_dir) are applied as-is.

        Raises:
            ConfigError: If the file exists but cannot be read, or a value is invalid.
        """
        path = path or config_file_path()
        defaults = cls(**overrides)  # type: ignore[arg-type]

        if not path.exists():
            log.warning("config_missing", path=str(path))
            return defaults

        try:
            text = path.read_text()
        except OSError as e:
            raise ConfigError(f"could not open config file {path}: {e.strerror or e}") from e

        data = parse_lines(text)
        config = cls(
            sensor_path=data.get("sensor_path", defaults.sensor_path),
            sensor_file=data.get("sensor_file", defaults.sensor_file),
            keyboard_backlight_path=data.get(
                "keyboard_backlight_path", defaults.keyboard_backlight_path
            ),
            screen_backlight_path=data.get("screen_backlight_path", defaults.screen_backlight_path),
            brightness_factor=(
                _to_float("brightness_factor", data["brightness_factor"])
                if "brightness_factor" in data
                else defaults.brightness_factor
            ),
            update_rate=(
                _to_int("update_rate", data["update_rate"])
                if "update_rate" in data
                else defaults.update_rate
            ),
            min_brightness=(
                _to_int("min_brightness", data["min_brightness"])
                if "min_brightness" in data
                else defaults.min_brightness
            ),
            runtime_dir=defaults.runtime_dir,
            state_dir=defaults.state_dir,
        )
        config.validate()
        return config
