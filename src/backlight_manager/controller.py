"""Brightness computations shared by the daemon and the foreground path."""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import structlog

from backlight_manager import logging as console
from backlight_manager import sysfs
from backlight_manager.channel import Message
from backlight_manager.config import Config

log = structlog.get_logger()


@dataclass
class DaemonState:
    """Mutable control state, owned by the control loop."""

    max_screen_brightness: int
    ambient_mode_enabled: bool = False
    pending_brightness_delta: int = 0

    def apply_message(self, message: Message) -> None:
        """Adopt a client command.

        The delta replaces any unapplied one (last write wins). The ambient
        field is a toggle request, not an absolute state: two requests
        return ambient mode to where it started.
        """
        self.pending_brightness_delta = message.brightness_delta
        if message.ambient_requested:
            self.ambient_mode_enabled = not self.ambient_mode_enabled


def compute_delta_target(current: int, max_brightness: int, delta_percent: int) -> int:
    """Brightness after a relative change of delta_percent of max_brightness.

    The step is rounded half away from zero, so +d and -d move by the same
    number of units whatever the parity of the step.
    """
    exact = max_brightness * delta_percent / 100
    step = int(math.copysign(math.floor(abs(exact) + 0.5), exact))
    return sysfs.clamp_brightness(current + step, max_brightness)


def compute_ambient_target(
    reading: float, factor: float, min_absolute: int, max_brightness: int
) -> int:
    """Brightness for a sensor reading, floored at min_absolute."""
    computed = math.floor(reading * factor)
    return sysfs.clamp_brightness(max(computed, min_absolute), max_brightness)


class BacklightController:
    """Applies deltas and ambient readings to the screen backlight."""

    def __init__(self, config: Config, max_screen_brightness: int):
        if config.resolved_sensor_path is None:
            raise ValueError("Sensor path must be resolved before creating a controller")
        self.config = config
        self.max_screen_brightness = max_screen_brightness
        self.min_brightness_absolute = config.min_brightness_absolute(max_screen_brightness)

    @classmethod
    def from_config(cls, config: Config) -> BacklightController:
        """Read max_brightness once and build a controller.

        Raises:
            SysfsError: If max_brightness cannot be read.
        """
        max_brightness = sysfs.read_value(config.screen_backlight_path, sysfs.MAX_BRIGHTNESS)
        return cls(config, max_brightness)

    @property
    def backlight_dir(self) -> Path:
        return Path(self.config.screen_backlight_path)

    @property
    def sensor_dir(self) -> Path:
        assert self.config.resolved_sensor_path is not None
        return self.config.resolved_sensor_path

    def apply_delta(self, delta_percent: int) -> int:
        """Change brightness by delta_percent of max. Returns the level written."""
        current = sysfs.read_value(self.backlight_dir, sysfs.ACTUAL_BRIGHTNESS)
        target = compute_delta_target(current, self.max_screen_brightness, delta_percent)
        level = sysfs.set_backlight_brightness(
            self.backlight_dir, target, self.max_screen_brightness
        )
        log.info("brightness_delta_applied", delta=delta_percent, previous=current, level=level)
        return level

    def ambient_step(self) -> int:
        """Set brightness from one sensor reading. Returns the level written."""
        reading = sysfs.read_float(self.sensor_dir, self.config.sensor_file)
        target = compute_ambient_target(
            reading,
            self.config.brightness_factor,
            self.min_brightness_absolute,
            self.max_screen_brightness,
        )
        level = sysfs.set_backlight_brightness(
            self.backlight_dir, target, self.max_screen_brightness
        )
        log.debug("ambient_brightness_set", reading=reading, level=level)
        return level


def run_foreground(
    controller: BacklightController,
    delta: int,
    ambient: bool,
    sleep: Callable[[float], None] = time.sleep,
    iterations: int | None = None,
) -> None:
    """Apply a delta and optionally track the sensor in this process.

    Used when no daemon is running. With ambient set this blocks the
    terminal; iterations=None loops until interrupted.

    Raises:
        SysfsError: On any sysfs failure; the foreground path does not retry.
    """
    if delta != 0:
        level = controller.apply_delta(delta)
        console.brightness_set(level, controller.max_screen_brightness)

    if not ambient:
        return

    console.ambient_foreground(controller.config.update_rate)
    count = 0
    while iterations is None or count < iterations:
        controller.ambient_step()
        count += 1
        sleep(controller.config.update_rate)
