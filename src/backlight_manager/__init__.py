"""Keep a display backlight at a target level from one-shot or ambient-light input."""

__version__ = "0.2.0"
