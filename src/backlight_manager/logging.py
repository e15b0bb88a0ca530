"""Console output with Rich formatting, plus structlog configuration.

This module provides:
1. Icon vocabulary (Icon class namespace)
2. Core console functions (log, info, warn, error)
3. Domain-specific helpers (daemon_started, brightness_set, etc.)
4. Structlog configuration (configure)

Console lines are for the person at the terminal. Structured events from
structlog go to a JSON Lines file when a config is given, and only warnings
and errors reach stderr otherwise.
"""

from __future__ import annotations

import logging
import logging.handlers
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from rich.console import Console

if TYPE_CHECKING:
    from backlight_manager.config import Config

_console = Console(highlight=False)
_err_console = Console(stderr=True, highlight=False)

LOG_MAX_BYTES = 1024 * 1024
LOG_BACKUP_COUNT = 3


# ─────────────────────────────────────────────────────────────────────────────
# Icons
# ─────────────────────────────────────────────────────────────────────────────


class Icon:
    """Icon vocabulary for console output."""

    OK = "[bold green]✓[/]"
    FAIL = "[bold red]✗[/]"
    SUN = "[yellow]☀[/]"
    SEND = "[cyan]→[/]"


_LEVEL_STYLES = {
    "info": "[bright_blue]\\[info][/]",
    "warn": "[yellow]\\[warn][/]",
    "error": "[bold red]\\[err][/] ",
}


# ─────────────────────────────────────────────────────────────────────────────
# Core Functions
# ─────────────────────────────────────────────────────────────────────────────


def log(level: str, msg: str, icon: str = "") -> None:
    """Print a log message with timestamp and level.

    Errors go to stderr, everything else to stdout.
    """
    ts = datetime.now().strftime("%H:%M:%S")
    lvl = _LEVEL_STYLES.get(level, f"[{level}]")
    icon_part = f" {icon}" if icon else ""
    target = _err_console if level == "error" else _console
    target.print(f"[dim]{ts}[/] {lvl}{icon_part} {msg}", soft_wrap=True)


def info(msg: str, icon: str = "") -> None:
    """Log an info message."""
    log("info", msg, icon)


def warn(msg: str, icon: str = "") -> None:
    """Log a warning message."""
    log("warn", msg, icon)


def error(msg: str, icon: str = "") -> None:
    """Log an error message."""
    log("error", msg, icon)


# ─────────────────────────────────────────────────────────────────────────────
# Domain Helpers
# ─────────────────────────────────────────────────────────────────────────────


def daemon_started(pid: int) -> None:
    """Log daemon forked and running."""
    info(f"Daemon started [dim](PID {pid})[/]", Icon.OK)


def daemon_already_running(pid: int | None) -> None:
    """Log daemon already running."""
    if pid:
        info(f"Daemon already running [dim](PID {pid})[/]")
    else:
        info("Daemon already running")


def kill_sent(pid: int) -> None:
    info(f"Sent SIGTERM to daemon [dim](PID {pid})[/]", Icon.OK)


def kill_failed(pid: int, reason: str) -> None:
    error(f"Failed to signal daemon (PID {pid}): {reason}", Icon.FAIL)


def pid_file_invalid() -> None:
    error("PID file missing or invalid", Icon.FAIL)


def stale_pid_file(pid: int | None) -> None:
    """Log a marker left behind by a daemon that is no longer alive."""
    if pid:
        info(f"[dim]Stale PID file removed (PID {pid} not running)[/]")
    else:
        info("[dim]Stale PID file removed[/]")


def brightness_set(level: int, max_brightness: int) -> None:
    """Log a brightness write from the foreground path."""
    pct = round(level * 100 / max_brightness) if max_brightness else 0
    info(f"Brightness [cyan]{level}[/]/{max_brightness} [dim]({pct}%)[/]")


def ambient_foreground(update_rate: int) -> None:
    info(f"Ambient mode running every {update_rate}s [dim](Ctrl-C to stop)[/]", Icon.SUN)


def message_sent(delta: int, ambient: bool) -> None:
    """Log a command delivered to the daemon."""
    parts = []
    if delta:
        parts.append(f"brightness {delta:+d}%")
    if ambient:
        parts.append("toggle ambient mode")
    info(f"Sent to daemon: {', '.join(parts)}", Icon.SEND)


def fatal(msg: str) -> None:
    """Print a one-line fatal diagnostic to stderr."""
    _err_console.print(f"Error: {msg}", markup=False, soft_wrap=True)


# ─────────────────────────────────────────────────────────────────────────────
# Structlog Configuration
# ─────────────────────────────────────────────────────────────────────────────


def _add_source(source: str) -> structlog.types.Processor:
    """Create a processor that adds a source field to log events."""

    def processor(
        logger: structlog.types.WrappedLogger,
        method_name: str,
        event_dict: structlog.types.EventDict,
    ) -> structlog.types.EventDict:
        event_dict["source"] = source
        return event_dict

    return processor


def configure(config: Config | None = None, source: str = "cli") -> None:
    """Configure structlog output.

    With a config, events at INFO and above are written as JSON Lines to a
    rotating file at config.log_path. Without one (plain CLI invocations),
    only warnings and errors are rendered to stderr.

    Args:
        config: Application config with paths, or None
        source: Value of the "source" field in JSON output
    """
    stdlib_root = logging.getLogger()
    stdlib_root.handlers.clear()

    if config is not None:
        config.state_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            config.log_path,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.processors.JSONRenderer(),
                foreign_pre_chain=[
                    structlog.contextvars.merge_contextvars,
                    structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
                    structlog.processors.add_log_level,
                    _add_source(source),
                    structlog.processors.format_exc_info,
                ],
            )
        )
        stdlib_root.addHandler(file_handler)
        stdlib_root.setLevel(logging.INFO)
    else:
        stderr_handler = logging.StreamHandler()
        stderr_handler.setLevel(logging.WARNING)
        stderr_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.dev.ConsoleRenderer(colors=False),
                foreign_pre_chain=[
                    structlog.processors.add_log_level,
                    structlog.processors.format_exc_info,
                ],
            )
        )
        stdlib_root.addHandler(stderr_handler)
        stdlib_root.setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
            structlog.processors.add_log_level,
            _add_source(source),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
