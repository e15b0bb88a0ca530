"""Command-line entry point for backlight-manager."""

import click

from backlight_manager import __version__
from backlight_manager import logging as console
from backlight_manager.channel import Message, send_message
from backlight_manager.config import Config
from backlight_manager.controller import BacklightController, run_foreground
from backlight_manager.daemon import (
    clear_stale_marker,
    is_running,
    read_pid,
    start_daemon,
    stop_daemon,
)
from backlight_manager.errors import BacklightError

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

# Seconds a client waits for the daemon to open its end of the FIFO
SEND_TIMEOUT = 5.0


class BacklightCommand(click.Command):
    """Command that exits with status 1, not click's 2, on usage errors."""

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as e:
            e.exit_code = 1
            raise


def _print_status(config: Config) -> None:
    click.echo("Backlight Manager Config:")
    for label, value in config.summary():
        click.echo(f"  {label}: {value}")

    if is_running(config):
        pid = read_pid(config)
        click.echo(f"Daemon: running (PID {pid})" if pid else "Daemon: running")
    else:
        click.echo("Daemon: stopped")


def _run(ambient: bool, start: bool, kill: bool, print_status: bool, delta: int) -> None:
    config = Config.load()

    if kill:
        stop_daemon(config)
        return

    config.resolve_sensor()

    if print_status:
        _print_status(config)
        return

    clear_stale_marker(config)

    if start:
        if is_running(config):
            console.daemon_already_running(read_pid(config))
        else:
            console.daemon_started(start_daemon(config))

    message = Message(brightness_delta=delta, ambient_requested=ambient)

    if is_running(config):
        if not message.is_empty:
            send_message(config.fifo_path, message, timeout=SEND_TIMEOUT)
            console.message_sent(delta, ambient)
        return

    controller = BacklightController.from_config(config)
    run_foreground(controller, delta, ambient)


@click.command(cls=BacklightCommand, context_settings=CONTEXT_SETTINGS)
@click.option(
    "-a",
    "--ambient",
    is_flag=True,
    help="Toggle ambient mode (runs in the foreground if no daemon is running)",
)
@click.option(
    "-d", "--daemon", "start", is_flag=True, help="Start the daemon if it is not running"
)
@click.option("-k", "--kill", is_flag=True, help="Stop the running daemon")
@click.option(
    "-p", "--print-status", is_flag=True, help="Print the config and the status of the daemon"
)
@click.option(
    "-s",
    "--set",
    "delta",
    type=int,
    default=0,
    metavar="<value>",
    help="Change brightness by <value> percent (signed)",
)
@click.version_option(version=__version__)
def main(ambient: bool, start: bool, kill: bool, print_status: bool, delta: int) -> None:
    """Manage the screen backlight, directly or through a background daemon."""
    console.configure()
    try:
        _run(ambient, start, kill, print_status, delta)
    except BacklightError as e:
        console.fatal(str(e))
        raise SystemExit(1)
