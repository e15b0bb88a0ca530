"""Background daemon for backlight-manager.

Lifecycle: a client invocation forks, the child detaches into its own
session and becomes the daemon. The daemon registers itself with a PID
marker file, creates the command FIFO and opens its read end, then runs the
control loop until a termination signal arrives. Signals only set a shutdown
event; cleanup (marker and FIFO removal) runs in the loop's own task.

Each control loop iteration:
1. Read at most one command from the FIFO (non-blocking)
2. Apply a pending brightness delta, then clear it
3. Recompute brightness from the sensor if ambient mode is on
4. Sleep update_rate seconds, waking early only for shutdown
"""

import asyncio
import logging
import os
import signal
from pathlib import Path

import psutil
import structlog

from backlight_manager import logging as console
from backlight_manager.channel import CommandReader, create_fifo, remove_fifo, wait_for_fifo
from backlight_manager.config import Config
from backlight_manager.controller import BacklightController, DaemonState
from backlight_manager.errors import BacklightError, DaemonError, SysfsError

log = structlog.get_logger()

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT, signal.SIGHUP)

# Substrings of the command line that identify a running daemon
DAEMON_NAMES = ("backlight_manager", "backlight-manager")

# How long a --daemon client waits for the new daemon's FIFO
STARTUP_TIMEOUT = 5.0


# ─────────────────────────────────────────────────────────────────────────────
# PID marker
# ─────────────────────────────────────────────────────────────────────────────


def is_running(config: Config) -> bool:
    """Return True if the PID marker exists and is readable.

    This is a file-existence check only; it does not probe the process.
    """
    path = config.pid_path
    return path.is_file() and os.access(path, os.R_OK)


def read_pid(config: Config) -> int | None:
    """Return the PID in the marker file, or None if absent or unparseable."""
    try:
        return int(config.pid_path.read_text().strip())
    except (OSError, ValueError):
        return None


def _matches_daemon(proc: psutil.Process) -> bool:
    if proc.status() == psutil.STATUS_ZOMBIE:
        return False
    cmdline = " ".join(proc.cmdline()).lower()
    return any(name in cmdline for name in DAEMON_NAMES)


def is_daemon_process(pid: int) -> bool:
    """Return True if pid is a live backlight-manager process.

    Verifies not just that a process with the PID exists, but that it's
    actually this program. After a crash or reboot the PID in a leftover
    marker may belong to something else.
    """
    try:
        return _matches_daemon(psutil.Process(pid))
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        # Can't inspect process - assume it's running to be safe
        return True


def remove_runtime_files(config: Config) -> None:
    """Remove the PID marker and FIFO node. Missing files are ignored."""
    try:
        config.pid_path.unlink()
        log.debug("pid_file_removed", path=str(config.pid_path))
    except FileNotFoundError:
        log.debug("pid_file_already_removed", path=str(config.pid_path))
    remove_fifo(config.fifo_path)


def clear_stale_marker(config: Config) -> bool:
    """Remove a marker whose process is gone or is not this program.

    Returns True if a stale marker (and FIFO) was removed.
    """
    if not is_running(config):
        return False

    pid = read_pid(config)
    if pid is not None and is_daemon_process(pid):
        return False

    log.warning("pid_file_stale", pid=pid)
    console.stale_pid_file(pid)
    remove_runtime_files(config)
    return True


# ─────────────────────────────────────────────────────────────────────────────
# Daemonization
# ─────────────────────────────────────────────────────────────────────────────


def _redirect_stdio() -> None:
    devnull = os.open(os.devnull, os.O_RDWR)
    for fd in (0, 1, 2):
        os.dup2(devnull, fd)
    if devnull > 2:
        os.close(devnull)


def daemonize() -> int:
    """Fork and detach the child from the controlling terminal.

    Returns:
        The child's PID in the parent, 0 in the detached child.

    Raises:
        DaemonError: If fork fails (in the parent).
    """
    try:
        pid = os.fork()
    except OSError as e:
        raise DaemonError(f"Error forking daemon: {e.strerror or e}") from e

    if pid > 0:
        return pid

    try:
        os.setsid()
    except OSError as e:
        console.fatal(f"Error creating daemon session: {e.strerror or e}")
        os._exit(1)

    os.umask(0o022)
    os.chdir("/")
    _redirect_stdio()
    return 0


# ─────────────────────────────────────────────────────────────────────────────
# Daemon
# ─────────────────────────────────────────────────────────────────────────────


class Daemon:
    """Owns the PID marker, the FIFO reader and the control loop state."""

    def __init__(self, config: Config, controller: BacklightController):
        self.config = config
        self.controller = controller
        self.state = DaemonState(max_screen_brightness=controller.max_screen_brightness)
        self.reader = CommandReader(config.fifo_path)

        self._shutdown_event = asyncio.Event()
        self._fifo_ino: int | None = None

    def write_pid_file(self) -> None:
        """Write the current PID to the marker file.

        Raises:
            DaemonError: If the marker cannot be created.
        """
        path = self.config.pid_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(str(os.getpid()))
        except OSError as e:
            raise DaemonError(f"Error creating PID file {path}: {e.strerror or e}") from e
        log.debug("pid_file_written", path=str(path))

    def remove_pid_file(self) -> None:
        """Remove the marker if it still names this process.

        A marker written by a newer daemon (after an external stop) is left alone.
        """
        if read_pid(self.config) != os.getpid():
            return
        self.config.pid_path.unlink(missing_ok=True)
        log.debug("pid_file_removed")

    def _remove_own_fifo(self) -> None:
        path = self.config.fifo_path
        try:
            ino = path.stat().st_ino
        except FileNotFoundError:
            return
        if self._fifo_ino is None or ino == self._fifo_ino:
            remove_fifo(path)

    def setup(self) -> None:
        """Register the daemon: PID marker, FIFO node, open read end.

        Raises:
            BacklightError: If any step fails. Anything already created is removed.
        """
        self.write_pid_file()
        try:
            create_fifo(self.config.fifo_path)
            self._fifo_ino = self.config.fifo_path.stat().st_ino
            self.reader.open()
        except (BacklightError, OSError):
            self.teardown()
            raise

    def teardown(self) -> None:
        """Close the reader and remove runtime files. Safe to call twice."""
        self.reader.close()
        self._remove_own_fifo()
        self.remove_pid_file()

    def handle_signal(self, sig: signal.Signals) -> None:
        """Handle shutdown signals."""
        log.info("signal_received", signal=sig.name)
        self._shutdown_event.set()

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    def tick(self) -> None:
        """Run one control loop iteration (everything except the sleep).

        A failing sysfs read or write is logged and skipped; the loop carries on.
        """
        message = self.reader.read_message()
        if message is not None:
            was_enabled = self.state.ambient_mode_enabled
            self.state.apply_message(message)
            if self.state.ambient_mode_enabled != was_enabled:
                log.info("ambient_mode_toggled", enabled=self.state.ambient_mode_enabled)

        if self.state.pending_brightness_delta != 0:
            delta = self.state.pending_brightness_delta
            self.state.pending_brightness_delta = 0
            try:
                self.controller.apply_delta(delta)
            except SysfsError as e:
                log.error("brightness_delta_failed", delta=delta, error=str(e))

        if self.state.ambient_mode_enabled:
            try:
                self.controller.ambient_step()
            except SysfsError as e:
                log.error("ambient_step_failed", error=str(e))

    async def _main_loop(self) -> None:
        interval = self.config.update_rate

        while not self._shutdown_event.is_set():
            try:
                self.tick()
            except Exception as e:
                log.exception("tick_failed", error=str(e))

            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=interval)
                break  # Shutdown requested during sleep
            except asyncio.TimeoutError:
                pass  # Normal timeout, continue to next iteration

    async def run(self) -> None:
        """Install signal handlers, register, loop until shutdown, clean up."""
        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(sig, self.handle_signal, sig)

        try:
            self.setup()
            log.info(
                "daemon_started",
                pid=os.getpid(),
                fifo=str(self.config.fifo_path),
                update_rate=self.config.update_rate,
                max_brightness=self.controller.max_screen_brightness,
                min_brightness=self.controller.min_brightness_absolute,
            )
            await self._main_loop()
        finally:
            for sig in SHUTDOWN_SIGNALS:
                loop.remove_signal_handler(sig)
            self.teardown()
            log.info("daemon_stopped")


def _daemon_main(config: Config, controller: BacklightController) -> int:
    """Body of the detached child. Returns the process exit status."""
    try:
        console.configure(config, source="daemon")
        asyncio.run(Daemon(config, controller).run())
    except BacklightError as e:
        log.error("daemon_startup_failed", error=str(e))
        return 1
    except Exception as e:
        log.exception("daemon_crashed", error=str(e))
        return 1
    return 0


def start_daemon(config: Config) -> int:
    """Fork a new daemon and wait until its FIFO exists.

    Only returns in the parent, with the daemon's PID. The child never
    returns: it runs the daemon and exits.

    Raises:
        DaemonError: If a daemon is already registered, fork fails, or the
            daemon does not come up within STARTUP_TIMEOUT.
        SysfsError: If max_brightness cannot be read (before forking).
    """
    if is_running(config):
        raise DaemonError(f"Daemon already running (PID file {config.pid_path})")

    # Paths must survive the chdir("/") in the child
    config.runtime_dir = Path(config.runtime_dir).absolute()
    config.state_dir = Path(config.state_dir).absolute()
    config.screen_backlight_path = str(Path(config.screen_backlight_path).absolute())
    if config.resolved_sensor_path is not None:
        config.resolved_sensor_path = config.resolved_sensor_path.absolute()

    controller = BacklightController.from_config(config)

    pid = daemonize()
    if pid == 0:
        status = 1
        try:
            status = _daemon_main(config, controller)
        finally:
            logging.shutdown()
            os._exit(status)

    if not wait_for_fifo(config.fifo_path, STARTUP_TIMEOUT):
        raise DaemonError(f"Daemon (PID {pid}) did not start; see {config.log_path}")

    log.info("daemon_forked", pid=pid)
    return pid


def stop_daemon(config: Config) -> bool:
    """Signal the registered daemon and remove its runtime files.

    Returns:
        True if SIGTERM was delivered. False if the marker was missing or
        unparseable (nothing is touched), names a process that is not this
        program (never signalled), or the signal could not be sent.
    """
    pid = read_pid(config)
    if pid is None:
        log.warning("pid_file_invalid", path=str(config.pid_path))
        console.pid_file_invalid()
        return False

    delivered = False
    try:
        proc = psutil.Process(pid)
        if _matches_daemon(proc):
            proc.send_signal(signal.SIGTERM)
            delivered = True
            log.info("daemon_signalled", pid=pid)
            console.kill_sent(pid)
        else:
            log.warning("pid_file_stale", reason="different process", pid=pid)
            console.kill_failed(pid, "not a backlight-manager process")
    except psutil.NoSuchProcess:
        log.warning("daemon_signal_failed", pid=pid, reason="no such process")
        console.kill_failed(pid, "no such process")
    except psutil.AccessDenied:
        log.warning("daemon_signal_failed", pid=pid, reason="permission denied")
        console.kill_failed(pid, "permission denied")

    remove_runtime_files(config)
    return delivered
