"""Named pipe command channel between client invocations and the daemon.

One daemon reads, any number of short-lived clients write one after another.
Each write carries exactly one fixed-size record, so no framing is needed:

    offset  size  field
    0       4     brightness_delta   signed int32, native byte order
    4       1     ambient_requested  bool (0/1)
    5       3     padding

The daemon keeps a single non-blocking read descriptor open for its whole
lifetime and reads at most one record per control loop iteration. Records
written while it sleeps wait in the pipe buffer. Delivery is best-effort:
a record written to a FIFO whose daemon has died is lost with the node.
"""

from __future__ import annotations

import errno
import os
import stat
import struct
import time
from dataclasses import dataclass
from pathlib import Path

import structlog

from backlight_manager.errors import ChannelError

log = structlog.get_logger()

RECORD = struct.Struct("=i?3x")

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


@dataclass(frozen=True)
class Message:
    """One client command."""

    brightness_delta: int = 0
    ambient_requested: bool = False

    @property
    def is_empty(self) -> bool:
        """True if the message would change nothing."""
        return self.brightness_delta == 0 and not self.ambient_requested

    def pack(self) -> bytes:
        """Encode to the fixed wire record.

        Raises:
            ChannelError: If brightness_delta does not fit in an int32.
        """
        if not INT32_MIN <= self.brightness_delta <= INT32_MAX:
            raise ChannelError(f"brightness delta out of range: {self.brightness_delta}")
        return RECORD.pack(self.brightness_delta, self.ambient_requested)

    @classmethod
    def unpack(cls, data: bytes) -> Message:
        """Decode one wire record."""
        delta, ambient = RECORD.unpack(data)
        return cls(brightness_delta=delta, ambient_requested=ambient)


def _is_fifo(path: Path) -> bool:
    try:
        return stat.S_ISFIFO(path.stat().st_mode)
    except OSError:
        return False


def create_fifo(path: Path) -> None:
    """Create the command FIFO, replacing any stale node at path.

    Raises:
        ChannelError: If the node cannot be created.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.is_symlink() or path.exists():
            path.unlink()
        os.mkfifo(path, 0o600)
    except OSError as e:
        raise ChannelError(f"Error creating FIFO {path}: {e.strerror or e}") from e
    log.debug("fifo_created", path=str(path))


def remove_fifo(path: Path) -> bool:
    """Remove the FIFO node. Returns False if it was already gone."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    log.debug("fifo_removed", path=str(path))
    return True


def wait_for_fifo(path: Path, timeout: float, interval: float = 0.05) -> bool:
    """Poll until a FIFO exists at path, or timeout seconds pass."""
    deadline = time.monotonic() + timeout
    while not _is_fifo(path):
        if time.monotonic() >= deadline:
            return False
        time.sleep(interval)
    return True


class CommandReader:
    """Daemon side of the channel.

    Opened once, non-blocking, and read repeatedly. Reading never raises:
    "no data" and read errors both come back as None so the control loop
    keeps its cadence.
    """

    def __init__(self, path: Path):
        self.path = path
        self._fd: int | None = None

    @property
    def is_open(self) -> bool:
        """Whether the read descriptor is open."""
        return self._fd is not None

    def open(self) -> None:
        """Open the FIFO for non-blocking reads.

        Raises:
            ChannelError: If the FIFO cannot be opened.
        """
        if self._fd is not None:
            return
        try:
            self._fd = os.open(self.path, os.O_RDONLY | os.O_NONBLOCK)
        except OSError as e:
            raise ChannelError(f"Error opening FIFO {self.path}: {e.strerror or e}") from e
        log.debug("fifo_opened", path=str(self.path))

    def close(self) -> None:
        """Close the read descriptor."""
        if self._fd is not None:
            os.close(self._fd)
            self._fd = None

    def read_message(self) -> Message | None:
        """Read at most one record.

        Returns:
            The message, or None when there is nothing to read (no writer,
            empty pipe, unopened reader) or the read failed.
        """
        if self._fd is None:
            return None

        try:
            data = os.read(self._fd, RECORD.size)
        except BlockingIOError:
            return None
        except OSError as e:
            log.warning("fifo_read_failed", path=str(self.path), error=e.strerror or str(e))
            return None

        if not data:
            return None
        if len(data) != RECORD.size:
            log.warning("fifo_short_record", size=len(data), expected=RECORD.size)
            return None

        message = Message.unpack(data)
        log.debug(
            "fifo_message",
            delta=message.brightness_delta,
            ambient=message.ambient_requested,
        )
        return message

    def __enter__(self) -> CommandReader:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _open_writer(path: Path, timeout: float | None) -> int:
    if timeout is None:
        return os.open(path, os.O_WRONLY)

    # A non-blocking open for writing fails with ENXIO while no reader exists
    deadline = time.monotonic() + timeout
    while True:
        try:
            fd = os.open(path, os.O_WRONLY | os.O_NONBLOCK)
        except OSError as e:
            if e.errno != errno.ENXIO or time.monotonic() >= deadline:
                raise
            time.sleep(0.05)
            continue
        os.set_blocking(fd, True)
        return fd


def send_message(path: Path, message: Message, timeout: float | None = None) -> None:
    """Client side: open the FIFO, write one record, close.

    Without a timeout the open blocks until the daemon's reader exists.

    Raises:
        ChannelError: If the FIFO is missing, no reader appears in time, or
            the write fails.
    """
    data = message.pack()

    if not _is_fifo(path):
        raise ChannelError(f"Daemon FIFO not found: {path}")

    try:
        fd = _open_writer(path, timeout)
    except OSError as e:
        if e.errno == errno.ENXIO:
            raise ChannelError(f"No daemon is reading {path}") from e
        raise ChannelError(f"Error opening FIFO {path}: {e.strerror or e}") from e

    try:
        written = os.write(fd, data)
    except OSError as e:
        raise ChannelError(f"Error writing FIFO {path}: {e.strerror or e}") from e
    finally:
        os.close(fd)

    if written != len(data):
        raise ChannelError(f"Short write to FIFO {path}: {written}/{len(data)} bytes")

    log.debug(
        "message_sent",
        delta=message.brightness_delta,
        ambient=message.ambient_requested,
    )
