"""Termios serial link used underneath the datagram transport.

Only the physical side lives here: opening the device, raw 8N1 setup at the
requested baud rate and blocking byte I/O. Framing, checksums and
acknowledgements belong to the transport built on top of the link.

This module is Linux/POSIX only.
"""

from __future__ import annotations

import errno
import fcntl
import logging
import os
import select
import termios
from typing import Any, Final

import tenacity

from ..const import (
    DEFAULT_SERIAL_OPEN_ATTEMPTS,
    DEFAULT_SERIAL_OPEN_BACKOFF,
    DEFAULT_SERIAL_OPEN_MAX_BACKOFF,
)

logger = logging.getLogger("rhbridge.serial")

BAUDRATE_MAP: Final[dict[int, int]] = {
    1200: termios.B1200,
    2400: termios.B2400,
    4800: termios.B4800,
    9600: termios.B9600,
    19200: termios.B19200,
    38400: termios.B38400,
    57600: termios.B57600,
    115200: termios.B115200,
    230400: termios.B230400,
    460800: termios.B460800,
    500000: termios.B500000,
    921600: termios.B921600,
    1000000: termios.B1000000,
}


class SerialException(OSError):
    """Raised on serial port errors."""


class SerialLink:
    """Raw termios serial port with blocking, timeout-bounded reads.

    Usage:
        link = SerialLink('/dev/ttyUSB0', baudrate=9600)
        link.open()
        link.write(b'\\x10\\x02...')
        chunk = link.read(64)
        link.close()
    """

    def __init__(
        self,
        port: str,
        baudrate: int = 9600,
        *,
        timeout: float | None = 0.05,
        exclusive: bool = False,
    ) -> None:
        if baudrate not in BAUDRATE_MAP:
            raise SerialException(f"Unsupported baudrate: {baudrate}")
        self._port = port
        self._baudrate = baudrate
        self._timeout = timeout
        self._exclusive = exclusive
        self._fd: int | None = None
        self._original_attrs: list[Any] | None = None

    @property
    def port(self) -> str:
        return self._port

    @property
    def baudrate(self) -> int:
        return self._baudrate

    @property
    def is_open(self) -> bool:
        return self._fd is not None

    def fileno(self) -> int:
        if self._fd is None:
            raise SerialException("Port not open")
        return self._fd

    def open(self) -> None:
        if self._fd is not None:
            return

        try:
            fd = os.open(self._port, os.O_RDWR | os.O_NOCTTY | os.O_NONBLOCK)
        except OSError as e:
            raise SerialException(e.errno, f"Could not open port {self._port}: {e.strerror}") from e

        try:
            if self._exclusive:
                try:
                    fcntl.ioctl(fd, termios.TIOCEXCL)
                except (OSError, AttributeError):
                    pass  # TIOCEXCL not available everywhere

            try:
                self._original_attrs = termios.tcgetattr(fd)
            except termios.error:
                self._original_attrs = None

            self._configure(fd)
        except (OSError, termios.error):
            os.close(fd)
            raise

        self._fd = fd
        logger.debug("Opened %s at %d baud", self._port, self._baudrate)

    def _configure(self, fd: int) -> None:
        speed = BAUDRATE_MAP[self._baudrate]
        try:
            attrs = termios.tcgetattr(fd)
        except termios.error as e:
            raise SerialException(f"Failed to get terminal attributes: {e}") from e

        # Raw 8N1, no flow control, no echo
        attrs[0] = 0  # iflag
        attrs[1] = 0  # oflag
        attrs[2] = termios.CS8 | termios.CREAD | termios.CLOCAL  # cflag
        attrs[3] = 0  # lflag
        attrs[4] = speed  # ispeed
        attrs[5] = speed  # ospeed
        attrs[6][termios.VMIN] = 0
        attrs[6][termios.VTIME] = 0

        try:
            termios.tcsetattr(fd, termios.TCSANOW, attrs)
        except termios.error as e:
            raise SerialException(f"Failed to set terminal attributes: {e}") from e

        try:
            termios.tcflush(fd, termios.TCIOFLUSH)
        except termios.error:
            pass

    def close(self) -> None:
        fd = self._fd
        if fd is None:
            return
        self._fd = None
        try:
            if self._original_attrs is not None:
                try:
                    termios.tcsetattr(fd, termios.TCSANOW, self._original_attrs)
                except termios.error:
                    pass
            os.close(fd)
        except OSError as exc:
            logger.debug("Ignoring error while closing %s: %s", self._port, exc)
        finally:
            self._original_attrs = None

    def read(self, size: int = 1) -> bytes:
        """Read up to *size* bytes, waiting at most ``timeout`` seconds."""
        fd = self.fileno()
        if size <= 0:
            return b""

        if self._timeout is None or self._timeout > 0:
            ready, _, _ = select.select([fd], [], [], self._timeout)
            if not ready:
                return b""

        try:
            return os.read(fd, size)
        except OSError as e:
            if e.errno in (errno.EAGAIN, errno.EWOULDBLOCK):
                return b""
            raise SerialException(f"Read error: {e}") from e

    def write(self, data: bytes | bytearray | memoryview) -> int:
        """Write all of *data*, blocking until the kernel accepted it."""
        fd = self.fileno()
        view = memoryview(bytes(data))
        written = 0
        while written < len(view):
            try:
                written += os.write(fd, view[written:])
            except OSError as e:
                if e.errno in (errno.EAGAIN, errno.EWOULDBLOCK):
                    select.select([], [fd], [], self._timeout)
                    continue
                raise SerialException(f"Write error: {e}") from e
        return written

    def flush(self) -> None:
        if self._fd is None:
            return
        try:
            termios.tcdrain(self._fd)
        except termios.error:
            pass

    def reset_input_buffer(self) -> None:
        if self._fd is None:
            return
        try:
            termios.tcflush(self._fd, termios.TCIFLUSH)
        except termios.error:
            pass

    def __enter__(self) -> SerialLink:
        self.open()
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object) -> None:
        self.close()


def _log_open_retry(retry_state: tenacity.RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.warning(
        "Serial open attempt %d failed (%s); retrying in %.2fs",
        retry_state.attempt_number,
        exc,
        delay,
    )


def open_serial_link(
    port: str,
    baudrate: int,
    *,
    attempts: int = DEFAULT_SERIAL_OPEN_ATTEMPTS,
    exclusive: bool = False,
    timeout: float | None = 0.05,
    min_backoff: float = DEFAULT_SERIAL_OPEN_BACKOFF,
    max_backoff: float = DEFAULT_SERIAL_OPEN_MAX_BACKOFF,
) -> SerialLink:
    """Open *port*, retrying transient OS errors with exponential backoff."""
    link = SerialLink(port, baudrate, timeout=timeout, exclusive=exclusive)
    retryer = tenacity.Retrying(
        stop=tenacity.stop_after_attempt(max(1, attempts)),
        wait=tenacity.wait_exponential(multiplier=min_backoff, max=max_backoff),
        retry=tenacity.retry_if_exception_type(OSError),
        before_sleep=_log_open_retry,
        reraise=True,
    )
    retryer(link.open)
    return link


def format_hexdump(data: bytes | bytearray, prefix: str = "") -> str:
    if not data:
        return f"{prefix}<empty>"
    lines: list[str] = []
    for offset in range(0, len(data), 16):
        chunk = data[offset: offset + 16]
        hex_parts = [" ".join(f"{b:02X}" for b in chunk[i: i + 4]) for i in range(0, 16, 4)]
        hex_str = "  ".join(hex_parts).ljust(47)
        ascii_str = "".join(chr(b) if 32 <= b < 127 else "." for b in chunk)
        lines.append(f"{prefix}{offset:04X}  {hex_str}  |{ascii_str}|")
    return "\n".join(lines)


__all__ = [
    "BAUDRATE_MAP",
    "SerialException",
    "SerialLink",
    "format_hexdump",
    "open_serial_link",
]
