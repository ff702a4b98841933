# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Serial byte link to the adapter.

Thin wrapper around pyserial: every call waits at most the given number of
milliseconds for the port to become ready and then moves whatever is
available. Retrying is left to the caller.
"""

import logging
import os
import termios

import serial

logger = logging.getLogger(__name__)

BAUDRATE_LOW = 115200
BAUDRATE_HIGH = 921600


class TransportError(Exception):
    """Base exception for transport errors."""
    pass


class LinkError(TransportError):
    """The serial port failed, hung up, or could not be opened."""
    pass


def _save_terminal(port: str):
    """Capture terminal attributes before the port gets reconfigured."""
    try:
        fd = os.open(port, os.O_RDWR | os.O_NOCTTY | os.O_NONBLOCK)
    except OSError as e:
        raise LinkError(f"unable to open {port}: {e}") from e
    try:
        return termios.tcgetattr(fd)
    except termios.error:
        # not a terminal
        return None
    finally:
        os.close(fd)


class SerialLink:
    """
    Exclusive raw 8N1 serial link.

    Can be used as a context manager:
        with SerialLink("/dev/ttyUSB0") as link:
            link.write(b"\\x55", 200)
    """

    def __init__(self, port: str, low_speed: bool = False, restore_terminal: bool = True):
        """
        Open and lock the serial port.

        Args:
            port: Serial port path (e.g., "/dev/ttyUSB0")
            low_speed: Use 115200 instead of 921600 baud
            restore_terminal: Put back the previous terminal attributes on close

        Raises:
            LinkError: If the port can not be opened or is locked by another process
        """
        self._saved_attrs = _save_terminal(port) if restore_terminal else None
        try:
            self._ser = serial.Serial(
                port,
                BAUDRATE_LOW if low_speed else BAUDRATE_HIGH,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=0,
                write_timeout=0,
                exclusive=True,
            )
        except serial.SerialException as e:
            raise LinkError(f"unable to open or lock {port}: {e}") from e
        logger.debug("opened %s at %s baud", port, self._ser.baudrate)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @property
    def port(self) -> str:
        """Return the serial port name."""
        return self._ser.port

    def close(self):
        """Restore the terminal attributes and close the port."""
        if not (self._ser and self._ser.is_open):
            return
        if self._saved_attrs is not None:
            try:
                termios.tcsetattr(self._ser.fileno(), termios.TCSANOW, self._saved_attrs)
            except termios.error as e:
                logger.warning("unable to restore terminal settings: %s", e)
        self._ser.close()

    def write(self, data: bytes, timeout_ms: int) -> int:
        """
        Write as much of data as the port accepts within timeout_ms.

        Args:
            data: Bytes to send
            timeout_ms: Maximum wait for the port to become writable

        Returns:
            Number of bytes written, 0 on timeout

        Raises:
            LinkError: On I/O error or hangup
        """
        timeout = timeout_ms / 1000.0
        if self._ser.write_timeout != timeout:
            # assigning reconfigures the port
            self._ser.write_timeout = timeout
        try:
            written = self._ser.write(data)
        except serial.SerialTimeoutException:
            return 0
        except serial.SerialException as e:
            raise LinkError(f"write failed: {e}") from e
        written = len(data) if written is None else written
        if written:
            logger.debug("> %d/%d: %s", written, len(data), data[:written].hex(" "))
        return written

    def read(self, size: int, timeout_ms: int) -> bytes:
        """
        Read up to size bytes, waiting at most timeout_ms for the first one.

        Args:
            size: Maximum number of bytes to return
            timeout_ms: Maximum wait for data to arrive

        Returns:
            Received bytes, empty on timeout

        Raises:
            LinkError: On I/O error or hangup
        """
        timeout = timeout_ms / 1000.0
        if self._ser.timeout != timeout:
            self._ser.timeout = timeout
        try:
            data = self._ser.read(1)
            if data and size > 1:
                # take what is already buffered without waiting again
                pending = min(self._ser.in_waiting, size - 1)
                if pending:
                    data += self._ser.read(pending)
        except serial.SerialException as e:
            raise LinkError(f"read failed: {e}") from e
        if data:
            logger.debug("< %d/%d: %s", len(data), size, data.hex(" "))
        return data
