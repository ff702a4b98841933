# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Transport layer for PIC bootloader communication.

Runs one request/response exchange at a time over a SerialLink and offers
the bootloader commands on top of it.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from .link import SerialLink, TransportError, LinkError
from .protocol import (
    STX,
    FRAME_HEADER_LEN,
    MAX_DATA_LEN,
    MINOR_VERSION,
    MAJOR_VERSION,
    CommandType,
    Frame,
    Status,
    decode_frame,
    decode_header,
    encode_frame,
    erase_block_count,
    status_name,
)

logger = logging.getLogger(__name__)

WAIT_BYTE_TRANSFERRED_MS = 200
WAIT_BITRATE_DETECTION_US = 100
WAIT_RESPONSE_TIMEOUT_MS = 100
TRAILING_BYTES = 4

# device side processing time budgets
WRITE_CONFIG_EXTRA_MS = 50
WRITE_FLASH_MS_PER_BYTE = 30
ERASE_MS_PER_BLOCK = 5
CHECKSUM_MS_PER_BYTE = 30

PIC16F15356_ID = 0x30B0


class TimeoutError(TransportError):
    """Timeout waiting for the device."""
    pass


class ProtocolError(TransportError):
    """Protocol-level error (missing sync, unexpected answer, etc.)."""
    pass


class VersionMismatchError(ProtocolError):
    """The bootloader speaks an unsupported protocol version."""
    pass


class DeviceError(TransportError):
    """The device answered with a non-success status byte."""

    def __init__(self, status: int, message: Optional[str] = None):
        self.status = status
        super().__init__(message or f"device returned {status_name(status)}")

    @property
    def legacy_code(self) -> int:
        """Status folded into a negative number as the firmware tools report it."""
        return -self.status - 1


@dataclass(frozen=True)
class VersionInfo:
    """Answer to READ_VERSION."""
    minor: int
    major: int
    max_packet_size: int
    device_id: int
    erase_block_size: int
    write_block_size: int
    user_ids: bytes

    @property
    def device_name(self) -> Optional[str]:
        if self.device_id == PIC16F15356_ID:
            return "PIC16F15356"
        return None

    @classmethod
    def from_data(cls, data: bytes) -> "VersionInfo":
        return cls(
            minor=data[0],
            major=data[1],
            max_packet_size=data[2] | (data[3] << 8),
            device_id=data[6] | (data[7] << 8),
            erase_block_size=data[10],
            write_block_size=data[11],
            user_ids=bytes(data[12:16]),
        )


class Transport:
    """
    Serial transport for the PIC bootloader.

    Can be used as a context manager:
        with Transport.open("/dev/ttyUSB0") as t:
            version = t.read_version()
    """

    def __init__(self, link: SerialLink):
        """
        Wrap an open link.

        Args:
            link: Open byte link, owned by the transport from now on
        """
        self._link = link

    @classmethod
    def open(cls, port: str, low_speed: bool = False) -> "Transport":
        """Open and lock port and return a transport on it."""
        return cls(SerialLink(port, low_speed=low_speed))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self):
        """Close the link."""
        self._link.close()

    @property
    def port(self) -> str:
        """Return the serial port name."""
        return self._link.port

    def _write_all(self, data: bytes, what: str):
        pos = 0
        while pos < len(data):
            cnt = self._link.write(data[pos:], WAIT_BYTE_TRANSFERRED_MS)
            if cnt == 0:
                raise TimeoutError(f"write {what} timed out")
            pos += cnt

    def _receive(self, response_length: Optional[int], extra_timeout_ms: int) -> bytes:
        """Receive sync byte, header and payload."""
        sync = self._link.read(1, WAIT_RESPONSE_TIMEOUT_MS + extra_timeout_ms)
        if not sync:
            raise TimeoutError("read sync timed out")
        if sync[0] != STX:
            raise ProtocolError(f"did not receive sync: 0x{sync[0]:02x}")

        received = bytearray()
        length = FRAME_HEADER_LEN
        header_done = False
        while len(received) < length:
            chunk = self._link.read(length - len(received), WAIT_BYTE_TRANSFERRED_MS)
            if not chunk:
                raise TimeoutError("read data timed out")
            received += chunk
            if not header_done and len(received) >= FRAME_HEADER_LEN:
                header_done = True
                if response_length is None:
                    response_length = decode_header(received).data_length
                    if response_length > MAX_DATA_LEN:
                        raise ProtocolError(f"invalid data length: {response_length}")
                length += response_length
        return bytes(received)

    def _drain(self):
        """Read away a potential nonsense tail."""
        try:
            self._link.read(TRAILING_BYTES, WAIT_BYTE_TRANSFERRED_MS)
        except LinkError as e:
            logger.debug("ignoring error on trailing bytes: %s", e)

    def exchange(
        self,
        frame: Frame,
        response_length: Optional[int],
        extra_timeout_ms: int = 0,
        quiet: bool = False,
    ) -> Frame:
        """
        Send a frame and receive the answer.

        Args:
            frame: Request frame
            response_length: Expected payload length of the answer, or None to
                take it from the answer's header
            extra_timeout_ms: Additional time the device may need before answering
            quiet: Log failures at debug level only

        Returns:
            Decoded response frame

        Raises:
            LinkError: On I/O error or hangup
            TimeoutError: If the device did not answer in time
            ProtocolError: On missing sync or an answer to a different command
        """
        try:
            # send sync for auto baud detection in PIC
            if self._link.write(bytes([STX]), WAIT_BYTE_TRANSFERRED_MS) == 0:
                raise TimeoutError("write sync timed out")
            # wait for bitrate detection to finish in PIC
            time.sleep(WAIT_BITRATE_DETECTION_US / 1_000_000)
            self._write_all(encode_frame(frame), "data")
            received = self._receive(response_length, extra_timeout_ms)
            self._drain()
            response = decode_frame(received)
            if response.command != frame.command:
                raise ProtocolError(
                    f"unexpected answer: command 0x{response.command:02x} "
                    f"to {CommandType(frame.command)}"
                )
        except TransportError as e:
            log = logger.debug if quiet else logger.error
            log("%s failed: %s", CommandType(frame.command), e)
            raise
        return response

    @staticmethod
    def _check_status(response: Frame):
        if response.status != Status.SUCCESS:
            raise DeviceError(0 if response.status is None else response.status)

    def read_version(self) -> VersionInfo:
        """
        Read the bootloader version block.

        Returns:
            VersionInfo with device id and block sizes

        Raises:
            VersionMismatchError: If the bootloader version is not supported
        """
        response = self.exchange(Frame.build(CommandType.READ_VERSION), 16)
        info = VersionInfo.from_data(response.data)
        if info.minor != MINOR_VERSION or info.major != MAJOR_VERSION:
            raise VersionMismatchError(
                f"unexpected version {info.major}.{info.minor}"
            )
        return info

    def read_config(self, address: int, length: int) -> bytes:
        """
        Read bytes from configuration space.

        Args:
            address: Config word address
            length: Number of bytes to read (max 64)

        Returns:
            Read bytes
        """
        frame = Frame.build(CommandType.READ_CONFIG, address, length)
        return self.exchange(frame, length).data

    def write_config(self, address: int, data: bytes) -> None:
        """
        Write bytes to configuration space.

        Raises:
            DeviceError: If the device rejected the write
        """
        frame = Frame.build(CommandType.WRITE_CONFIG, address, len(data), data)
        response = self.exchange(frame, 1, WRITE_CONFIG_EXTRA_MS)
        self._check_status(response)

    def read_flash(self, address: int) -> bytes:
        """Read 16 bytes of flash starting at word address."""
        frame = Frame.build(CommandType.READ_FLASH, address, 0x10)
        return self.exchange(frame, None).data

    def write_flash(self, address: int, data: bytes, quiet: bool = False) -> None:
        """
        Program up to two write blocks at word address.

        Args:
            address: Word address, block aligned
            data: Up to 64 bytes
            quiet: Log failures at debug level only

        Raises:
            DeviceError: If the device rejected the write
        """
        frame = Frame.build(CommandType.WRITE_FLASH, address, len(data), data)
        response = self.exchange(
            frame, 1, len(data) * WRITE_FLASH_MS_PER_BYTE, quiet=quiet
        )
        self._check_status(response)

    def erase_flash(self, address: int, length: int) -> int:
        """
        Erase flash rows.

        Args:
            address: Word address of the first row
            length: Number of words to cover, rounded up to whole rows

        Returns:
            Number of erased rows

        Raises:
            DeviceError: With the device status if erasing failed
        """
        blocks = erase_block_count(length)
        frame = Frame.build(CommandType.ERASE_FLASH, address, blocks)
        response = self.exchange(frame, 1, blocks * ERASE_MS_PER_BLOCK)
        self._check_status(response)
        return blocks

    def checksum(self, address: int, length: int) -> int:
        """
        Let the device sum up a flash range.

        Args:
            address: Word address to start at
            length: Number of bytes

        Returns:
            16 bit checksum
        """
        frame = Frame.build(CommandType.CALC_CHECKSUM, address, length)
        response = self.exchange(frame, 2, length * CHECKSUM_MS_PER_BYTE)
        return response.data[0] | (response.data[1] << 8)

    def reset_device(self) -> None:
        """
        Reset the device.

        The device may restart before answering, so callers usually
        tolerate a TimeoutError here.
        """
        response = self.exchange(Frame.build(CommandType.RESET_DEVICE), 1)
        self._check_status(response)
