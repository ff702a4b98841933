# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
PIC bootloader frame definitions and serialization.

Every exchange with the bootloader carries one frame in each direction,
preceded by the autobaud sync byte:

    [STX] <COMMAND> <LEN_L> <LEN_H> <KEY1> <KEY2> <ADDR_L> <ADDR_H> <ADDR_U> <UNUSED> <DATA...>

Addresses are word addresses (16-bit words), lengths depend on the command.
"""

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

STX = 0x55

FRAME_HEADER_LEN = 9
WRITE_FLASH_BLOCKSIZE = 32
ERASE_FLASH_BLOCKSIZE = 32
MAX_DATA_LEN = 2 * WRITE_FLASH_BLOCKSIZE
FRAME_MAX_LEN = FRAME_HEADER_LEN + MAX_DATA_LEN

EE_KEY_1 = 0x55
EE_KEY_2 = 0xAA

MINOR_VERSION = 0x08
MAJOR_VERSION = 0x00

# Flash geometry of the PIC16F15356, in words and in bytes.
END_FLASH = 0x4000
END_BOOT = 0x0400
END_FLASH_BYTES = END_FLASH * 2
END_BOOT_BYTES = END_BOOT * 2

# <command> <data_length> <key1> <key2> <addr_l> <addr_h> <addr_u> <unused>
_HEADER = struct.Struct("<BHBBBBBB")


class CommandType(IntEnum):
    """Bootloader opcodes."""
    READ_VERSION = 0
    READ_FLASH = 1
    WRITE_FLASH = 2
    ERASE_FLASH = 3
    READ_EE_DATA = 4
    WRITE_EE_DATA = 5
    READ_CONFIG = 6
    WRITE_CONFIG = 7
    CALC_CHECKSUM = 8
    RESET_DEVICE = 9
    CALC_CRC = 10

    def __str__(self) -> str:
        return self.name


class Status(IntEnum):
    """Status codes returned in the first data byte."""
    SUCCESS = 0x01
    ADDRESS_OUT_OF_RANGE = 0xFE
    INVALID_COMMAND = 0xFF

    def __str__(self) -> str:
        return self.name


# Commands that modify non-volatile memory must carry the guard keys.
GUARDED_COMMANDS = frozenset({
    CommandType.WRITE_FLASH,
    CommandType.ERASE_FLASH,
    CommandType.WRITE_EE_DATA,
    CommandType.WRITE_CONFIG,
})


@dataclass(frozen=True)
class Frame:
    """A single command or response frame."""
    command: int
    data_length: int = 0
    ee_key_1: int = 0
    ee_key_2: int = 0
    address_low: int = 0
    address_high: int = 0
    address_upper: int = 0
    address_unused: int = 0
    data: bytes = b""

    @property
    def address(self) -> int:
        """Word address formed from the low and high address bytes."""
        return (self.address_high << 8) | self.address_low

    @property
    def status(self) -> Optional[int]:
        """First data byte, the status code for most responses."""
        return self.data[0] if self.data else None

    @classmethod
    def build(
        cls,
        command: int,
        address: int = 0,
        data_length: int = 0,
        data: bytes = b"",
    ) -> "Frame":
        """
        Build a request frame.

        Guard keys are filled in for commands that modify memory.

        Args:
            command: Opcode
            address: Word address (16 bit)
            data_length: Value of the length field
            data: Payload sent along with the header

        Returns:
            New Frame
        """
        if len(data) > MAX_DATA_LEN:
            raise ValueError(f"Payload too large: {len(data)} > {MAX_DATA_LEN}")
        guarded = command in GUARDED_COMMANDS
        return cls(
            command=command,
            data_length=data_length,
            ee_key_1=EE_KEY_1 if guarded else 0,
            ee_key_2=EE_KEY_2 if guarded else 0,
            address_low=address & 0xFF,
            address_high=(address >> 8) & 0xFF,
            data=bytes(data),
        )


def encode_frame(frame: Frame) -> bytes:
    """
    Serialize a frame to its on-wire layout (without the sync byte).

    Args:
        frame: Frame to encode

    Returns:
        Header followed by the payload bytes
    """
    if len(frame.data) > MAX_DATA_LEN:
        raise ValueError(f"Payload too large: {len(frame.data)} > {MAX_DATA_LEN}")
    header = _HEADER.pack(
        frame.command,
        frame.data_length,
        frame.ee_key_1,
        frame.ee_key_2,
        frame.address_low,
        frame.address_high,
        frame.address_upper,
        frame.address_unused,
    )
    return header + frame.data


def decode_header(data: bytes) -> Frame:
    """Decode only the 9 header bytes into a frame without payload."""
    if len(data) < FRAME_HEADER_LEN:
        raise ValueError(f"Truncated frame header: {len(data)} bytes")
    fields = _HEADER.unpack_from(data)
    return Frame(*fields)


def decode_frame(data: bytes, payload_length: Optional[int] = None) -> Frame:
    """
    Decode a received frame.

    Fields are taken as they are, no semantic checks are done here.

    Args:
        data: Header followed by payload bytes
        payload_length: Payload size, or None to use everything after the header

    Returns:
        Decoded Frame

    Raises:
        ValueError: If data is shorter than the header plus payload
    """
    header = decode_header(data)
    if payload_length is None:
        payload_length = len(data) - FRAME_HEADER_LEN
    end = FRAME_HEADER_LEN + payload_length
    if len(data) < end:
        raise ValueError(f"Truncated frame: {len(data)} < {end} bytes")
    return Frame(
        command=header.command,
        data_length=header.data_length,
        ee_key_1=header.ee_key_1,
        ee_key_2=header.ee_key_2,
        address_low=header.address_low,
        address_high=header.address_high,
        address_upper=header.address_upper,
        address_unused=header.address_unused,
        data=bytes(data[FRAME_HEADER_LEN:end]),
    )


def erase_block_count(length: int, block_size: int = ERASE_FLASH_BLOCKSIZE) -> int:
    """Number of erase blocks needed to cover length units."""
    return (length + block_size - 1) // block_size


def status_name(status: int) -> str:
    """Readable name of a status byte, hex for opaque codes."""
    try:
        return str(Status(status))
    except ValueError:
        return f"0x{status:02x}"
