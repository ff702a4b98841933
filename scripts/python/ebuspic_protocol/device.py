# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Device identification.

Collects version, revision and the versions of the bootloader and the
firmware as found in flash.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from .protocol import END_BOOT, END_BOOT_BYTES, END_FLASH_BYTES
from .link import TransportError
from .transport import Transport, VersionInfo

logger = logging.getLogger(__name__)

REVISION_ADDRESS = 0x0005
REVISION_LENGTH = 4

BOOTLOADER_MARKER = 0xAB
FIRMWARE_MARKER = 0xAE
RETLW_OPCODE = 0x34

# (title, config address, length, low bytes only)
CONFIG_DUMPS = (
    ("User ID", 0x0000, 8, False),
    ("Rev ID, Device ID", REVISION_ADDRESS, REVISION_LENGTH, False),
    ("Configuration words", 0x0007, 5 * 2, False),
    ("MUI", 0x0100, 9 * 2, True),
    ("EUI", 0x010A, 8 * 2, False),
)


@dataclass(frozen=True)
class DeviceInfo:
    version: VersionInfo
    revision: str
    bootloader_version: Optional[int] = None
    bootloader_checksum: Optional[int] = None
    firmware_version: Optional[int] = None
    firmware_checksum: Optional[int] = None


def version_from_block(block: bytes, marker: int) -> Optional[int]:
    """
    Extract the version from the first flash words of a program.

    Word 2 holds "retlw marker" and word 3 "retlw version".
    """
    if block[0x2 * 2] == marker and block[0x2 * 2 + 1] == RETLW_OPCODE and block[0x3 * 2 + 1] == RETLW_OPCODE:
        return block[0x3 * 2]
    return None


def decode_revision(data: bytes) -> str:
    """Format the revision ID word as major.minor."""
    major = ((data[1] & 0xF) << 2) | ((data[0] & 0xC0) >> 6)
    minor = data[0] & 0x3F
    return f"{major}.{minor}"


def _read_checksum(transport: Transport, address: int, length: int) -> Optional[int]:
    try:
        return transport.checksum(address, length)
    except TransportError as e:
        logger.warning("unable to read checksum at 0x%04x: %s", address, e)
        return None


def read_device_info(transport: Transport) -> DeviceInfo:
    """
    Read everything needed to identify the device and its programs.

    A checksum that can not be read is reported as None.

    Raises:
        VersionMismatchError: If the bootloader version is not supported
    """
    version = transport.read_version()
    revision = decode_revision(transport.read_config(REVISION_ADDRESS, REVISION_LENGTH))

    bootloader_version = version_from_block(transport.read_flash(0x0000), BOOTLOADER_MARKER)
    bootloader_checksum = None
    if bootloader_version is not None:
        bootloader_checksum = _read_checksum(transport, 0x0000, END_BOOT_BYTES)

    firmware_version = version_from_block(transport.read_flash(END_BOOT), FIRMWARE_MARKER)
    firmware_checksum = None
    if firmware_version is not None:
        firmware_checksum = _read_checksum(transport, END_BOOT, END_FLASH_BYTES - END_BOOT_BYTES)

    return DeviceInfo(
        version=version,
        revision=revision,
        bootloader_version=bootloader_version,
        bootloader_checksum=bootloader_checksum,
        firmware_version=firmware_version,
        firmware_checksum=firmware_checksum,
    )


def format_frame_data(address: int, data: bytes, skip_high: bool = False) -> List[str]:
    """
    Format read words as hex dump lines of 8 words each.

    Args:
        address: Word address of the first byte
        data: Bytes read, low byte first
        skip_high: Only show the low byte of each word
    """
    lines = []
    line = ""
    for pos in range(0, len(data), 2):
        if pos % 16 == 0:
            if line:
                lines.append(line)
            line = f"{address:04x}:"
        line += f" {data[pos]:02x}"
        if not skip_high and pos + 1 < len(data):
            line += f" {data[pos + 1]:02x}"
        address += 1
    if line:
        lines.append(line)
    return lines
