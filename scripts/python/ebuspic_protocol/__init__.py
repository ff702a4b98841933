# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
eBUS adapter PIC bootloader - Python client library.

This package provides a Python interface to the bootloader of the eBUS
adapter PIC via a serial port.

Example usage:
    from ebuspic_protocol import Transport, Programmer, ImageCursor

    with Transport.open("/dev/ttyUSB0") as transport:
        # Identify the device
        version = transport.read_version()
        print(f"Device ID: {version.device_id:04x}")

        # Flash firmware
        Programmer(transport).flash(ImageCursor.from_hex_file("firmware.hex"))

        # Reset
        transport.reset_device()
"""

from .device import (
    DeviceInfo,
    read_device_info,
    version_from_block,
)
from .image import ImageCursor, ImageFormatError
from .link import SerialLink, TransportError, LinkError
from .netconfig import (
    NetworkConfig,
    decode_config,
    encode_config,
    read_network_config,
    write_network_config,
)
from .options import SessionOptions, NetworkOptions, RunOptions
from .programmer import (
    Programmer,
    FlashState,
    FlashError,
    ImageRangeError,
    VerifyError,
    image_checksum,
    update_checksum,
    validate_image_range,
)
from .protocol import (
    CommandType,
    Status,
    Frame,
    encode_frame,
    decode_frame,
    erase_block_count,
)
from .transport import (
    Transport,
    VersionInfo,
    TimeoutError,
    ProtocolError,
    VersionMismatchError,
    DeviceError,
)

__version__ = "0.1.0"

__all__ = [
    # Protocol types
    "CommandType",
    "Status",
    "Frame",
    # Protocol encoding
    "encode_frame",
    "decode_frame",
    "erase_block_count",
    # Link
    "SerialLink",
    # Transport
    "Transport",
    "VersionInfo",
    "TransportError",
    "LinkError",
    "TimeoutError",
    "ProtocolError",
    "VersionMismatchError",
    "DeviceError",
    # Flashing
    "ImageCursor",
    "ImageFormatError",
    "Programmer",
    "FlashState",
    "FlashError",
    "ImageRangeError",
    "VerifyError",
    "image_checksum",
    "update_checksum",
    "validate_image_range",
    # Device
    "DeviceInfo",
    "read_device_info",
    "version_from_block",
    # Network settings
    "NetworkConfig",
    "decode_config",
    "encode_config",
    "read_network_config",
    "write_network_config",
    # Options
    "SessionOptions",
    "NetworkOptions",
    "RunOptions",
]
